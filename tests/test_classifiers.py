import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.classifiers import (
    DEFAULT_STAGE_WEIGHT,
    STAGE_WEIGHTS,
    assess_customer_responsiveness,
    assess_salesperson_performance,
    calculate_likelihood_to_close,
    count_logs_since,
    likelihood_score,
    performance_score,
)
from datetime import timedelta
from models.schemas import EmailAnalysis


def email_analysis(engagement_level: str) -> EmailAnalysis:
    if engagement_level == "Unknown":
        return EmailAnalysis(total_emails=0, response_time="No email data available", engagement_level="Unknown")
    return EmailAnalysis(total_emails=4, response_time="2.0 hours", engagement_level=engagement_level)


class TestCustomerResponsiveness:
    """Test suite for assess_customer_responsiveness"""

    @pytest.mark.parametrize("engagement, expected", [
        ("high", "high"),
        ("medium", "medium"),
        ("low", "low"),
        ("Unknown", "low"),
    ])
    def test_passthrough(self, engagement, expected):
        assert assess_customer_responsiveness(email_analysis(engagement)) == expected


class TestLikelihoodToClose:
    """Test suite for likelihood scoring"""

    def test_closed_won_with_high_engagement_and_busy_week(self, make_log, now):
        logs = [make_log("email_sent", hours_ago=i * 10 + 1) for i in range(6)]

        score = likelihood_score("closed_won", logs, email_analysis("high"), now)

        assert score == pytest.approx(1.3)
        assert calculate_likelihood_to_close("closed_won", logs, email_analysis("high"), now) == "high"

    def test_no_activity_penalty(self, now):
        score = likelihood_score("negotiation", [], email_analysis("Unknown"), now)

        assert score == pytest.approx(0.5)
        assert calculate_likelihood_to_close("negotiation", [], email_analysis("Unknown"), now) == "medium"

    def test_closed_lost_keeps_zero_weight(self, now):
        assert STAGE_WEIGHTS["closed_lost"] == 0.0
        assert likelihood_score("closed_lost", [], email_analysis("low"), now) == pytest.approx(-0.2)
        assert calculate_likelihood_to_close("closed_lost", [], email_analysis("low"), now) == "low"

    def test_unknown_stage_uses_default_weight(self, make_log, now):
        logs = [make_log("note_added", hours_ago=2)]

        assert likelihood_score("renewal", logs, email_analysis("low"), now) == pytest.approx(DEFAULT_STAGE_WEIGHT)

    def test_moderate_activity_is_neutral(self, make_log, now):
        logs = [make_log("note_added", hours_ago=h) for h in (1, 2, 3)]

        assert likelihood_score("proposal", logs, email_analysis("medium"), now) == pytest.approx(0.5)

    def test_logs_outside_week_do_not_count(self, make_log, now):
        logs = [make_log("email_sent", hours_ago=200 + i) for i in range(10)]

        assert likelihood_score("proposal", logs, email_analysis("low"), now) == pytest.approx(0.2)

    @pytest.mark.parametrize("stage", list(STAGE_WEIGHTS) + ["renewal"])
    @pytest.mark.parametrize("recent_logs", [0, 3, 6])
    def test_monotonic_in_engagement(self, make_log, now, stage, recent_logs):
        logs = [make_log("note_added", hours_ago=i + 1) for i in range(recent_logs)]

        high = likelihood_score(stage, logs, email_analysis("high"), now)
        medium = likelihood_score(stage, logs, email_analysis("medium"), now)
        low = likelihood_score(stage, logs, email_analysis("low"), now)

        assert high >= medium >= low

    def test_count_logs_since_is_strict(self, make_log, now):
        logs = [make_log("a", hours_ago=168), make_log("b", hours_ago=167), make_log("c", hours_ago=None)]

        assert count_logs_since(logs, now, timedelta(days=7)) == 1


class TestSalespersonPerformance:
    """Test suite for performance grading"""

    def test_excellent(self, make_log, now):
        logs = [make_log("email_sent", hours_ago=i + 1) for i in range(6)]
        logs.append(make_log("stage_advance", hours_ago=10, new_stage="proposal"))

        assert performance_score(logs, email_analysis("high"), now) == pytest.approx(1.0)
        assert assess_salesperson_performance(logs, email_analysis("high"), now) == "excellent"

    def test_good(self, make_log, now):
        logs = [make_log("stage_advance", hours_ago=200)]

        assert performance_score(logs, email_analysis("high"), now) == pytest.approx(0.5)
        assert assess_salesperson_performance(logs, email_analysis("high"), now) == "good"

    def test_needs_improvement(self, make_log, now):
        logs = [make_log("follow_up", hours_ago=240 + i) for i in range(3)]

        assert performance_score(logs, email_analysis("medium"), now) == pytest.approx(0.3)
        assert assess_salesperson_performance(logs, email_analysis("medium"), now) == "needs_improvement"

    def test_no_activity(self, now):
        assert performance_score([], email_analysis("Unknown"), now) == 0.0
        assert assess_salesperson_performance([], email_analysis("Unknown"), now) == "needs_improvement"

    def test_recent_burst_bonus(self, make_log, now):
        logs = [make_log("note_added", hours_ago=h) for h in (1, 2, 3, 4)]

        assert performance_score(logs, email_analysis("low"), now) == pytest.approx(0.2)
