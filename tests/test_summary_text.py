import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.summary_text import generate_summary_text
from models.schemas import AILogsAnalysis, Deal, DealProgress, EmailAnalysis


class TestSummaryText:
    """Test suite for generate_summary_text"""

    @pytest.fixture
    def deal(self):
        return Deal.model_validate({"id": "d1", "name": "Acme Renewal", "stage": "negotiation"})

    @pytest.fixture
    def no_emails(self):
        return EmailAnalysis(total_emails=0, response_time="No email data available", engagement_level="Unknown")

    @pytest.fixture
    def no_logs(self):
        return AILogsAnalysis(total_logs=0, recent_activity="No recent AI activity", key_insights=[])

    @pytest.fixture
    def unknown_progress(self):
        return DealProgress(stage="negotiation", time_in_stage="Unknown", stage_advancement="Initial stage")

    def test_minimal_deal(self, deal, no_emails, no_logs, unknown_progress):
        summary = generate_summary_text(deal, no_emails, no_logs, unknown_progress, [])

        assert summary == (
            'Deal "Acme Renewal" is currently in the negotiation stage. '
            'Limited email communication data available. '
            'The deal has been in the current stage for Unknown. '
        )

    def test_all_clauses(self, deal, unknown_progress):
        emails = EmailAnalysis(total_emails=6, response_time="4.5 hours", engagement_level="medium")
        logs = AILogsAnalysis(
            total_logs=3,
            recent_activity="Recent (within 3 days)",
            key_insights=["Meeting scheduled", "Follow-up email sent"]
        )
        progress = DealProgress(stage="negotiation", time_in_stage="2.5 days", stage_advancement="Progressive")
        roadblocks = ["Missing expected close date", "Missing timeline information"]

        summary = generate_summary_text(deal, emails, logs, progress, roadblocks)

        assert summary == (
            'Deal "Acme Renewal" is currently in the negotiation stage. '
            'Customer engagement is medium with an average response time of 4.5 hours. '
            'The deal has been in the current stage for 2.5 days. '
            'Recent AI activity shows Recent (within 3 days) with 2 key actions. '
            'Key roadblocks identified: Missing expected close date, Missing timeline information. '
        )

    def test_missing_stage_renders_unknown(self, no_emails, no_logs, unknown_progress):
        deal = Deal.model_validate({"id": "d2", "name": "Initech"})

        summary = generate_summary_text(deal, no_emails, no_logs, unknown_progress, [])

        assert summary.startswith('Deal "Initech" is currently in the unknown stage. ')

    def test_logs_clause_with_zero_insights(self, deal, no_emails, unknown_progress):
        logs = AILogsAnalysis(total_logs=4, recent_activity="Stale (over 1 week)", key_insights=[])

        summary = generate_summary_text(deal, no_emails, logs, unknown_progress, [])

        assert "Recent AI activity shows Stale (over 1 week) with 0 key actions. " in summary
        assert summary.endswith(" ")
