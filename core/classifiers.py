import logging
from datetime import datetime, timedelta
from typing import Dict, List

from models.schemas import ActionLogEntry, DealStage, EmailAnalysis

logger = logging.getLogger(__name__)

# Base likelihood by pipeline stage; unknown stages fall back to DEFAULT_STAGE_WEIGHT
STAGE_WEIGHTS: Dict[str, float] = {
    DealStage.DISCOVERY.value: 0.1,
    DealStage.QUALIFICATION.value: 0.2,
    DealStage.PROPOSAL.value: 0.4,
    DealStage.NEGOTIATION.value: 0.7,
    DealStage.CLOSED_WON.value: 1.0,
    DealStage.CLOSED_LOST.value: 0.0,
}
DEFAULT_STAGE_WEIGHT = 0.1

ENGAGEMENT_BONUS = {'high': 0.2, 'medium': 0.1}

def count_logs_since(logs: List[ActionLogEntry], now: datetime, window: timedelta) -> int:
    cutoff = now - window
    return sum(1 for entry in logs if entry.timestamp is not None and entry.timestamp > cutoff)

def assess_customer_responsiveness(email_analysis: EmailAnalysis) -> str:
    """Passthrough of the engagement level, with anything unrated mapped to low"""
    if email_analysis.engagement_level == 'high':
        return 'high'
    elif email_analysis.engagement_level == 'medium':
        return 'medium'
    return 'low'

def likelihood_score(
    stage: str,
    logs: List[ActionLogEntry],
    email_analysis: EmailAnalysis,
    now: datetime
) -> float:
    score = STAGE_WEIGHTS.get(stage, DEFAULT_STAGE_WEIGHT)

    score += ENGAGEMENT_BONUS.get(email_analysis.engagement_level, 0.0)

    recent_activity = count_logs_since(logs, now, timedelta(days=7))
    if recent_activity > 5:
        score += 0.1
    elif recent_activity == 0:
        score -= 0.2

    return score

def calculate_likelihood_to_close(
    stage: str,
    logs: List[ActionLogEntry],
    email_analysis: EmailAnalysis,
    now: datetime
) -> str:
    """
    Heuristic likelihood rating from stage weight, engagement and recent activity

    Returns:
        'high' at a score of 0.7 or more, 'medium' at 0.4 or more, else 'low'
    """
    score = likelihood_score(stage, logs, email_analysis, now)

    if score >= 0.7:
        return 'high'
    elif score >= 0.4:
        return 'medium'
    return 'low'

def performance_score(
    logs: List[ActionLogEntry],
    email_analysis: EmailAnalysis,
    now: datetime
) -> float:
    score = 0.0

    follow_ups = sum(
        1 for entry in logs
        if 'email_sent' in entry.action or 'follow_up' in entry.action
    )
    if follow_ups > 5:
        score += 0.3
    elif follow_ups > 2:
        score += 0.2

    if any('stage_advance' in entry.action for entry in logs):
        score += 0.3

    score += ENGAGEMENT_BONUS.get(email_analysis.engagement_level, 0.0)

    if count_logs_since(logs, now, timedelta(days=3)) > 3:
        score += 0.2

    return score

def assess_salesperson_performance(
    logs: List[ActionLogEntry],
    email_analysis: EmailAnalysis,
    now: datetime
) -> str:
    """
    Grade follow-up cadence, stage advancement, engagement and recent activity

    Returns:
        'excellent' at a score of 0.7 or more, 'good' at 0.4 or more, else 'needs_improvement'
    """
    score = performance_score(logs, email_analysis, now)

    if score >= 0.7:
        return 'excellent'
    elif score >= 0.4:
        return 'good'
    return 'needs_improvement'
