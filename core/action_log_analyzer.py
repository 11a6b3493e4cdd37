import logging
from datetime import datetime
from typing import List

from models.schemas import AILogsAnalysis, ActionLogEntry, MAX_KEY_INSIGHTS
from utils.helpers import hours_between

logger = logging.getLogger(__name__)

RECENT_LOG_WINDOW = 10

NO_RECENT_ACTIVITY = "No recent AI activity"

# (upper bound in hours, phrase); anything older is stale
RECENCY_BUCKETS = [
    (24, "Very recent (within 24 hours)"),
    (72, "Recent (within 3 days)"),
    (168, "Moderate (within 1 week)"),
]
STALE_ACTIVITY = "Stale (over 1 week)"

def extract_insights(entry: ActionLogEntry) -> List[str]:
    """Insight phrases for one log entry; the tag checks are independent"""
    action = entry.action
    insights = []

    if 'stage_advance' in action:
        insights.append(f"Stage advanced to {entry.new_stage or 'next stage'}")
    if 'email_sent' in action:
        insights.append("Follow-up email sent")
    if 'meeting_scheduled' in action:
        insights.append("Meeting scheduled")
    if 'proposal_sent' in action:
        insights.append("Proposal sent to customer")

    return insights

def classify_recency(hours_since_last_activity: float) -> str:
    for upper_bound, phrase in RECENCY_BUCKETS:
        if hours_since_last_activity < upper_bound:
            return phrase
    return STALE_ACTIVITY

def analyze_action_logs(logs: List[ActionLogEntry], now: datetime) -> AILogsAnalysis:
    """
    Extract recency and key insights from the action log

    Args:
        logs: Action-log entries sorted newest first
        now: Instant the analysis runs at

    Returns:
        AILogsAnalysis with totalLogs, recentActivity and up to five keyInsights
    """

    if not logs:
        return AILogsAnalysis(
            total_logs=0,
            recent_activity=NO_RECENT_ACTIVITY,
            key_insights=[]
        )

    key_insights = []
    for entry in logs[:RECENT_LOG_WINDOW]:
        key_insights.extend(extract_insights(entry))

    last_activity = logs[0].timestamp
    hours_since_last_activity = hours_between(last_activity, now) if last_activity else 0.0

    return AILogsAnalysis(
        total_logs=len(logs),
        recent_activity=classify_recency(hours_since_last_activity),
        key_insights=key_insights[:MAX_KEY_INSIGHTS]
    )
