import logging
from datetime import datetime, timedelta
from typing import List

from models.schemas import ActionLogEntry, Deal, EmailRecord
from utils.helpers import hours_between

logger = logging.getLogger(__name__)

STALLED_STAGE = "Deal stalled in current stage for over 1 week"
NO_RECENT_EMAIL = "No recent email communication with customer"
MISSING_CLOSE_DATE = "Missing expected close date"
MISSING_TIMELINE = "Missing timeline information"

STALL_THRESHOLD_HOURS = 168
RECENT_EMAIL_WINDOW = timedelta(days=7)

def is_stage_stalled(logs: List[ActionLogEntry], now: datetime) -> bool:
    """True when the newest stage-tagged log entry is more than a week old"""
    stage_logs = [entry for entry in logs if 'stage' in entry.action]
    if not stage_logs:
        return False

    last_stage_change = stage_logs[0].timestamp
    if last_stage_change is None:
        return False
    return hours_between(last_stage_change, now) > STALL_THRESHOLD_HOURS

def has_recent_email(emails: List[EmailRecord], now: datetime) -> bool:
    cutoff = now - RECENT_EMAIL_WINDOW
    return any(email.timestamp is not None and email.timestamp > cutoff for email in emails)

def identify_roadblocks(
    deal: Deal,
    logs: List[ActionLogEntry],
    emails: List[EmailRecord],
    now: datetime
) -> List[str]:
    """
    Flag structural and behavioral warning conditions

    Every rule is evaluated; messages keep detection order.

    Args:
        deal: The deal record
        logs: Action-log entries sorted newest first
        emails: Email records
        now: Instant the analysis runs at
    """

    roadblocks = []

    if is_stage_stalled(logs, now):
        roadblocks.append(STALLED_STAGE)

    if not has_recent_email(emails, now):
        roadblocks.append(NO_RECENT_EMAIL)

    qualification = deal.qualification
    if not qualification.get('expectedCloseDate'):
        roadblocks.append(MISSING_CLOSE_DATE)

    if not qualification.get('timeline'):
        roadblocks.append(MISSING_TIMELINE)

    if roadblocks:
        logger.debug(f"Roadblocks for deal {deal.id}: {roadblocks}")

    return roadblocks
