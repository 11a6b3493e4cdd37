import logging
from typing import List, Optional

from models.schemas import EmailAnalysis, EmailRecord
from utils.helpers import format_elapsed_hours, hours_between

logger = logging.getLogger(__name__)

NO_EMAIL_DATA = "No email data available"
REPLY_MARKER = "Re:"

def reply_match_key(subject: Optional[str]) -> str:
    """
    Text an inbound subject must contain to count as a reply

    This is the segment after the first "Re:" (up to any following "Re:").
    Without a marker the key is empty, so any later inbound email matches.
    """
    if not subject:
        return ""
    parts = subject.split(REPLY_MARKER)
    return parts[1] if len(parts) > 1 else ""

def find_response(outbound: EmailRecord, inbound_emails: List[EmailRecord]) -> Optional[EmailRecord]:
    """Earliest inbound email after the outbound one whose subject contains the match key"""
    if outbound.timestamp is None:
        return None

    key = reply_match_key(outbound.subject)
    responses = [
        inbound for inbound in inbound_emails
        if inbound.timestamp is not None
        and inbound.timestamp > outbound.timestamp
        and inbound.subject is not None
        and key in inbound.subject
    ]

    if not responses:
        return None
    return min(responses, key=lambda inbound: inbound.timestamp)

def classify_engagement(inbound_count: int, outbound_count: int) -> str:
    """Engagement from the inbound/outbound balance"""
    # Zero outbound always rates low, whatever came in
    if outbound_count == 0:
        return "low"
    if inbound_count > outbound_count * 0.8:
        return "high"
    elif inbound_count > outbound_count * 0.4:
        return "medium"
    return "low"

def analyze_email_responsiveness(emails: List[EmailRecord]) -> EmailAnalysis:
    """
    Compute engagement level and average customer response time

    Args:
        emails: Email records for the deal

    Returns:
        EmailAnalysis with totalEmails, responseTime and engagementLevel
    """

    if not emails:
        return EmailAnalysis(
            total_emails=0,
            response_time=NO_EMAIL_DATA,
            engagement_level="Unknown"
        )

    inbound_emails = [email for email in emails if email.direction == 'inbound']
    outbound_emails = [email for email in emails if email.direction == 'outbound']

    total_response_hours = 0.0
    response_count = 0

    for outbound in outbound_emails:
        response = find_response(outbound, inbound_emails)
        if response is not None:
            total_response_hours += hours_between(outbound.timestamp, response.timestamp)
            response_count += 1

    avg_response_hours = total_response_hours / response_count if response_count > 0 else 0.0

    engagement_level = classify_engagement(len(inbound_emails), len(outbound_emails))

    logger.debug(
        f"Email analysis: {len(inbound_emails)} inbound, {len(outbound_emails)} outbound, "
        f"{response_count} matched responses"
    )

    return EmailAnalysis(
        total_emails=len(emails),
        response_time=format_elapsed_hours(avg_response_hours),
        engagement_level=engagement_level
    )
