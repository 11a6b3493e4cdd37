import logging
import re
import time
from typing import Any, Optional
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# fromisoformat takes at most microseconds (and only 3 or 6 digits before 3.11)
FRACTION_PATTERN = re.compile(r"(?<=\d\d:\d\d:\d\d)\.(\d+)")

# Date/time helpers
def parse_datetime_string(date_str: str) -> Optional[datetime]:
    """
    Parse datetime string with multiple format support

    Args:
        date_str: Date string to parse

    Returns:
        Parsed UTC-aware datetime or None
    """

    if not date_str or not date_str.strip():
        return None

    date_str = date_str.strip()

    # Try ISO format parsing first (handles offsets and fractional seconds)
    try:
        iso_str = FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), date_str)
        parsed = datetime.fromisoformat(iso_str.replace('Z', '+00:00'))
        return ensure_utc(parsed)
    except ValueError:
        pass

    # Common non-ISO formats
    formats = [
        '%Y-%m-%d %H:%M:%S',
        '%m/%d/%Y %H:%M:%S',
        '%m/%d/%Y'
    ]

    for fmt in formats:
        try:
            return ensure_utc(datetime.strptime(date_str, fmt))
        except ValueError:
            continue

    logger.debug(f"Could not parse datetime string: {date_str}")
    return None

def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def to_utc_datetime(value: Any) -> Optional[datetime]:
    """
    Normalize any supported timestamp representation to a UTC datetime

    Supported inputs:
        - datetime (naive values are treated as UTC)
        - ISO-8601 or common date strings
        - epoch milliseconds (int/float)
        - {"_seconds": s, "_nanoseconds": n} or {"seconds": s, "nanos": n}
        - objects exposing to_datetime() or timestamp()

    Returns:
        UTC-aware datetime, or None when the value is unusable
    """

    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, datetime):
            return ensure_utc(value)

        if isinstance(value, str):
            return parse_datetime_string(value)

        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)

        if isinstance(value, dict):
            seconds = value.get('_seconds', value.get('seconds'))
            if seconds is None:
                return None
            nanos = value.get('_nanoseconds', value.get('nanos', 0)) or 0
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)

        if hasattr(value, 'to_datetime'):
            return ensure_utc(value.to_datetime())

        if hasattr(value, 'timestamp'):
            return datetime.fromtimestamp(float(value.timestamp()), tz=timezone.utc)

    except (TypeError, ValueError, OverflowError, OSError) as e:
        logger.warning(f"Could not normalize timestamp {value!r}: {e}")
        return None

    return None

def hours_between(earlier: datetime, later: datetime) -> float:
    """Elapsed hours from earlier to later (negative if reversed)"""
    return (later - earlier).total_seconds() / 3600

def format_elapsed_hours(hours: float) -> str:
    """
    Format elapsed hours the way deal summaries display them

    Args:
        hours: Elapsed hours

    Returns:
        "{h} hours" under one day, otherwise "{d} days", one decimal place
    """

    if hours < 24:
        return f"{hours:.1f} hours"
    return f"{hours / 24:.1f} days"

def recency_key(timestamp: Optional[datetime]) -> datetime:
    """Sort key placing missing timestamps at the epoch"""
    return timestamp or EPOCH

# Performance monitoring helpers
class PerformanceTimer:
    """Context manager for measuring execution time"""

    def __init__(self, description: str = "Operation"):
        self.description = description
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.time()
        duration = self.end_time - self.start_time
        logger.debug(f"{self.description} completed in {duration:.4f} seconds")

    @property
    def elapsed_time(self) -> float:
        """Get elapsed time"""
        if self.start_time is None:
            return 0.0

        end_time = self.end_time or time.time()
        return end_time - self.start_time
