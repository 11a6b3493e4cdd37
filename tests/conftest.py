import pytest
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from models.schemas import ActionLogEntry, EmailRecord, StageHistoryEntry

NOW = datetime(2024, 5, 10, 12, 0, 0, tzinfo=timezone.utc)

@pytest.fixture
def now():
    """Fixed analysis instant"""
    return NOW

@pytest.fixture
def make_log(now):
    """Build an ActionLogEntry `hours_ago` hours before now"""
    def _make(action, hours_ago=1.0, new_stage=None, log_id=None):
        timestamp = now - timedelta(hours=hours_ago) if hours_ago is not None else None
        return ActionLogEntry(id=log_id, action=action, timestamp=timestamp, new_stage=new_stage)
    return _make

@pytest.fixture
def make_email(now):
    """Build an EmailRecord `hours_ago` hours before now"""
    def _make(direction, subject="Re: Proposal", hours_ago=1.0, email_id=None):
        timestamp = now - timedelta(hours=hours_ago) if hours_ago is not None else None
        return EmailRecord(id=email_id, direction=direction, subject=subject, timestamp=timestamp)
    return _make

@pytest.fixture
def make_stage_entry(now):
    """Build a StageHistoryEntry `hours_ago` hours before now"""
    def _make(stage, hours_ago=1.0):
        timestamp = now - timedelta(hours=hours_ago) if hours_ago is not None else None
        return StageHistoryEntry(stage=stage, timestamp=timestamp)
    return _make

def iso_hours_ago(hours: float) -> str:
    """ISO-8601 timestamp `hours` before NOW, as stored documents carry them"""
    return (NOW - timedelta(hours=hours)).isoformat().replace('+00:00', 'Z')

@pytest.fixture
def iso_ago():
    return iso_hours_ago
