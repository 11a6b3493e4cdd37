import logging
from datetime import datetime
from typing import List

from models.schemas import DealProgress, StageHistoryEntry
from utils.helpers import format_elapsed_hours, hours_between

logger = logging.getLogger(__name__)

UNKNOWN_TIME_IN_STAGE = "Unknown"

def analyze_deal_progress(stage: str, stage_history: List[StageHistoryEntry], now: datetime) -> DealProgress:
    """
    Compute dwell time in the current stage and a progression label

    Args:
        stage: The deal's current stage
        stage_history: Stage transitions sorted newest first
        now: Instant the analysis runs at
    """

    entered_at = next(
        (entry.timestamp for entry in stage_history if entry.stage == stage),
        None
    )

    time_in_stage = UNKNOWN_TIME_IN_STAGE
    if entered_at is not None:
        time_in_stage = format_elapsed_hours(hours_between(entered_at, now))

    stage_advancement = "Progressive" if len(stage_history) > 1 else "Initial stage"

    return DealProgress(
        stage=stage,
        time_in_stage=time_in_stage,
        stage_advancement=stage_advancement
    )
