import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from config.settings import settings
from core.action_log_analyzer import analyze_action_logs
from core.classifiers import (
    assess_customer_responsiveness,
    assess_salesperson_performance,
    calculate_likelihood_to_close,
)
from core.deal_store import DealStore
from core.email_analyzer import analyze_email_responsiveness
from core.exceptions import DealNotFoundError, InvalidRequestError, SummaryGenerationError
from core.roadblocks import identify_roadblocks
from core.stage_analyzer import analyze_deal_progress
from core.summary_text import generate_summary_text
from models.schemas import AISummary, ActionLogEntry, Deal, EmailRecord, StageHistoryEntry
from utils.cache import CacheManager
from utils.helpers import PerformanceTimer, ensure_utc, recency_key

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

class SummaryState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    ASSEMBLING = "assembling"
    PERSISTED = "persisted"
    FAILED = "failed"

@dataclass
class FetchResult:
    """Outcome of one best-effort auxiliary read"""
    source: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def or_empty(self) -> List[Dict[str, Any]]:
        return self.records if self.ok else []

@dataclass
class DealRecords:
    """Parsed inputs for one analysis, each collection sorted newest first"""
    action_logs: List[ActionLogEntry] = field(default_factory=list)
    emails: List[EmailRecord] = field(default_factory=list)
    stage_history: List[StageHistoryEntry] = field(default_factory=list)

def sort_by_recency(records: List[RecordT]) -> List[RecordT]:
    """Sort records newest first; records without a timestamp go last"""
    return sorted(records, key=lambda record: recency_key(record.timestamp), reverse=True)

def parse_records(model: Type[RecordT], raw_records: List[Dict[str, Any]], source: str) -> List[RecordT]:
    """Validate raw store documents, skipping any that cannot be parsed"""
    parsed = []
    for raw in raw_records:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            record_id = raw.get('id', 'unknown') if isinstance(raw, dict) else 'unknown'
            logger.warning(f"Skipping unparseable {source} record {record_id}: {e}")
    return parsed

class SummaryRun:
    """Per-invocation state tracker; transitions are logged"""

    def __init__(self, tenant_id: str, deal_id: str):
        self.tenant_id = tenant_id
        self.deal_id = deal_id
        self.state = SummaryState.IDLE

    def transition(self, state: SummaryState) -> None:
        logger.debug(
            f"Deal {self.deal_id}: {self.state.value} -> {state.value}",
            extra={"tenant_id": self.tenant_id, "deal_id": self.deal_id, "state": state.value}
        )
        self.state = state

class DealSignalEngine:
    """
    Orchestrates fetch -> analyze -> assemble -> persist for one deal

    The deal lookup is mandatory and gates the three auxiliary reads
    (action logs, emails, stage history), which run concurrently and
    degrade to empty collections on failure or timeout.
    """

    def __init__(
        self,
        deal_store: DealStore,
        cache_manager: CacheManager = None,
        fetch_limits: Dict[str, int] = None,
        read_timeout: float = None
    ):
        """
        Initialize the engine

        Args:
            deal_store: Store holding deals, action logs, emails and stage history
            cache_manager: Optional read cache for stored summaries
            fetch_limits: Caps for action_logs, emails and stage_history reads
            read_timeout: Seconds to wait for the auxiliary reads
        """
        self.deal_store = deal_store
        self.cache_manager = cache_manager
        self.fetch_limits = fetch_limits or settings.get_fetch_limits()
        self.read_timeout = read_timeout or settings.STORE_READ_TIMEOUT_SECONDS

        logger.info("Deal Signal Engine initialized")

    # =================== ORCHESTRATION ===================

    def generate_summary(self, tenant_id: str, deal_id: str, now: datetime = None) -> AISummary:
        """
        Generate, persist and return the AI summary for a deal

        Args:
            tenant_id: Tenant owning the deal
            deal_id: Deal identifier
            now: Analysis instant (defaults to the current UTC time)

        Raises:
            InvalidRequestError: tenant_id or deal_id missing
            DealNotFoundError: the deal does not exist
            SummaryGenerationError: any other failure
        """

        if not tenant_id or not deal_id:
            raise InvalidRequestError("Missing required parameters: tenantId, dealId")

        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        run = SummaryRun(tenant_id, deal_id)
        logger.info(f"Generating AI summary for deal {deal_id} in tenant {tenant_id}")

        try:
            with PerformanceTimer(f"AI summary for deal {deal_id}") as timer:
                run.transition(SummaryState.FETCHING)
                raw_deal = self.deal_store.get_deal(tenant_id, deal_id)
                if raw_deal is None:
                    raise DealNotFoundError(tenant_id, deal_id)

                deal = Deal.model_validate(raw_deal)
                records = self._fetch_auxiliary(tenant_id, deal_id)

                run.transition(SummaryState.ANALYZING)
                ai_summary = self._analyze(deal, records, now, run)

                self.deal_store.save_ai_summary(
                    tenant_id, deal_id, ai_summary.to_document(), ai_summary.last_updated
                )
                if self.cache_manager:
                    self.cache_manager.invalidate_summary(tenant_id, deal_id)
                run.transition(SummaryState.PERSISTED)

            logger.info(f"AI summary generated and saved for deal {deal_id} in {timer.elapsed_time:.3f}s")
            return ai_summary

        except DealNotFoundError:
            run.transition(SummaryState.FAILED)
            logger.warning(f"Deal {deal_id} not found in tenant {tenant_id}")
            raise

        except Exception as e:
            run.transition(SummaryState.FAILED)
            logger.error(f"Error generating AI summary for deal {deal_id}: {e}", exc_info=True)
            raise SummaryGenerationError() from e

    def analyze_records(
        self,
        deal: Deal,
        action_logs: List[ActionLogEntry],
        emails: List[EmailRecord],
        stage_history: List[StageHistoryEntry],
        now: datetime = None
    ) -> AISummary:
        """Analyze caller-supplied records without touching the store"""

        records = DealRecords(
            action_logs=sort_by_recency(action_logs),
            emails=sort_by_recency(emails),
            stage_history=sort_by_recency(stage_history)
        )
        return self._analyze(deal, records, ensure_utc(now) if now else datetime.now(timezone.utc))

    def get_summary(self, tenant_id: str, deal_id: str) -> Optional[AISummary]:
        """
        Get the stored AI summary of a deal, read through the cache

        Raises:
            DealNotFoundError: the deal does not exist
        """

        if self.cache_manager:
            cached = self.cache_manager.get_cached_summary(tenant_id, deal_id)
            if cached is not None:
                return AISummary.model_validate(cached)

        raw_deal = self.deal_store.get_deal(tenant_id, deal_id)
        if raw_deal is None:
            raise DealNotFoundError(tenant_id, deal_id)

        stored = Deal.model_validate(raw_deal).ai_summary
        if not stored:
            return None

        ai_summary = AISummary.model_validate(stored)
        self._cache_summary(tenant_id, deal_id, ai_summary)
        return ai_summary

    # =================== FETCH ===================

    def _fetch_auxiliary(self, tenant_id: str, deal_id: str) -> DealRecords:
        """Issue the three best-effort reads concurrently, then sort each result"""

        readers: Dict[str, Callable[[], List[Dict[str, Any]]]] = {
            'action_logs': lambda: self.deal_store.list_action_logs(
                tenant_id, deal_id, self.fetch_limits['action_logs']),
            'emails': lambda: self.deal_store.list_emails(
                tenant_id, deal_id, self.fetch_limits['emails']),
            'stage_history': lambda: self.deal_store.list_stage_history(
                tenant_id, deal_id, self.fetch_limits['stage_history']),
        }

        executor = ThreadPoolExecutor(max_workers=len(readers), thread_name_prefix="deal-fetch")
        try:
            futures = {source: executor.submit(reader) for source, reader in readers.items()}
            deadline = time.monotonic() + self.read_timeout

            results = {}
            for source, future in futures.items():
                remaining = max(deadline - time.monotonic(), 0)
                try:
                    results[source] = FetchResult(source, records=list(future.result(timeout=remaining) or []))
                except Exception as e:
                    logger.warning(
                        f"No {source} available for deal {deal_id}, continuing without them: {e!r}",
                        extra={"tenant_id": tenant_id, "deal_id": deal_id, "source": source}
                    )
                    results[source] = FetchResult(source, error=repr(e))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        records = DealRecords(
            action_logs=sort_by_recency(
                parse_records(ActionLogEntry, results['action_logs'].or_empty(), 'action_logs')),
            emails=sort_by_recency(
                parse_records(EmailRecord, results['emails'].or_empty(), 'emails')),
            stage_history=sort_by_recency(
                parse_records(StageHistoryEntry, results['stage_history'].or_empty(), 'stage_history')),
        )

        logger.info(
            f"Fetched {len(records.action_logs)} action logs, {len(records.emails)} emails, "
            f"{len(records.stage_history)} stage history entries for deal {deal_id}"
        )
        return records

    # =================== ANALYZE & ASSEMBLE ===================

    def _analyze(self, deal: Deal, records: DealRecords, now: datetime, run: SummaryRun = None) -> AISummary:
        email_analysis = analyze_email_responsiveness(records.emails)
        ai_logs_analysis = analyze_action_logs(records.action_logs, now)
        deal_progress = analyze_deal_progress(deal.stage, records.stage_history, now)
        roadblocks = identify_roadblocks(deal, records.action_logs, records.emails, now)
        customer_responsiveness = assess_customer_responsiveness(email_analysis)
        likelihood_to_close = calculate_likelihood_to_close(deal.stage, records.action_logs, email_analysis, now)
        salesperson_performance = assess_salesperson_performance(records.action_logs, email_analysis, now)

        if run:
            run.transition(SummaryState.ASSEMBLING)

        return AISummary(
            summary=generate_summary_text(deal, email_analysis, ai_logs_analysis, deal_progress, roadblocks),
            roadblocks=roadblocks,
            customer_responsiveness=customer_responsiveness,
            likelihood_to_close=likelihood_to_close,
            salesperson_performance=salesperson_performance,
            last_updated=now,
            email_analysis=email_analysis,
            ai_logs_analysis=ai_logs_analysis,
            deal_progress=deal_progress
        )

    def _cache_summary(self, tenant_id: str, deal_id: str, ai_summary: AISummary) -> None:
        if self.cache_manager:
            self.cache_manager.cache_summary(
                tenant_id, deal_id, ai_summary.model_dump(mode="json", by_alias=True)
            )

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics"""
        return {
            'deal_store': self.deal_store.get_stats(),
            'cache': self.cache_manager.get_stats() if self.cache_manager else {'enabled': False},
            'configuration': {
                'fetch_limits': self.fetch_limits,
                'read_timeout_seconds': self.read_timeout
            },
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

# Factory function
def create_deal_signal_engine(
    deal_store: DealStore = None,
    cache_manager: CacheManager = None
) -> DealSignalEngine:
    """Create deal signal engine wired to the configured store and cache"""

    if deal_store is None:
        from core.deal_store import get_deal_store
        deal_store = get_deal_store()

    if cache_manager is None:
        from utils.cache import get_cache_manager
        cache_manager = get_cache_manager()

    return DealSignalEngine(deal_store=deal_store, cache_manager=cache_manager)
