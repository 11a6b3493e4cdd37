import sys
import json
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import settings
from core.deal_store import InMemoryDealStore
from core.exceptions import DealNotFoundError, DealSignalError
from core.signal_engine import DealSignalEngine, parse_records
from models.schemas import ActionLogEntry, Deal, EmailRecord, StageHistoryEntry
from utils.cache import CacheManager
from utils.helpers import to_utc_datetime
from utils.logging_config import setup_logging

def analyze_without_persisting(engine: DealSignalEngine, store: InMemoryDealStore, tenant_id: str, deal_id: str, now):
    """Run the analysis on the stored records but leave the deal untouched"""

    raw_deal = store.get_deal(tenant_id, deal_id)
    if raw_deal is None:
        raise DealNotFoundError(tenant_id, deal_id)

    limits = engine.fetch_limits
    return engine.analyze_records(
        Deal.model_validate(raw_deal),
        parse_records(ActionLogEntry, store.list_action_logs(tenant_id, deal_id, limits['action_logs']), 'action_logs'),
        parse_records(EmailRecord, store.list_emails(tenant_id, deal_id, limits['emails']), 'emails'),
        parse_records(StageHistoryEntry, store.list_stage_history(tenant_id, deal_id, limits['stage_history']), 'stage_history'),
        now=now
    )

def main(argv=None):
    """Generate a deal's AI summary from a JSON fixture"""

    parser = argparse.ArgumentParser(description='Generate the AI summary for a deal from a JSON data file')
    parser.add_argument('--data', required=True, help='JSON file with tenants, deals, ai_logs, emails and stage_history')
    parser.add_argument('--tenant', required=True, help='Tenant ID')
    parser.add_argument('--deal', required=True, help='Deal ID')
    parser.add_argument('--no-persist', action='store_true', help='Analyze only, do not write aiSummary back to the deal')
    parser.add_argument('--now', help='Analysis time as ISO-8601 (default: current UTC time)')
    parser.add_argument('--output', help='Write the summary JSON to this file instead of stdout')

    args = parser.parse_args(argv)

    logger = setup_logging(level=settings.LOG_LEVEL)

    now = None
    if args.now:
        now = to_utc_datetime(args.now)
        if now is None:
            print(f"Invalid --now value: {args.now}")
            return 2

    try:
        store = InMemoryDealStore()
        store.load_from_file(args.data)

        engine = DealSignalEngine(deal_store=store, cache_manager=CacheManager(enabled=False))

        if args.no_persist:
            ai_summary = analyze_without_persisting(engine, store, args.tenant, args.deal, now)
        else:
            ai_summary = engine.generate_summary(args.tenant, args.deal, now=now)

        output = json.dumps({"aiSummary": ai_summary.model_dump(mode="json", by_alias=True)}, indent=2)

        if args.output:
            Path(args.output).write_text(output, encoding='utf-8')
            logger.info(f"AI summary written to {args.output}")
        else:
            print(output)

        return 0

    except DealNotFoundError as e:
        print(f"{e}: {args.deal} (tenant {args.tenant})")
        return 1

    except (DealSignalError, OSError, ValueError) as e:
        print(f"Summary generation failed: {e}")
        return 1


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
