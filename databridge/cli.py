import argparse
import logging
import sys

from databridge.exceptions import DataBridgeError
from databridge.services.orchestrator import SyncRunResult, get_orchestrator

# 로그 설정
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("databridge.cli")


def _report(result: SyncRunResult) -> int:
    if result.skipped:
        logger.warning(f"[CLI] {result.kind} skipped: another sync is running")
        return 1
    logger.info(
        f"[CLI] {result.kind} done. groups ok={result.groups_ok} failed={result.groups_failed}, "
        f"records={result.records}"
    )
    for error in result.errors:
        logger.error(f"[CLI]   {error}")
    return 0 if result.success else 1


def run_sync_command(args) -> int:
    """동기화 명령 실행기"""
    orchestrator = get_orchestrator()
    code = args.marketplace.upper() if args.marketplace else None

    try:
        if args.type == "inventory":
            logger.info(f"[CLI] Starting inventory sync ({code or 'all marketplaces'})")
            if code:
                return _report(orchestrator.sync_inventory_for_marketplace(code))
            return _report(orchestrator.run_inventory_sync())

        if args.type == "sales":
            logger.info(f"[CLI] Starting sales sync ({code or 'all marketplaces'})")
            if code:
                return _report(orchestrator.sync_sales_for_marketplace(code, args.days_back))
            return _report(orchestrator.run_sales_sync())

        if args.type == "backfill":
            if not code:
                logger.error("[CLI] --marketplace is required for backfill")
                return 2
            logger.info(f"[CLI] Starting sales backfill for {code}")
            return _report(orchestrator.backfill_sales(code, args.months))

        if args.type == "refresh":
            counts = orchestrator.refresh_projections()
            logger.info(f"[CLI] Projections refreshed: {counts}")
            return 0 if all(v is not None for v in counts.values()) else 1

        logger.error(f"[CLI] Unsupported sync type: {args.type}")
        return 2

    except DataBridgeError as e:
        logger.error(f"[CLI] {e.message}")
        return 1
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DataBridge SP-API sync CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("run-sync", help="Run synchronization jobs")
    sync_parser.add_argument("--type", choices=["inventory", "sales", "backfill", "refresh"], required=True)
    sync_parser.add_argument("--marketplace", help="Country code (US, DE, ...). Omit to sync every marketplace")
    sync_parser.add_argument("--months", type=int, choices=range(1, 25), metavar="[1-24]",
                             help="Backfill months (default from settings)")
    sync_parser.add_argument("--days-back", type=int, help="Sales window for a single marketplace")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run-sync":
        sys.exit(run_sync_command(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
