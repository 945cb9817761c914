"""Command line shell around the rent cycle engine.

    python -m rentcycle.cli run-cycle --date 2025-05-01
    python -m rentcycle.cli mark-paid 42 --date 2025-05-03 --method e-transfer --amount 1500
    python -m rentcycle.cli retry-failed
    python -m rentcycle.cli rent-status
    python -m rentcycle.cli scheduler
"""

import argparse
import json
import sys
from datetime import date

from rentcycle.config import Settings
from rentcycle.cycle import RentCycleEngine
from rentcycle.errors import RentCycleError
from rentcycle.logging_config import configure_logging, get_logger
from rentcycle.reports.rent_status import check_rent_status
from rentcycle.scheduler.scheduler import business_date, main as scheduler_main

logger = get_logger(__name__)


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rentcycle", description="Rent collection cycle")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run-cycle", help="Run the daily rent cycle once")
    run.add_argument("--date", type=_date, default=None, help="Business date (default: today)")

    paid = commands.add_parser("mark-paid", help="Record a payment against an obligation")
    paid.add_argument("obligation_id", type=int)
    paid.add_argument("--date", type=_date, required=True)
    paid.add_argument("--method", default="e-transfer")
    paid.add_argument("--amount", required=True)

    commands.add_parser("retry-failed", help="Re-send every failed notification")

    status = commands.add_parser("rent-status", help="List open obligations")
    status.add_argument("--date", type=_date, default=None)

    commands.add_parser("scheduler", help="Run the daily scheduler")
    return parser


def run_cycle(engine: RentCycleEngine, today: date) -> int:
    summary = engine.run_daily_cycle(today)
    print(json.dumps(summary.as_dict(), indent=2, default=str))
    if summary.failures and not summary.all_failed:
        logger.warning(f"Rent cycle completed with {len(summary.failures)} failures")
    return summary.exit_code


def retry_failed(engine: RentCycleEngine, today: date) -> int:
    records = engine.dispatcher.retry_failed(today=today)
    resent = sum(1 for r in records if r.status != "failed")
    print(json.dumps({"retried": len(records), "resent": resent}))
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.command == "scheduler":
        scheduler_main()
        return 0

    engine = RentCycleEngine.from_settings(settings)
    today = getattr(args, "date", None) or business_date()
    try:
        if args.command == "run-cycle":
            return run_cycle(engine, today)
        if args.command == "mark-paid":
            obligation = engine.state_machine.mark_paid(
                args.obligation_id, args.date, args.method, args.amount
            )
            print(json.dumps({"id": obligation.id, "status": obligation.status}))
            return 0
        if args.command == "retry-failed":
            return retry_failed(engine, today)
        if args.command == "rent-status":
            print(check_rent_status(engine.obligation_store, today).to_string(index=False))
            return 0
    except RentCycleError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
