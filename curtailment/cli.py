"""
Command line driver.

Usage:
    curtailment reconcile --date 2025-03-01
    curtailment reconcile --start 2025-03-01 --end 2025-03-31 --concurrency 3
    curtailment calculate --date 2025-03-01 --miner-model S19J_PRO
    curtailment refresh --start 2025-03-01 --end 2025-03-31
    curtailment verify --date 2025-03-01 --fix
    curtailment recent --days 7
    curtailment refresh-units --output data/bmu_mapping.json
"""

import argparse
import asyncio
import sys
from datetime import date
from functools import partial
from typing import List, Optional

import structlog

from curtailment.core.config import Settings, get_settings
from curtailment.core.context import RunContext
from curtailment.core.exceptions import BaseCustomException, ConfigurationException
from curtailment.core.logging_config import configure_logging
from curtailment.services.elexon_client import ElexonClient
from curtailment.services.pipeline import (
    RunOutcome,
    calculate_date,
    catch_up_date,
    date_range,
    process_date,
    recent_dates,
    refresh_date,
    run_dates,
    verify_date,
)
from curtailment.services.unit_reference import UnitReferenceTable

logger = structlog.get_logger()


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def _add_date_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--date", type=_parse_date, help="Single settlement date (YYYY-MM-DD)")
    parser.add_argument("--start", type=_parse_date, help="First settlement date of a range")
    parser.add_argument("--end", type=_parse_date, help="Last settlement date of a range (inclusive)")


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--miner-model",
        action="append",
        dest="miner_models",
        help="Only calculate for this miner model (repeatable)",
    )
    parser.add_argument(
        "--skip-difficulty",
        action="store_true",
        help="Do not query the difficulty source, use the configured fallback",
    )
    parser.add_argument("--concurrency", type=int, help="Dates processed in parallel")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="curtailment",
        description="Reconcile curtailment records and compute their mining value",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Reconcile, calculate and refresh dates")
    _add_date_arguments(reconcile)
    _add_run_arguments(reconcile)
    reconcile.add_argument(
        "--period", type=int, action="append", dest="periods", help="Only this settlement period (repeatable)"
    )

    calculate = subparsers.add_parser("calculate", help="Recalculate mining values from stored records")
    _add_date_arguments(calculate)
    _add_run_arguments(calculate)

    refresh = subparsers.add_parser("refresh", help="Refresh daily, monthly and yearly summaries")
    _add_date_arguments(refresh)
    refresh.add_argument("--concurrency", type=int, help="Dates processed in parallel")

    verify = subparsers.add_parser("verify", help="Check dates for gaps and drift from the source")
    _add_date_arguments(verify)
    _add_run_arguments(verify)
    verify.add_argument("--fix", action="store_true", help="Reprocess dates that are not in order")

    recent = subparsers.add_parser("recent", help="Catch up on the most recent dates")
    _add_run_arguments(recent)
    recent.add_argument("--days", type=int, help="Number of days to look back")

    units = subparsers.add_parser("refresh-units", help="Download the unit reference table")
    units.add_argument("--output", help="Where to write the table (defaults to UNIT_REFERENCE_PATH)")

    return parser


def resolve_dates(args: argparse.Namespace, parser: argparse.ArgumentParser) -> List[date]:
    if args.date and (args.start or args.end):
        parser.error("--date cannot be combined with --start/--end")
    if args.date:
        return [args.date]
    if args.start and args.end:
        return date_range(args.start, args.end)
    parser.error("either --date or both --start and --end are required")


def _validate_miner_models(args: argparse.Namespace, settings: Settings, parser: argparse.ArgumentParser) -> None:
    unknown = sorted(set(getattr(args, "miner_models", None) or []) - set(settings.MINING.miner_models))
    if unknown:
        parser.error(f"unknown miner model(s) {unknown}, expected one of {settings.MINING.miner_models}")


async def refresh_units(settings: Settings, output: Optional[str]) -> RunOutcome:
    """Download the provider's unit reference list and replace the local table."""
    path = output or settings.UNIT_REFERENCE_PATH
    units = await ElexonClient.from_settings(settings).fetch_bm_units()
    if not units:
        logger.error("Unit reference download returned no units, keeping existing table", path=path)
        return RunOutcome.FAILED

    written = UnitReferenceTable.save(units, path)
    logger.info("Unit reference table refreshed", path=path, units=written)
    return RunOutcome.COMPLETE


async def run(args: argparse.Namespace, dates: List[date], settings: Settings) -> RunOutcome:
    if args.command == "refresh-units":
        return await refresh_units(settings, args.output)

    context = await RunContext.create(settings)
    try:
        miner_models = getattr(args, "miner_models", None)
        use_difficulty = not getattr(args, "skip_difficulty", False)

        if args.command == "reconcile":
            handler = partial(
                process_date,
                context,
                miner_models=miner_models,
                use_difficulty_source=use_difficulty,
                periods=args.periods,
            )
        elif args.command == "calculate":
            handler = partial(
                calculate_date, context, miner_models=miner_models, use_difficulty_source=use_difficulty
            )
        elif args.command == "refresh":
            handler = partial(refresh_date, context)
        elif args.command == "verify":
            handler = partial(
                verify_date,
                context,
                fix=args.fix,
                miner_models=miner_models,
                use_difficulty_source=use_difficulty,
            )
        else:
            handler = partial(
                catch_up_date, context, miner_models=miner_models, use_difficulty_source=use_difficulty
            )

        logger.info(
            "Starting run",
            command=args.command,
            first_date=str(dates[0]),
            last_date=str(dates[-1]),
            dates=len(dates),
        )
        outcomes = await run_dates(dates, handler, args.concurrency or settings.MAX_CONCURRENT_DAYS)
        return RunOutcome.combine(o.outcome for o in outcomes)
    finally:
        await context.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    try:
        if args.command == "recent":
            dates = recent_dates(args.days or settings.LOOK_BACK_DAYS)
        elif args.command == "refresh-units":
            dates = []
        else:
            dates = resolve_dates(args, parser)
        _validate_miner_models(args, settings, parser)

        outcome = asyncio.run(run(args, dates, settings))
    except ConfigurationException as e:
        logger.error("Configuration error", error=e.message)
        return int(RunOutcome.FAILED)
    except BaseCustomException as e:
        logger.error("Run aborted", error=e.message)
        return int(RunOutcome.FAILED)

    return int(outcome)


if __name__ == "__main__":
    sys.exit(main())
