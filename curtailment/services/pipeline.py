"""Per date processing shared by the CLI and the Celery tasks."""

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from curtailment.core.context import RunContext
from curtailment.core.exceptions import BaseCustomException, ValidationException
from curtailment.services.reconciler import DayResult

logger = structlog.get_logger()


class RunOutcome(int, enum.Enum):
    """Outcome of a run, doubling as the process exit code."""

    COMPLETE = 0
    FAILED = 1
    PARTIAL = 2

    @classmethod
    def combine(cls, outcomes: Iterable["RunOutcome"]) -> "RunOutcome":
        outcomes = list(outcomes)
        if not outcomes or all(o == cls.COMPLETE for o in outcomes):
            return cls.COMPLETE
        if all(o == cls.FAILED for o in outcomes):
            return cls.FAILED
        return cls.PARTIAL


@dataclass
class DateOutcome:
    settlement_date: date
    outcome: RunOutcome
    detail: Dict[str, Any] = field(default_factory=dict)


def date_range(start: date, end: date) -> List[date]:
    """Every date from ``start`` to ``end`` inclusive."""
    if end < start:
        raise ValidationException(f"End date {end} is before start date {start}")
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def recent_dates(look_back_days: int, today: Optional[date] = None) -> List[date]:
    """The ``look_back_days`` dates before today, oldest first."""
    today = today or date.today()
    return date_range(today - timedelta(days=look_back_days), today - timedelta(days=1))


def day_outcome(day: DayResult) -> RunOutcome:
    if day.is_complete:
        return RunOutcome.COMPLETE
    attempted = len(day.periods) + len(day.failed_periods)
    bad = len(day.failed_periods) + len(day.fetch_failed_periods)
    return RunOutcome.FAILED if bad >= attempted else RunOutcome.PARTIAL


async def process_date(
    context: RunContext,
    settlement_date: date,
    miner_models: Optional[Sequence[str]] = None,
    use_difficulty_source: bool = True,
    periods: Optional[Iterable[int]] = None,
) -> DateOutcome:
    """Reconcile a date, recalculate its mining values and refresh the summaries."""
    day = await context.reconciler().reconcile_day(settlement_date, periods)
    calculations = await context.calculator(use_difficulty_source).calculate_all_models(
        settlement_date, miner_models
    )
    await context.summaries().refresh_cascade(settlement_date)

    return DateOutcome(
        settlement_date,
        day_outcome(day),
        {
            "records": day.records,
            "volume_mwh": float(round(day.total_volume, 2)),
            "payment_gbp": float(round(day.total_payment, 2)),
            "fetch_failed_periods": day.fetch_failed_periods,
            "failed_periods": day.failed_periods,
            "bitcoin": {model: float(round(c.total_bitcoin, 8)) for model, c in calculations.items()},
        },
    )


async def calculate_date(
    context: RunContext,
    settlement_date: date,
    miner_models: Optional[Sequence[str]] = None,
    use_difficulty_source: bool = True,
) -> DateOutcome:
    """Recalculate mining values from stored records and refresh the summaries."""
    calculations = await context.calculator(use_difficulty_source).calculate_all_models(
        settlement_date, miner_models
    )
    await context.summaries().refresh_cascade(settlement_date)
    return DateOutcome(
        settlement_date,
        RunOutcome.COMPLETE,
        {"bitcoin": {model: float(round(c.total_bitcoin, 8)) for model, c in calculations.items()}},
    )


async def refresh_date(context: RunContext, settlement_date: date) -> DateOutcome:
    day, _, _ = await context.summaries().refresh_cascade(settlement_date)
    return DateOutcome(
        settlement_date,
        RunOutcome.COMPLETE,
        {
            "energy_mwh": float(round(day.total_curtailed_energy, 2)),
            "payment_gbp": float(round(day.total_payment, 2)),
        },
    )


async def verify_date(
    context: RunContext,
    settlement_date: date,
    fix: bool = False,
    miner_models: Optional[Sequence[str]] = None,
    use_difficulty_source: bool = True,
) -> DateOutcome:
    """
    Check a date for gaps and spot check it against the source.

    With ``fix`` a date that is incomplete or out of sync is processed again.
    """
    report = await context.completeness().check_date(settlement_date)
    stale = await context.reconciler().needs_reprocessing(settlement_date)

    if (stale or not report.is_complete) and fix:
        logger.info(
            "Reprocessing settlement date",
            settlement_date=str(settlement_date),
            stale=stale,
            is_complete=report.is_complete,
        )
        return await process_date(context, settlement_date, miner_models, use_difficulty_source)

    in_order = report.is_complete and not stale
    return DateOutcome(
        settlement_date,
        RunOutcome.COMPLETE if in_order else RunOutcome.PARTIAL,
        {
            "stale": stale,
            "is_complete": report.is_complete,
            "periods_unchecked": len(report.periods_unchecked),
            "periods_failed": report.periods_failed,
            "duplicate_keys": report.duplicate_keys,
            "summary_matches_records": report.summary_matches_records,
        },
    )


async def catch_up_date(
    context: RunContext,
    settlement_date: date,
    miner_models: Optional[Sequence[str]] = None,
    use_difficulty_source: bool = True,
) -> DateOutcome:
    """Process a recent date only where it is stale or has unchecked periods."""
    if await context.reconciler().needs_reprocessing(settlement_date):
        return await process_date(context, settlement_date, miner_models, use_difficulty_source)

    missing = await context.completeness().missing_periods(settlement_date)
    if missing:
        return await process_date(
            context, settlement_date, miner_models, use_difficulty_source, periods=missing
        )

    logger.info("Settlement date up to date", settlement_date=str(settlement_date))
    return DateOutcome(settlement_date, RunOutcome.COMPLETE, {"skipped": True})


async def run_dates(
    dates: Sequence[date],
    handler: Callable[[date], Awaitable[DateOutcome]],
    concurrency: int = 3,
) -> List[DateOutcome]:
    """
    Run ``handler`` for every date with at most ``concurrency`` dates in flight.

    A date whose handler raises a storage or domain error is reported as
    failed and the remaining dates still run.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def guarded(settlement_date: date) -> DateOutcome:
        async with semaphore:
            try:
                return await handler(settlement_date)
            except (SQLAlchemyError, BaseCustomException) as e:
                logger.error(
                    "Settlement date failed",
                    settlement_date=str(settlement_date),
                    error=str(e),
                    exc_info=True,
                )
                return DateOutcome(settlement_date, RunOutcome.FAILED, {"error": str(e)})

    outcomes = await asyncio.gather(*(guarded(d) for d in dates))

    overall = RunOutcome.combine(o.outcome for o in outcomes)
    logger.info(
        "Run finished",
        dates=len(outcomes),
        outcome=overall.name.lower(),
        partial=[str(o.settlement_date) for o in outcomes if o.outcome == RunOutcome.PARTIAL],
        failed=[str(o.settlement_date) for o in outcomes if o.outcome == RunOutcome.FAILED],
    )
    return list(outcomes)
