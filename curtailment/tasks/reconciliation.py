"""Celery tasks for scheduled and ad-hoc reconciliation."""

import asyncio
from datetime import date
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

import structlog

from curtailment.celery_app import celery_app
from curtailment.core.context import RunContext
from curtailment.services.pipeline import (
    DateOutcome,
    RunOutcome,
    catch_up_date,
    process_date,
    recent_dates,
    run_dates,
)
from curtailment.tasks.base import BaseTask

logger = structlog.get_logger()


def _run(coro):
    # Celery workers are sync, each task gets its own event loop
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def summarize(outcomes: Sequence[DateOutcome]) -> Dict[str, Any]:
    """JSON serialisable result of a run."""
    overall = RunOutcome.combine(o.outcome for o in outcomes)
    return {
        "outcome": overall.name.lower(),
        "dates": [
            {"date": str(o.settlement_date), "outcome": o.outcome.name.lower(), **o.detail}
            for o in outcomes
        ],
    }


async def _reconcile_recent_async(days: Optional[int]) -> Dict[str, Any]:
    context = await RunContext.create()
    try:
        dates = recent_dates(days or context.settings.LOOK_BACK_DAYS)
        outcomes = await run_dates(
            dates, partial(catch_up_date, context), context.settings.MAX_CONCURRENT_DAYS
        )
    finally:
        await context.close()
    return summarize(outcomes)


async def _reconcile_dates_async(dates: List[date], miner_models: Optional[List[str]]) -> Dict[str, Any]:
    context = await RunContext.create()
    try:
        outcomes = await run_dates(
            dates,
            partial(process_date, context, miner_models=miner_models),
            context.settings.MAX_CONCURRENT_DAYS,
        )
    finally:
        await context.close()
    return summarize(outcomes)


@celery_app.task(base=BaseTask, bind=True, name="curtailment.tasks.reconciliation.reconcile_recent")
def reconcile_recent(self, days: Optional[int] = None) -> Dict[str, Any]:
    """Catch up on the last ``days`` settlement dates (``LOOK_BACK_DAYS`` by default)."""
    logger.info("Starting recent reconciliation", days=days)
    return _run(_reconcile_recent_async(days))


@celery_app.task(base=BaseTask, bind=True, name="curtailment.tasks.reconciliation.reconcile_date")
def reconcile_date(
    self, settlement_date: str, miner_models: Optional[List[str]] = None
) -> Dict[str, Any]:
    """Fully reprocess one settlement date given as ``YYYY-MM-DD``."""
    logger.info("Starting date reconciliation", settlement_date=settlement_date)
    return _run(_reconcile_dates_async([date.fromisoformat(settlement_date)], miner_models))
