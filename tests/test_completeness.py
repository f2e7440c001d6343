"""Tests for completeness checks."""

from datetime import date
from decimal import Decimal

from sqlalchemy import delete, update

from conftest import acceptance
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.models.summary import DailySummary
from curtailment.services.completeness import CompletenessService

DAY = date(2024, 5, 1)


async def process(stack, reconciler, calculator, summaries, periods=None):
    await reconciler.reconcile_day(DAY, periods)
    await calculator.calculate_all_models(DAY)
    await summaries.refresh_cascade(DAY)


class TestCheckDate:
    """Tests for CompletenessService.check_date."""

    async def test_unprocessed_date_is_incomplete(self, session_factory, mining_config):
        service = CompletenessService(session_factory, mining_config.miner_models)

        report = await service.check_date(DAY)

        assert report.periods_unchecked == list(range(1, 49))
        assert report.record_count == 0
        assert report.summary_matches_records
        assert not report.is_complete

    async def test_fully_processed_date_is_complete(
        self, stack, reconciler, calculator, summaries, session_factory, mining_config
    ):
        stack.set(
            "bid",
            DAY,
            5,
            [acceptance("T_WINDA-1", -100, 20), acceptance("T_WINDB-1", -50, 30)],
        )
        await process(stack, reconciler, calculator, summaries)
        service = CompletenessService(session_factory, mining_config.miner_models)

        report = await service.check_date(DAY)

        assert report.periods_with_records == [5]
        assert report.periods_unchecked == []
        assert report.periods_failed == []
        assert len(report.periods_confirmed_empty) == 47
        assert report.record_count == 2
        assert report.duplicate_keys == 0
        assert all(c.expected == 2 and c.actual == 2 for c in report.calculations)
        assert report.summary_matches_records
        assert report.is_complete

    async def test_missing_calculations_make_date_incomplete(
        self, stack, reconciler, calculator, summaries, session_factory, mining_config
    ):
        stack.set("bid", DAY, 5, [acceptance("T_WINDA-1", -100, 20)])
        await process(stack, reconciler, calculator, summaries)
        async with session_factory() as session:
            await session.execute(delete(MiningCalculation).where(MiningCalculation.miner_model == "S9"))
            await session.commit()

        report = await CompletenessService(session_factory, mining_config.miner_models).check_date(DAY)

        s9 = next(c for c in report.calculations if c.miner_model == "S9")
        assert (s9.expected, s9.actual) == (1, 0)
        assert not report.is_complete

    async def test_stale_summary_is_detected(
        self, stack, reconciler, calculator, summaries, session_factory, mining_config
    ):
        stack.set("bid", DAY, 5, [acceptance("T_WINDA-1", -100, 20)])
        await process(stack, reconciler, calculator, summaries)
        async with session_factory() as session:
            await session.execute(
                update(DailySummary)
                .where(DailySummary.summary_date == DAY)
                .values(total_payment=Decimal("1"))
            )
            await session.commit()

        report = await CompletenessService(session_factory, mining_config.miner_models).check_date(DAY)

        assert not report.summary_matches_records
        assert not report.is_complete


class TestMissingPeriods:
    async def test_unchecked_and_failed_periods(self, stack, reconciler, session_factory):
        stack.fail(DAY, 3)
        await reconciler.reconcile_day(DAY, [1, 2, 3])
        service = CompletenessService(session_factory)

        missing = await service.missing_periods(DAY)

        assert missing == [3] + list(range(4, 49))
