"""Gap and consistency queries over the stored tables."""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from curtailment.models.curtailment_record import CurtailmentRecord
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.models.period_status import PeriodCheckStatus, PeriodStatus
from curtailment.models.summary import DailySummary
from curtailment.schemas.summary import CompletenessResponse, ModelCompleteness
from curtailment.services.reconciler import COMPARE_TOLERANCE, PERIODS_PER_DAY

logger = structlog.get_logger()


class CompletenessService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        miner_models: Iterable[str] = (),
    ):
        self.session_factory = session_factory
        self.miner_models = list(miner_models)

    async def period_statuses(self, session: AsyncSession, settlement_date: date) -> Dict[int, PeriodCheckStatus]:
        """Status of every period of the date; periods without a row are unchecked."""
        result = await session.execute(
            select(PeriodStatus.settlement_period, PeriodStatus.status).where(
                PeriodStatus.settlement_date == settlement_date
            )
        )
        statuses = {period: PeriodCheckStatus.UNCHECKED for period in range(1, PERIODS_PER_DAY + 1)}
        statuses.update({period: PeriodCheckStatus(status) for period, status in result.all()})
        return statuses

    async def missing_periods(self, settlement_date: date) -> List[int]:
        """Periods never checked or whose last fetch failed."""
        async with self.session_factory() as session:
            statuses = await self.period_statuses(session, settlement_date)
        return [
            period
            for period, status in sorted(statuses.items())
            if status in (PeriodCheckStatus.UNCHECKED, PeriodCheckStatus.FETCH_FAILED)
        ]

    async def check_date(self, settlement_date: date) -> CompletenessResponse:
        """
        Report what is stored for a date and what is missing.

        A date is complete when every period was checked successfully, every
        record with non-zero volume has a calculation for every miner model,
        there are no duplicate natural keys and the daily summary equals the
        record totals.
        """
        async with self.session_factory() as session:
            statuses = await self.period_statuses(session, settlement_date)

            periods_result = await session.execute(
                select(CurtailmentRecord.settlement_period)
                .where(CurtailmentRecord.settlement_date == settlement_date)
                .distinct()
                .order_by(CurtailmentRecord.settlement_period)
            )
            periods_with_records = list(periods_result.scalars().all())

            totals_result = await session.execute(
                select(
                    func.count(CurtailmentRecord.id),
                    func.coalesce(func.sum(func.abs(CurtailmentRecord.volume)), 0),
                    func.coalesce(func.sum(CurtailmentRecord.payment), 0),
                ).where(CurtailmentRecord.settlement_date == settlement_date)
            )
            record_count, energy, payment = totals_result.one()

            expected_result = await session.execute(
                select(func.count())
                .select_from(
                    select(CurtailmentRecord.settlement_period, CurtailmentRecord.farm_id)
                    .where(
                        CurtailmentRecord.settlement_date == settlement_date,
                        CurtailmentRecord.volume != 0,
                    )
                    .distinct()
                    .subquery()
                )
            )
            expected = expected_result.scalar_one()

            actual_result = await session.execute(
                select(MiningCalculation.miner_model, func.count(MiningCalculation.id))
                .where(MiningCalculation.settlement_date == settlement_date)
                .group_by(MiningCalculation.miner_model)
            )
            actual: Dict[str, int] = dict(actual_result.all())

            duplicates_result = await session.execute(
                select(func.count()).select_from(
                    select(CurtailmentRecord.settlement_period, CurtailmentRecord.farm_id)
                    .where(CurtailmentRecord.settlement_date == settlement_date)
                    .group_by(CurtailmentRecord.settlement_period, CurtailmentRecord.farm_id)
                    .having(func.count() > 1)
                    .subquery()
                )
            )
            duplicate_keys = duplicates_result.scalar_one()

            summary = await session.get(DailySummary, settlement_date)

        energy = Decimal(str(energy))
        payment = Decimal(str(payment))
        if summary is None:
            summary_matches = record_count == 0
        else:
            summary_matches = (
                abs(Decimal(summary.total_curtailed_energy) - energy) <= COMPARE_TOLERANCE
                and abs(Decimal(summary.total_payment) - payment) <= COMPARE_TOLERANCE
            )

        models = sorted(set(self.miner_models) | set(actual))
        calculations = [
            ModelCompleteness(miner_model=model, expected=expected, actual=actual.get(model, 0))
            for model in models
        ]

        def with_status(*wanted: PeriodCheckStatus) -> List[int]:
            return [p for p, s in sorted(statuses.items()) if s in wanted]

        unchecked = with_status(PeriodCheckStatus.UNCHECKED)
        failed = with_status(PeriodCheckStatus.FETCH_FAILED)

        report = CompletenessResponse(
            settlement_date=settlement_date,
            periods_with_records=periods_with_records,
            periods_unchecked=unchecked,
            periods_failed=failed,
            periods_confirmed_empty=with_status(PeriodCheckStatus.CONFIRMED_EMPTY),
            record_count=record_count,
            duplicate_keys=duplicate_keys,
            calculations=calculations,
            summary_matches_records=summary_matches,
            is_complete=(
                not unchecked
                and not failed
                and duplicate_keys == 0
                and all(c.complete for c in calculations)
                and summary_matches
            ),
        )

        logger.info(
            "Checked settlement date completeness",
            settlement_date=str(settlement_date),
            records=record_count,
            unchecked=len(unchecked),
            failed=len(failed),
            is_complete=report.is_complete,
        )
        return report
