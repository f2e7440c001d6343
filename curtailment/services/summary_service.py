"""Daily, monthly and yearly summary cascade."""

import calendar
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from curtailment.core.database import upsert
from curtailment.core.exceptions import ValidationException
from curtailment.models.curtailment_record import CurtailmentRecord
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.models.summary import (
    DailySummary,
    MiningDailySummary,
    MiningMonthlySummary,
    MiningYearlySummary,
    MonthlySummary,
    YearlySummary,
)
from curtailment.schemas.summary import SummaryTotals

logger = structlog.get_logger()


def _dec(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def month_bounds(year_month: str) -> Tuple[date, date]:
    """First and last day of a ``YYYY-MM`` key."""
    try:
        start = datetime.strptime(year_month, "%Y-%m").date()
    except ValueError:
        raise ValidationException(f"Invalid year-month {year_month!r}, expected YYYY-MM") from None
    last_day = calendar.monthrange(start.year, start.month)[1]
    return start, start.replace(day=last_day)


def year_bounds(year: str) -> Tuple[date, date]:
    if len(year) != 4 or not year.isdigit():
        raise ValidationException(f"Invalid year {year!r}, expected YYYY")
    return date(int(year), 1, 1), date(int(year), 12, 31)


class SummaryService:
    """Keeps the summary tables equal to the sums of the rows beneath them.

    Months and years are summed from the daily summary tables, so a day must
    be refreshed (and committed) before its month and year.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        miner_models: Iterable[str] = (),
    ):
        self.session_factory = session_factory
        self.miner_models = list(miner_models)

    def _with_configured_models(self, totals: Dict[str, Decimal]) -> Dict[str, Decimal]:
        merged = {model: Decimal("0") for model in self.miner_models}
        merged.update(totals)
        return merged

    async def refresh_day(self, summary_date: date) -> SummaryTotals:
        """Recompute the daily totals and per model coins from period rows."""
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    func.coalesce(func.sum(func.abs(CurtailmentRecord.volume)), 0),
                    func.coalesce(func.sum(CurtailmentRecord.payment), 0),
                ).where(CurtailmentRecord.settlement_date == summary_date)
            )
            energy, payment = result.one()

            mining = await session.execute(
                select(MiningCalculation.miner_model, func.sum(MiningCalculation.bitcoin_mined_exact))
                .where(MiningCalculation.settlement_date == summary_date)
                .group_by(MiningCalculation.miner_model)
            )
            bitcoin = self._with_configured_models({model: _dec(total) for model, total in mining.all()})

            totals = SummaryTotals(
                period_key=summary_date.isoformat(),
                total_curtailed_energy=_dec(energy),
                total_payment=_dec(payment),
                bitcoin_mined=bitcoin,
                last_updated=now,
            )

            await session.execute(
                upsert(
                    session,
                    DailySummary,
                    [
                        {
                            "summary_date": summary_date,
                            "total_curtailed_energy": totals.total_curtailed_energy,
                            "total_payment": totals.total_payment,
                            "last_updated": now,
                        }
                    ],
                    ["summary_date"],
                )
            )
            if bitcoin:
                await session.execute(
                    upsert(
                        session,
                        MiningDailySummary,
                        [
                            {"summary_date": summary_date, "miner_model": model, "bitcoin_mined": total, "updated_at": now}
                            for model, total in bitcoin.items()
                        ],
                        ["summary_date", "miner_model"],
                    )
                )
            await session.commit()

        logger.info(
            "Refreshed daily summary",
            summary_date=str(summary_date),
            energy_mwh=float(round(totals.total_curtailed_energy, 2)),
            payment_gbp=float(round(totals.total_payment, 2)),
        )
        return totals

    async def _refresh_range(
        self,
        key: str,
        start: date,
        end: date,
        summary_model,
        summary_key: str,
        mining_model,
    ) -> SummaryTotals:
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    func.coalesce(func.sum(DailySummary.total_curtailed_energy), 0),
                    func.coalesce(func.sum(DailySummary.total_payment), 0),
                ).where(DailySummary.summary_date.between(start, end))
            )
            energy, payment = result.one()

            mining = await session.execute(
                select(MiningDailySummary.miner_model, func.sum(MiningDailySummary.bitcoin_mined))
                .where(MiningDailySummary.summary_date.between(start, end))
                .group_by(MiningDailySummary.miner_model)
            )
            bitcoin = self._with_configured_models({model: _dec(total) for model, total in mining.all()})

            totals = SummaryTotals(
                period_key=key,
                total_curtailed_energy=_dec(energy),
                total_payment=_dec(payment),
                bitcoin_mined=bitcoin,
                last_updated=now,
            )

            await session.execute(
                upsert(
                    session,
                    summary_model,
                    [
                        {
                            summary_key: key,
                            "total_curtailed_energy": totals.total_curtailed_energy,
                            "total_payment": totals.total_payment,
                            "last_updated": now,
                        }
                    ],
                    [summary_key],
                )
            )
            if bitcoin:
                await session.execute(
                    upsert(
                        session,
                        mining_model,
                        [
                            {summary_key: key, "miner_model": model, "bitcoin_mined": total, "updated_at": now}
                            for model, total in bitcoin.items()
                        ],
                        [summary_key, "miner_model"],
                    )
                )
            await session.commit()

        logger.info(
            "Refreshed summary",
            key=key,
            energy_mwh=float(round(totals.total_curtailed_energy, 2)),
            payment_gbp=float(round(totals.total_payment, 2)),
        )
        return totals

    async def refresh_month(self, year_month: str) -> SummaryTotals:
        start, end = month_bounds(year_month)
        return await self._refresh_range(
            year_month, start, end, MonthlySummary, "year_month", MiningMonthlySummary
        )

    async def refresh_year(self, year: str) -> SummaryTotals:
        start, end = year_bounds(year)
        return await self._refresh_range(year, start, end, YearlySummary, "year", MiningYearlySummary)

    async def refresh_cascade(self, summary_date: date) -> Tuple[SummaryTotals, SummaryTotals, SummaryTotals]:
        """Day, then month, then year."""
        day = await self.refresh_day(summary_date)
        month = await self.refresh_month(summary_date.strftime("%Y-%m"))
        year = await self.refresh_year(str(summary_date.year))
        return day, month, year

    async def _mining_totals(self, session: AsyncSession, mining_model, key_column, key) -> Dict[str, Decimal]:
        result = await session.execute(
            select(mining_model.miner_model, mining_model.bitcoin_mined).where(key_column == key)
        )
        return {model: _dec(total) for model, total in result.all()}

    async def get_daily(self, summary_date: date) -> Optional[SummaryTotals]:
        async with self.session_factory() as session:
            summary = await session.get(DailySummary, summary_date)
            if summary is None:
                return None
            bitcoin = await self._mining_totals(
                session, MiningDailySummary, MiningDailySummary.summary_date, summary_date
            )
        return SummaryTotals(
            period_key=summary_date.isoformat(),
            total_curtailed_energy=_dec(summary.total_curtailed_energy),
            total_payment=_dec(summary.total_payment),
            bitcoin_mined=bitcoin,
            last_updated=summary.last_updated,
        )

    async def get_monthly(self, year_month: str) -> Optional[SummaryTotals]:
        month_bounds(year_month)
        async with self.session_factory() as session:
            summary = await session.get(MonthlySummary, year_month)
            if summary is None:
                return None
            bitcoin = await self._mining_totals(
                session, MiningMonthlySummary, MiningMonthlySummary.year_month, year_month
            )
        return SummaryTotals(
            period_key=year_month,
            total_curtailed_energy=_dec(summary.total_curtailed_energy),
            total_payment=_dec(summary.total_payment),
            bitcoin_mined=bitcoin,
            last_updated=summary.last_updated,
        )

    async def get_yearly(self, year: str) -> Optional[SummaryTotals]:
        year_bounds(year)
        async with self.session_factory() as session:
            summary = await session.get(YearlySummary, year)
            if summary is None:
                return None
            bitcoin = await self._mining_totals(
                session, MiningYearlySummary, MiningYearlySummary.year, year
            )
        return SummaryTotals(
            period_key=year,
            total_curtailed_energy=_dec(summary.total_curtailed_energy),
            total_payment=_dec(summary.total_payment),
            bitcoin_mined=bitcoin,
            last_updated=summary.last_updated,
        )
