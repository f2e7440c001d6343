"""Settlement period reconciliation against the Elexon settlement stack."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from curtailment.core.database import upsert
from curtailment.core.exceptions import SettlementFetchError, ValidationException
from curtailment.models.curtailment_record import CurtailmentRecord
from curtailment.models.mining_calculation import MiningCalculation
from curtailment.models.period_status import PeriodCheckStatus, PeriodStatus
from curtailment.schemas.settlement import CurtailmentRow
from curtailment.services.elexon_client import ElexonClient
from curtailment.services.normalization import curtailed_energy, normalize_candidates
from curtailment.services.unit_reference import UnitReferenceTable

logger = structlog.get_logger()

PERIODS_PER_DAY = 48
COMPARE_TOLERANCE = Decimal("0.01")
SAMPLE_PERIODS = (1, 12, 24, 36, 48)


def validate_period(settlement_period: int) -> None:
    if not 1 <= settlement_period <= PERIODS_PER_DAY:
        raise ValidationException(
            f"Settlement period must be between 1 and {PERIODS_PER_DAY}, got {settlement_period}"
        )


@dataclass
class PeriodResult:
    """Outcome of reconciling one settlement period."""

    settlement_date: date
    settlement_period: int
    records: int = 0
    total_volume: Decimal = Decimal("0")
    total_payment: Decimal = Decimal("0")
    fetch_failed: bool = False

    @property
    def status(self) -> PeriodCheckStatus:
        if self.fetch_failed:
            return PeriodCheckStatus.FETCH_FAILED
        if self.records:
            return PeriodCheckStatus.HAS_DATA
        return PeriodCheckStatus.CONFIRMED_EMPTY


@dataclass
class DayResult:
    """Outcome of reconciling every requested period of a date."""

    settlement_date: date
    periods: List[PeriodResult] = field(default_factory=list)
    failed_periods: List[int] = field(default_factory=list)

    @property
    def records(self) -> int:
        return sum(p.records for p in self.periods)

    @property
    def total_volume(self) -> Decimal:
        return sum((p.total_volume for p in self.periods), Decimal("0"))

    @property
    def total_payment(self) -> Decimal:
        return sum((p.total_payment for p in self.periods), Decimal("0"))

    @property
    def fetch_failed_periods(self) -> List[int]:
        return [p.settlement_period for p in self.periods if p.fetch_failed]

    @property
    def empty_periods(self) -> List[int]:
        return [
            p.settlement_period
            for p in self.periods
            if p.status == PeriodCheckStatus.CONFIRMED_EMPTY
        ]

    @property
    def is_complete(self) -> bool:
        return not self.failed_periods and not self.fetch_failed_periods


@dataclass
class PeriodComparison:
    """Field by field diff of the source against stored records."""

    settlement_date: date
    settlement_period: int
    missing: List[str] = field(default_factory=list)
    mismatched: List[str] = field(default_factory=list)
    identical: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not (self.missing or self.mismatched or self.extra)


def rows_match(row: CurtailmentRow, record: CurtailmentRecord, tolerance: Decimal = COMPARE_TOLERANCE) -> bool:
    """Volume and price within tolerance, flags exactly equal."""
    return (
        abs(Decimal(row.volume) - Decimal(record.volume)) <= tolerance
        and abs(Decimal(row.original_price) - Decimal(record.original_price)) <= tolerance
        and row.so_flag == bool(record.so_flag)
        and row.cadl_flag == bool(record.cadl_flag)
    )


def compare_rows(
    settlement_date: date,
    settlement_period: int,
    source_rows: Iterable[CurtailmentRow],
    stored: Iterable[CurtailmentRecord],
) -> PeriodComparison:
    comparison = PeriodComparison(settlement_date, settlement_period)
    stored_by_unit: Dict[str, CurtailmentRecord] = {r.farm_id: r for r in stored}
    seen = set()

    for row in source_rows:
        seen.add(row.farm_id)
        record = stored_by_unit.get(row.farm_id)
        if record is None:
            comparison.missing.append(row.farm_id)
        elif rows_match(row, record):
            comparison.identical.append(row.farm_id)
        else:
            comparison.mismatched.append(row.farm_id)

    comparison.extra = sorted(uid for uid in stored_by_unit if uid not in seen)
    return comparison


class RecordReconciler:
    """Makes stored curtailment records equal to the source, one period at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: ElexonClient,
        unit_table: UnitReferenceTable,
    ):
        self.session_factory = session_factory
        self.client = client
        self.unit_table = unit_table

    async def fetch_rows(self, settlement_date: date, settlement_period: int) -> List[CurtailmentRow]:
        """Fetch, filter and normalize the source records of one period."""
        candidates = await self.client.fetch_curtailment_candidates(settlement_date, settlement_period)
        return normalize_candidates(candidates, settlement_date, settlement_period, self.unit_table)

    async def reconcile_period(self, settlement_date: date, settlement_period: int) -> PeriodResult:
        """
        Replace the stored records of one period with the source's.

        Delete, insert and the period status write share one transaction.
        Mining calculations of the period are dropped with the records they
        were derived from.
        When the source cannot be read the stored records are left as they
        are and the period is marked ``fetch_failed``. Persistence errors
        propagate to the caller.
        """
        validate_period(settlement_period)
        result = PeriodResult(settlement_date, settlement_period)

        try:
            rows = await self.fetch_rows(settlement_date, settlement_period)
        except SettlementFetchError as e:
            logger.warning(
                "Settlement period treated as empty after fetch failure",
                settlement_date=str(settlement_date),
                settlement_period=settlement_period,
                attempts=e.attempts,
                error=e.message,
            )
            result.fetch_failed = True
            async with self.session_factory() as session:
                async with session.begin():
                    await self._write_status(session, result)
            return result

        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(MiningCalculation).where(
                        MiningCalculation.settlement_date == settlement_date,
                        MiningCalculation.settlement_period == settlement_period,
                    )
                )
                await session.execute(
                    delete(CurtailmentRecord).where(
                        CurtailmentRecord.settlement_date == settlement_date,
                        CurtailmentRecord.settlement_period == settlement_period,
                    )
                )
                if rows:
                    await session.execute(
                        insert(CurtailmentRecord),
                        [row.model_dump() for row in rows],
                    )

                result.records = len(rows)
                result.total_volume = sum((curtailed_energy(r.volume) for r in rows), Decimal("0"))
                result.total_payment = sum((r.payment for r in rows), Decimal("0"))
                await self._write_status(session, result)

        if rows:
            logger.info(
                "Reconciled settlement period",
                settlement_date=str(settlement_date),
                settlement_period=settlement_period,
                records=result.records,
                volume_mwh=float(round(result.total_volume, 2)),
                payment_gbp=float(round(result.total_payment, 2)),
            )
        return result

    async def _write_status(self, session: AsyncSession, result: PeriodResult) -> None:
        row = {
            "settlement_date": result.settlement_date,
            "settlement_period": result.settlement_period,
            "status": result.status,
            "record_count": result.records,
            "checked_at": datetime.now(timezone.utc),
        }
        await session.execute(upsert(session, PeriodStatus, [row], ["settlement_date", "settlement_period"]))

    async def stored_records(
        self, session: AsyncSession, settlement_date: date, settlement_period: int
    ) -> Sequence[CurtailmentRecord]:
        result = await session.execute(
            select(CurtailmentRecord).where(
                CurtailmentRecord.settlement_date == settlement_date,
                CurtailmentRecord.settlement_period == settlement_period,
            )
        )
        return result.scalars().all()

    async def compare_against_store(self, settlement_date: date, settlement_period: int) -> PeriodComparison:
        """Diff the source against stored records without writing anything.

        Raises ``SettlementFetchError`` when the source cannot be read.
        """
        validate_period(settlement_period)
        rows = await self.fetch_rows(settlement_date, settlement_period)

        async with self.session_factory() as session:
            stored = await self.stored_records(session, settlement_date, settlement_period)

        comparison = compare_rows(settlement_date, settlement_period, rows, stored)
        if not comparison.in_sync:
            logger.info(
                "Settlement period differs from source",
                settlement_date=str(settlement_date),
                settlement_period=settlement_period,
                missing=len(comparison.missing),
                mismatched=len(comparison.mismatched),
                extra=len(comparison.extra),
            )
        return comparison

    async def reconcile_day(
        self, settlement_date: date, periods: Optional[Iterable[int]] = None
    ) -> DayResult:
        """Reconcile periods in increasing order, continuing past failed periods."""
        day = DayResult(settlement_date)
        selected = sorted(set(periods)) if periods else range(1, PERIODS_PER_DAY + 1)

        for settlement_period in selected:
            try:
                day.periods.append(await self.reconcile_period(settlement_date, settlement_period))
            except SQLAlchemyError as e:
                logger.error(
                    "Failed to store settlement period",
                    settlement_date=str(settlement_date),
                    settlement_period=settlement_period,
                    error=str(e),
                )
                day.failed_periods.append(settlement_period)

        logger.info(
            "Reconciled settlement date",
            settlement_date=str(settlement_date),
            records=day.records,
            volume_mwh=float(round(day.total_volume, 2)),
            payment_gbp=float(round(day.total_payment, 2)),
            empty_periods=len(day.empty_periods),
            fetch_failed_periods=day.fetch_failed_periods,
            failed_periods=day.failed_periods,
        )
        return day

    async def needs_reprocessing(
        self, settlement_date: date, sample_periods: Sequence[int] = SAMPLE_PERIODS
    ) -> bool:
        """Spot check a few periods against the source."""
        for settlement_period in sample_periods:
            try:
                comparison = await self.compare_against_store(settlement_date, settlement_period)
            except SettlementFetchError:
                return True
            if not comparison.in_sync:
                return True
        return False
