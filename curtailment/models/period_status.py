"""Per settlement period check status."""

import enum
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Enum, Integer, PrimaryKeyConstraint
from sqlalchemy.orm import Mapped, mapped_column

from curtailment.core.database import Base


class PeriodCheckStatus(str, enum.Enum):
    """Outcome of the last reconcile of a settlement period."""

    UNCHECKED = "unchecked"
    HAS_DATA = "has_data"
    CONFIRMED_EMPTY = "confirmed_empty"
    FETCH_FAILED = "fetch_failed"


class PeriodStatus(Base):
    """Whether a period was checked and what the source said.

    A missing row is equivalent to ``UNCHECKED``.
    """

    __tablename__ = "settlement_period_status"

    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    settlement_period: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PeriodCheckStatus] = mapped_column(
        Enum(PeriodCheckStatus, name="period_check_status", values_callable=lambda e: [m.value for m in e]),
        default=PeriodCheckStatus.UNCHECKED,
        nullable=False,
    )
    record_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )

    __table_args__ = (PrimaryKeyConstraint("settlement_date", "settlement_period"),)

    def __repr__(self) -> str:
        return (
            f"<PeriodStatus(date={self.settlement_date}, period={self.settlement_period}, "
            f"status={self.status})>"
        )
