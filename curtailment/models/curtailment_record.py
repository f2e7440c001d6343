"""Curtailment record model."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from curtailment.core.database import Base


class CurtailmentRecord(Base):
    """One accepted curtailment per settlement date, period and unit.

    ``volume`` keeps the provider's sign (negative means energy turned down).
    ``payment`` is always the positive cost to consumers.
    """

    __tablename__ = "curtailment_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    settlement_period: Mapped[int] = mapped_column(Integer, nullable=False)
    farm_id: Mapped[str] = mapped_column(String(50), nullable=False)
    lead_party_name: Mapped[Optional[str]] = mapped_column(String(255))

    volume: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    payment: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    original_price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    final_price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    so_flag: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cadl_flag: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "settlement_date", "settlement_period", "farm_id", name="uq_curtailment_date_period_farm"
        ),
        Index("idx_curtailment_date_period", "settlement_date", "settlement_period"),
        CheckConstraint("settlement_period BETWEEN 1 AND 48", name="ck_curtailment_period_range"),
    )

    def __repr__(self) -> str:
        return (
            f"<CurtailmentRecord(date={self.settlement_date}, period={self.settlement_period}, "
            f"farm_id={self.farm_id}, volume={self.volume})>"
        )
