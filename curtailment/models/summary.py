"""Daily, monthly and yearly summary models."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from curtailment.core.database import Base


class DailySummary(Base):
    """Curtailed energy and payment totals for one settlement date."""

    __tablename__ = "daily_summaries"

    summary_date: Mapped[date] = mapped_column(Date, primary_key=True)
    total_curtailed_energy: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0, nullable=False)
    total_payment: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )


class MonthlySummary(Base):
    """Totals for one calendar month, keyed ``YYYY-MM``."""

    __tablename__ = "monthly_summaries"

    year_month: Mapped[str] = mapped_column(String(7), primary_key=True)
    total_curtailed_energy: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0, nullable=False)
    total_payment: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )


class YearlySummary(Base):
    """Totals for one calendar year, keyed ``YYYY``."""

    __tablename__ = "yearly_summaries"

    year: Mapped[str] = mapped_column(String(4), primary_key=True)
    total_curtailed_energy: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0, nullable=False)
    total_payment: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )


class MiningDailySummary(Base):
    __tablename__ = "bitcoin_daily_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    summary_date: Mapped[date] = mapped_column(Date, nullable=False)
    miner_model: Mapped[str] = mapped_column(String(50), nullable=False)
    bitcoin_mined: Mapped[Decimal] = mapped_column(Numeric(28, 12), default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("summary_date", "miner_model", name="uq_bitcoin_daily_date_model"),
    )


class MiningMonthlySummary(Base):
    __tablename__ = "bitcoin_monthly_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    miner_model: Mapped[str] = mapped_column(String(50), nullable=False)
    bitcoin_mined: Mapped[Decimal] = mapped_column(Numeric(28, 12), default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("year_month", "miner_model", name="uq_bitcoin_monthly_month_model"),
    )


class MiningYearlySummary(Base):
    __tablename__ = "bitcoin_yearly_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[str] = mapped_column(String(4), nullable=False)
    miner_model: Mapped[str] = mapped_column(String(50), nullable=False)
    bitcoin_mined: Mapped[Decimal] = mapped_column(Numeric(28, 12), default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("year", "miner_model", name="uq_bitcoin_yearly_year_model"),
    )
