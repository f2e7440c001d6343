"""Pydantic schemas for summary, mining and completeness responses."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SummaryTotals(BaseModel):
    """Energy and payment totals for one day, month or year."""

    model_config = ConfigDict(from_attributes=True)

    period_key: str = Field(..., description="YYYY-MM-DD, YYYY-MM or YYYY")
    total_curtailed_energy: Decimal = Field(..., description="Curtailed energy in MWh")
    total_payment: Decimal = Field(..., description="Payment in GBP, positive is a cost")
    bitcoin_mined: Dict[str, Decimal] = Field(
        default_factory=dict, description="Coins per miner model"
    )
    last_updated: Optional[datetime] = None


class MiningCalculationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    settlement_date: date
    settlement_period: int
    farm_id: str
    miner_model: str
    energy_volume: Decimal
    bitcoin_mined: Decimal
    difficulty: Decimal
    calculated_at: Optional[datetime] = None


class ModelCompleteness(BaseModel):
    miner_model: str
    expected: int
    actual: int

    @property
    def complete(self) -> bool:
        return self.expected == self.actual


class CompletenessResponse(BaseModel):
    """Gap report for one settlement date."""

    settlement_date: date
    periods_with_records: List[int]
    periods_unchecked: List[int]
    periods_failed: List[int]
    periods_confirmed_empty: List[int]
    record_count: int
    duplicate_keys: int
    calculations: List[ModelCompleteness]
    summary_matches_records: bool
    is_complete: bool


class MiningDailyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    summary_date: date
    miner_model: str
    bitcoin_mined: Decimal
    updated_at: Optional[datetime] = None
