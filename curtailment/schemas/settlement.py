"""Pydantic schemas for settlement stack records."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SettlementCandidate(BaseModel):
    """One accepted bid or offer from the settlement stack."""

    model_config = ConfigDict(populate_by_name=True)

    unit_id: str = Field(..., alias="id", min_length=1, description="Elexon BM Unit id")
    volume: Decimal = Field(..., description="Accepted volume in MWh, negative when turned down")
    original_price: Decimal = Field(..., alias="originalPrice", description="Accepted price in GBP/MWh")
    final_price: Optional[Decimal] = Field(None, alias="finalPrice")
    so_flag: bool = Field(False, alias="soFlag", description="System operator flagged")
    cadl_flag: bool = Field(False, alias="cadlFlag", description="Constraint flagged")
    lead_party_name: Optional[str] = Field(None, alias="leadPartyName")

    @property
    def is_curtailment(self) -> bool:
        return self.volume < 0 and (self.so_flag or self.cadl_flag)


class CurtailmentRow(BaseModel):
    """Normalized curtailment record ready to be persisted."""

    settlement_date: date
    settlement_period: int = Field(..., ge=1, le=48)
    farm_id: str
    lead_party_name: Optional[str] = None
    volume: Decimal = Field(..., lt=0)
    payment: Decimal = Field(..., ge=0)
    original_price: Decimal
    final_price: Decimal
    so_flag: bool
    cadl_flag: bool
