"""Pydantic schemas for the BM unit reference table."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UnitReference(BaseModel):
    """Static attributes of one generating unit."""

    model_config = ConfigDict(populate_by_name=True)

    unit_id: str = Field(..., alias="elexonBmUnit")
    national_grid_unit: Optional[str] = Field(None, alias="nationalGridBmUnit")
    name: Optional[str] = Field(None, alias="bmUnitName")
    fuel_type: Optional[str] = Field(None, alias="fuelType")
    unit_type: Optional[str] = Field(None, alias="bmUnitType")
    lead_party_name: Optional[str] = Field(None, alias="leadPartyName")
    generation_capacity: Optional[Decimal] = Field(None, alias="generationCapacity")

    @field_validator("fuel_type", mode="before")
    @classmethod
    def upper_fuel_type(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("generation_capacity", mode="before")
    @classmethod
    def blank_capacity(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v
