"""Pydantic schemas package."""

from .settlement import CurtailmentRow, SettlementCandidate
from .summary import (
    CompletenessResponse,
    MiningCalculationResponse,
    MiningDailyResponse,
    ModelCompleteness,
    SummaryTotals,
)
from .unit_reference import UnitReference

__all__ = [
    "CompletenessResponse",
    "CurtailmentRow",
    "MiningCalculationResponse",
    "MiningDailyResponse",
    "ModelCompleteness",
    "SettlementCandidate",
    "SummaryTotals",
    "UnitReference",
]
