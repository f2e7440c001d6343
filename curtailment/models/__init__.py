"""Database models package."""

from .curtailment_record import CurtailmentRecord
from .mining_calculation import MiningCalculation
from .period_status import PeriodCheckStatus, PeriodStatus
from .summary import (
    DailySummary,
    MiningDailySummary,
    MiningMonthlySummary,
    MiningYearlySummary,
    MonthlySummary,
    YearlySummary,
)

__all__ = [
    "CurtailmentRecord",
    "DailySummary",
    "MiningCalculation",
    "MiningDailySummary",
    "MiningMonthlySummary",
    "MiningYearlySummary",
    "MonthlySummary",
    "PeriodCheckStatus",
    "PeriodStatus",
    "YearlySummary",
]
