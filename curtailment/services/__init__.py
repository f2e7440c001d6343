"""Business logic services package."""

from .completeness import CompletenessService
from .difficulty import DifficultyClient
from .elexon_client import ElexonClient
from .mining import MiningCalculator, estimate_mined
from .reconciler import RecordReconciler
from .summary_service import SummaryService
from .unit_reference import UnitReferenceTable

__all__ = [
    "CompletenessService",
    "DifficultyClient",
    "ElexonClient",
    "MiningCalculator",
    "RecordReconciler",
    "SummaryService",
    "UnitReferenceTable",
    "estimate_mined",
]
