"""Celery tasks module."""

from curtailment.tasks.base import BaseTask
from curtailment.tasks.reconciliation import reconcile_date, reconcile_recent

__all__ = [
    "BaseTask",
    "reconcile_date",
    "reconcile_recent",
]
