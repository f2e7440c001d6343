"""Tests for the Celery tasks."""

from datetime import date

from curtailment.celery_app import celery_app
from curtailment.services.pipeline import DateOutcome, RunOutcome
from curtailment.tasks.reconciliation import reconcile_date, reconcile_recent, summarize


class TestTasks:
    def test_tasks_are_registered_under_their_names(self):
        assert reconcile_recent.name == "curtailment.tasks.reconciliation.reconcile_recent"
        assert reconcile_date.name == "curtailment.tasks.reconciliation.reconcile_date"
        assert reconcile_recent.name in celery_app.tasks

    def test_recent_reconciliation_is_scheduled(self):
        schedule = celery_app.conf.beat_schedule
        assert schedule["reconcile-recent-daily"]["task"] == reconcile_recent.name

    def test_summarize(self):
        outcomes = [
            DateOutcome(date(2024, 5, 1), RunOutcome.COMPLETE, {"records": 2}),
            DateOutcome(date(2024, 5, 2), RunOutcome.PARTIAL, {"fetch_failed_periods": [7]}),
        ]

        result = summarize(outcomes)

        assert result["outcome"] == "partial"
        assert result["dates"][0] == {"date": "2024-05-01", "outcome": "complete", "records": 2}
        assert result["dates"][1]["fetch_failed_periods"] == [7]
