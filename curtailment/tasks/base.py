"""Base task class with common functionality."""

from typing import Any

import httpx
import structlog
from celery import Task
from sqlalchemy.exc import OperationalError

logger = structlog.get_logger()


class BaseTask(Task):
    """Base task with automatic retries and lifecycle logging.

    Only connectivity failures are retried. Period level fetch and storage
    failures are already absorbed by the reconciler and show up in the
    task result instead.
    """

    autoretry_for = (ConnectionError, TimeoutError, OperationalError, httpx.TransportError)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes max backoff
    retry_jitter = True

    soft_time_limit = 3000
    time_limit = 3600

    def __init__(self):
        super().__init__()
        self.logger = structlog.get_logger().bind(task_name=self.name)

    def before_start(self, task_id: str, args: tuple, kwargs: dict, **options):
        self.logger.info("Task starting", task_id=task_id, args=args, kwargs=kwargs)

    def on_success(self, retval: Any, task_id: str, args: tuple, kwargs: dict, **options):
        self.logger.info("Task completed successfully", task_id=task_id, result=retval)

    def on_failure(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any, **options):
        self.logger.error("Task failed", task_id=task_id, error=str(exc), exc_info=einfo)

    def on_retry(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any, **options):
        self.logger.warning(
            "Task retrying",
            task_id=task_id,
            error=str(exc),
            retry_count=self.request.retries,
        )
