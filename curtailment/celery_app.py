"""Celery application instance."""

from celery import Celery
from celery.signals import setup_logging

from curtailment.core.config import get_settings
from curtailment.core.logging_config import configure_logging

settings = get_settings()

celery_app = Celery("curtailment")

# Load configuration from celery_config module
celery_app.config_from_object("curtailment.core.celery_config")

celery_app.autodiscover_tasks(["curtailment.tasks"], related_name="reconciliation")


@setup_logging.connect
def config_loggers(*args, **kwargs):
    """Configure logging for Celery."""
    configure_logging(settings.LOG_LEVEL)
