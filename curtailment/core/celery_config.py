"""Celery configuration for the reconciliation worker."""

import os
from typing import Any, Dict

from celery.schedules import crontab

# Support direct REDIS_URL if provided, otherwise local Redis for development
REDIS_URL = os.getenv("REDIS_URL", "")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = os.getenv("REDIS_PORT", "6379")
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", "")

if REDIS_URL:
    redis_url = REDIS_URL
elif REDIS_PASSWORD:
    redis_url = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}"
else:
    redis_url = f"redis://{REDIS_HOST}:{REDIS_PORT}"

broker_url = os.getenv("CELERY_BROKER_URL", f"{redis_url}/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", f"{redis_url}/1")

# Task settings
task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]
timezone = "UTC"
enable_utc = True

# Task execution settings
task_track_started = True
task_time_limit = 3600  # 1 hour hard limit
task_soft_time_limit = 3000  # 50 minutes soft limit
task_acks_late = True
worker_prefetch_multiplier = 1  # Reconciliation runs are long

# Result backend settings
result_expires = 86400

# Worker settings
worker_max_tasks_per_child = 100
worker_send_task_events = True
task_send_sent_event = True
task_reject_on_worker_lost = True

# Daily catch up after the settlement runs have settled
beat_schedule: Dict[str, Any] = {
    "reconcile-recent-daily": {
        "task": "curtailment.tasks.reconciliation.reconcile_recent",
        "schedule": crontab(hour=6, minute=30),
    },
}

# Queue routing
task_default_queue = "default"
task_routes = {
    "curtailment.tasks.reconciliation.*": {"queue": "reconciliation"},
}
task_queues = {
    "default": {
        "exchange": "default",
        "exchange_type": "direct",
        "routing_key": "default",
    },
    "reconciliation": {
        "exchange": "reconciliation",
        "exchange_type": "direct",
        "routing_key": "reconciliation",
    },
}

# Broker connection retry settings
broker_connection_retry_on_startup = True
broker_connection_max_retries = 10

# Logging
worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"
