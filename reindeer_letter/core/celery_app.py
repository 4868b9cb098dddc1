"""
Celery application configuration for background task processing.

Runs the scheduled-delivery sweep on a beat schedule. The worker shares
nothing with the API process except the database.
"""

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from reindeer_letter.core.config import settings


# Initialize Celery app
celery_app = Celery(
    "reindeer_letter",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "reindeer_letter.tasks.delivery",
    ]
)


# Celery Configuration
celery_app.conf.update(
    # Serialization (JSON only for security)
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completes (reliability)
    task_reject_on_worker_lost=True,  # Requeue if worker crashes
    task_track_started=True,

    # A sweep over a large backlog can take a while
    task_time_limit=300,
    task_soft_time_limit=270,

    # Retry settings (exponential backoff)
    task_default_retry_delay=60,
    task_max_retries=3,

    # Result backend settings
    result_expires=3600,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Queue settings
    task_queues=(
        Queue("default", routing_key="task.#"),
        Queue("scheduled", routing_key="scheduled.#"),
    ),
    task_default_queue="default",
    task_default_exchange="tasks",
    task_default_exchange_type="topic",
    task_default_routing_key="task.default",
)


# Celery Beat Schedule (periodic tasks)
celery_app.conf.beat_schedule = {
    # Dates are day-granular, but sweeping hourly catches up quickly after an outage
    "deliver-scheduled-letters": {
        "task": "reindeer_letter.tasks.delivery.deliver_scheduled_letters",
        "schedule": crontab(minute="5"),  # Every hour at :05 UTC
        "options": {"queue": "scheduled"},
    },
}


celery_app.conf.task_routes = {
    "reindeer_letter.tasks.delivery.deliver_scheduled_letters": {"queue": "scheduled"},
}


# Logging configuration
celery_app.conf.worker_hijack_root_logger = False
celery_app.conf.worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
celery_app.conf.worker_task_log_format = (
    "[%(asctime)s: %(levelname)s/%(processName)s] "
    "[%(task_name)s(%(task_id)s)] %(message)s"
)


if __name__ == "__main__":
    celery_app.start()
