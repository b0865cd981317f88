"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from core.config import config

# Create Celery app
celery_app = Celery(
    "dance_studio",
    broker=config.REDIS_URL,
    backend=config.REDIS_URL,
    include=["app.tasks.email_tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,
    # Run tasks inline (tests, local development without a broker)
    task_always_eager=config.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=False,
)

# Configure periodic tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # Remind students of classes starting within the next day (daily at 8 AM UTC)
    "send-class-reminders": {
        "task": "send_class_reminders",
        "schedule": crontab(hour=8, minute=0),
    },
}


if __name__ == "__main__":
    celery_app.start()
