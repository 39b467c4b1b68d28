"""Celery worker configuration and beat schedule.

Runs the booking and escrow sweeps:
- Expiring unanswered booking requests
- Host response reminders
- Escrow auto-release
"""

from celery import Celery
from celery.schedules import crontab

from baytup.config import settings

# Create Celery app
celery_app = Celery(
    "baytup",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["baytup.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Retry settings
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        # Expire unanswered requests every 15 minutes
        "expire-pending-bookings": {
            "task": "baytup.tasks.expire_pending_bookings",
            "schedule": crontab(minute="*/15"),
        },
        # Remind hosts hourly
        "send-host-response-reminders": {
            "task": "baytup.tasks.send_host_response_reminders",
            "schedule": crontab(minute=5),
        },
        # Release due escrows hourly
        "auto-release-escrows": {
            "task": "baytup.tasks.auto_release_escrows",
            "schedule": crontab(minute=0),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
