"""Celery application factory for background digest delivery."""
from __future__ import annotations

import os
from celery import Celery
from celery.schedules import crontab

DEFAULT_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
DEFAULT_BACKEND_URL = os.getenv("CELERY_RESULT_BACKEND", DEFAULT_BROKER_URL)


def digest_schedule(minutes: int) -> crontab:
    """Crontab firing every ``minutes``; only intervals crontab can express evenly."""
    if 0 < minutes < 60 and 60 % minutes == 0:
        return crontab(minute=f"*/{minutes}")
    if minutes >= 60 and minutes % 60 == 0 and 24 % (minutes // 60) == 0:
        return crontab(minute=0, hour=f"*/{minutes // 60}")
    raise ValueError(
        f"DIGEST_FLUSH_MINUTES={minutes} is not a divisor of 60 or a whole number of hours dividing 24"
    )


def create_celery_app() -> Celery:
    """Create and configure the Celery app for the project."""
    celery_app = Celery(
        "notifier",
        broker=DEFAULT_BROKER_URL,
        backend=DEFAULT_BACKEND_URL,
        include=["notifier.tasks"],
    )

    celery_app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
        enable_utc=True,
        beat_schedule={
            "flush-digests": {
                "task": "notifier.tasks.flush_digests",
                "schedule": digest_schedule(int(os.getenv("DIGEST_FLUSH_MINUTES", "60"))),
            },
        },
    )

    return celery_app


celery_app = create_celery_app()
