# app/config/celery_config.py
"""Celery application factory"""
from celery import Celery

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery app used by the worker and task modules"""
    app = Celery(
        "bookings",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["app.tasks.booking_tasks"],
    )

    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_soft_time_limit=120,
        task_time_limit=180,
        beat_schedule={
            "reconcile-recent-bookings": {
                "task": "app.tasks.booking_tasks.reconcile_recent_bookings",
                "schedule": 15 * 60,
            },
        },
    )
    return app


celery_app = create_celery_app()
