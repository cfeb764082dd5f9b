"""Celery application for background analysis work."""

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from repo_insight.config import settings

celery_app = Celery(
    "repo_insight",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "repo_insight.tasks.analysis",
        "repo_insight.tasks.maintenance",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
    task_default_queue="analysis",
    task_queues=(
        Queue("analysis"),
        Queue("maintenance"),
    ),
    beat_schedule={
        "cleanup-old-analyses-daily": {
            "task": "repo_insight.tasks.maintenance.cleanup_old_analyses",
            "schedule": crontab(hour=3, minute=0),
            "kwargs": {"days": settings.ANALYSIS_RETENTION_DAYS},
        },
    },
)
