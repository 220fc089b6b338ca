"""
Celery tasks for background processing.

Tasks are defined here and imported by both the API (to enqueue) and
the worker (to execute).
"""
from celery import Celery
from core.config import settings

celery_app = Celery(
    "gymbro",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # hard stop; stale plans are failed on read
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,  # LLM jobs are long; don't hoard them
)

# Import tasks to register them
from . import plan_tasks  # noqa: E402

__all__ = ["celery_app"]
