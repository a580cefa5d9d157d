"""
Celery application for distributed import/export workers.

Start a worker with:
    celery -A bulkio.core.celery_app worker --loglevel=info
"""
from celery import Celery
from bulkio.core.config import settings

celery_app = Celery(
    "bulkio",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["bulkio.services.job_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
