"""
Celery application - async task queue with RabbitMQ.
Challenge: Notification delivery must never hold up a barter transition.
Design: Barter service publishes, worker persists; Redis as result backend.
"""

from celery import Celery

from studyswap.config import get_settings

settings = get_settings()

celery_app = Celery(
    "studyswap",
    broker=settings.celery_broker_url,
    backend=settings.redis_url,
    include=["studyswap.queue.tasks"],
)

# Task settings: retries, time limits, serialization
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    task_time_limit=60,
    task_soft_time_limit=30,
    task_always_eager=settings.celery_task_always_eager,
    worker_prefetch_multiplier=1,  # Fair distribution
)
