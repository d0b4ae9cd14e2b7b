"""Celery application configuration."""

from celery import Celery

from videoworker.core.config import settings

celery_app = Celery(
    "video_worker",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=["videoworker.modules.job.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_default_queue=settings.JOB_QUEUE_NAME,
    task_soft_time_limit=settings.TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.TASK_TIME_LIMIT,
    # At-least-once delivery: ack after the job finishes, redeliver on worker loss
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    worker_hijack_root_logger=False,
    # Enqueue failures surface to the caller instead of being retried here
    task_publish_retry=False,
    broker_connection_retry_on_startup=True,
    # Redis redelivers unacked messages after this; a deferred job waits out a
    # full lease before it runs
    broker_transport_options={
        "visibility_timeout": settings.PROCESSING_LEASE_SECONDS + settings.TASK_TIME_LIMIT + 60,
    },
)
