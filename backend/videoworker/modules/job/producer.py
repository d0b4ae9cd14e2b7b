"""Job producer.

Publishes video processing jobs onto the broker. Publishing either succeeds
and returns a ``JobReference`` or raises ``EnqueueError``; it never silently
drops a job.
"""

import logging
from typing import Iterable, Optional

from celery import Celery
from kombu.exceptions import OperationalError

from videoworker.core.config import settings
from videoworker.core.logging import get_correlation_id, log_error, log_info
from videoworker.core.metrics import JOBS_ENQUEUED_TOTAL
from videoworker.modules.job.errors import EnqueueError
from videoworker.modules.job.schemas import JobEnvelope, JobReference, JobType

logger = logging.getLogger(__name__)


class VideoJobProducer:
    """Enqueues processing jobs for persisted videos."""

    def __init__(self, app: Celery, queue: Optional[str] = None):
        self.app = app
        self.queue = queue or settings.JOB_QUEUE_NAME

    def enqueue(
        self,
        video_id: str,
        job_type: JobType = JobType.VIDEO_PROCESSING,
    ) -> JobReference:
        """Publish one job.

        Raises:
            PayloadError: If the video id is empty
            EnqueueError: If the broker cannot accept the message
        """
        envelope = JobEnvelope.from_payload({"video_id": video_id}, job_type)

        try:
            result = self.app.send_task(
                envelope.job_type.value,
                args=[envelope.to_payload()],
                queue=self.queue,
                retry=False,
                headers={"correlation_id": get_correlation_id()},
            )
        except (OperationalError, ConnectionError, OSError) as e:
            log_error(
                logger,
                f"Failed to enqueue {job_type.value} job for video {envelope.video_id}",
                exception=e,
                video_id=envelope.video_id,
                job_type=job_type.value,
            )
            raise EnqueueError(
                f"failed to enqueue {job_type.value} job for video {envelope.video_id}: {e}"
            ) from e

        JOBS_ENQUEUED_TOTAL.labels(job_type=job_type.value).inc()
        log_info(
            logger,
            f"Enqueued {job_type.value} job {result.id} for video {envelope.video_id}",
            video_id=envelope.video_id,
            job_id=result.id,
            job_type=job_type.value,
        )
        return JobReference(
            job_id=result.id,
            job_type=envelope.job_type,
            video_id=envelope.video_id,
        )

    def enqueue_many(
        self,
        video_ids: Iterable[str],
        job_type: JobType = JobType.VIDEO_PROCESSING,
    ) -> list[JobReference]:
        """Publish one job per video, stopping at the first failure."""
        return [self.enqueue(video_id, job_type) for video_id in video_ids]


def get_producer() -> VideoJobProducer:
    """Build a producer bound to the worker's Celery app."""
    from videoworker.core.celery_app import celery_app

    return VideoJobProducer(celery_app)


def enqueue_video_processing(video_id: str) -> JobReference:
    """Enqueue a video processing job on the default app and queue."""
    return get_producer().enqueue(video_id)
