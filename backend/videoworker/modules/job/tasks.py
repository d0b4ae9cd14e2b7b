"""Celery tasks and job dispatch.

Each job type maps to one async handler in ``JOB_HANDLERS``. The Celery task
parses the wire payload, runs the handler to completion in a fresh event loop
and applies the retry policy to whatever error comes back.
"""

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Optional

from celery import Task
from celery.exceptions import Reject

from videoworker.core.celery_app import celery_app
from videoworker.core.config import settings
from videoworker.core.database import async_session_maker
from videoworker.core.logging import (
    clear_correlation_id,
    log_error,
    log_info,
    log_warning,
    set_correlation_id,
)
from videoworker.core.metrics import JOB_DURATION_SECONDS, JOBS_IN_PROGRESS, JOBS_TOTAL
from videoworker.core.storage import get_storage
from videoworker.modules.job.errors import ClaimHeldError, PayloadError
from videoworker.modules.job.schemas import JobEnvelope, JobType
from videoworker.modules.transcoding.ffmpeg import get_media_operations
from videoworker.modules.transcoding.pipeline import (
    PipelineConfig,
    PipelineOutcome,
    VideoPipeline,
)
from videoworker.modules.video.store import SQLAlchemyVideoStatusStore

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 300.0,
        backoff_multiplier: float = 2.0,
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The current attempt number (1-indexed).

        Returns:
            The delay in seconds, capped at max_delay.
        """
        if attempt < 1:
            return self.initial_delay

        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """Check whether another attempt is allowed after ``attempt`` failed."""
        return attempt < self.max_attempts


JOB_RETRY_CONFIG = RetryConfig(
    max_attempts=settings.JOB_MAX_ATTEMPTS,
    initial_delay=settings.JOB_RETRY_INITIAL_DELAY,
    max_delay=settings.JOB_RETRY_MAX_DELAY,
)

# Added to the lease so a deferred job lands after the claim has gone stale
LEASE_DEFERRAL_MARGIN_SECONDS = 5.0


# ============================================
# Dispatch
# ============================================

JobHandler = Callable[[JobEnvelope], Awaitable[PipelineOutcome]]


def build_pipeline() -> VideoPipeline:
    """Wire the pipeline to the database store, ffmpeg and local storage."""
    storage = get_storage()
    storage.ensure_directories()
    return VideoPipeline(
        store=SQLAlchemyVideoStatusStore(async_session_maker, settings.PROCESSING_LEASE_SECONDS),
        media=get_media_operations(),
        storage=storage,
        config=PipelineConfig(max_video_duration=settings.MAX_VIDEO_DURATION),
    )


async def process_video_job(envelope: JobEnvelope) -> PipelineOutcome:
    """Handler for ``video-processing`` jobs."""
    return await build_pipeline().run(envelope)


JOB_HANDLERS: dict[JobType, JobHandler] = {
    JobType.VIDEO_PROCESSING: process_video_job,
}


async def dispatch(
    job_type: Any,
    payload: Any,
    handlers: Optional[dict[JobType, JobHandler]] = None,
) -> PipelineOutcome:
    """Parse the payload and run the handler registered for its job type.

    Raises:
        PayloadError: Unknown job type or malformed payload
    """
    handlers = JOB_HANDLERS if handlers is None else handlers
    try:
        job_type = JobType(job_type)
    except ValueError as e:
        raise PayloadError(f"unknown job type {job_type!r}") from e

    handler = handlers.get(job_type)
    if handler is None:
        raise PayloadError(f"no handler registered for job type {job_type.value}")

    envelope = JobEnvelope.from_payload(payload, job_type)
    return await handler(envelope)


# ============================================
# Celery task
# ============================================

class VideoJobTask(Task):
    """Base task applying the job retry policy."""

    abstract = True
    # run_job enforces the attempt budget
    max_retries = None
    retry_config: RetryConfig = JOB_RETRY_CONFIG
    claim_lease_seconds: float = settings.PROCESSING_LEASE_SECONDS

    def retry_with_backoff(self, exc: Exception, attempt: int) -> None:
        """Retry the task with exponential backoff.

        Args:
            exc: The exception that caused the failure.
            attempt: The attempt that just failed (1-indexed).

        Raises:
            Retry: Always; the task is re-published with a countdown.
        """
        delay = self.retry_config.calculate_delay(attempt)
        raise self.retry(exc=exc, countdown=delay)

    def defer_until_lease_expires(self, exc: Exception, deferrals: int) -> None:
        """Re-publish the job to run once the current claim's lease is stale.

        Deferrals are carried in the task kwargs so they are not charged
        against the attempt budget.

        Raises:
            Retry: Always.
        """
        raise self.retry(
            exc=exc,
            countdown=self.claim_lease_seconds + LEASE_DEFERRAL_MARGIN_SECONDS,
            kwargs={"deferrals": deferrals + 1},
        )


def _outcome_status(outcome: PipelineOutcome) -> str:
    return "skipped" if outcome.skipped else "succeeded"


def run_job(
    task: VideoJobTask,
    job_type: JobType,
    payload: Any,
    handlers: Optional[dict[JobType, JobHandler]] = None,
    deferrals: int = 0,
) -> dict:
    """Run one delivery of a job and settle it.

    Returns the outcome as a JSON-able dict. Retryable failures are
    re-published with backoff until the attempt budget is spent; malformed
    payloads are rejected without requeue. A video claimed by another worker
    defers the job past the claim's lease without using up an attempt.
    """
    request = task.request
    attempt = max((request.retries or 0) - deferrals, 0) + 1
    set_correlation_id(getattr(request, "correlation_id", None) or request.id or "")
    video_id = payload.get("video_id") if isinstance(payload, dict) else None

    status = "failed"
    started = time.monotonic()
    JOBS_IN_PROGRESS.labels(job_type=job_type.value).inc()
    try:
        outcome = asyncio.run(dispatch(job_type, payload, handlers))
        status = _outcome_status(outcome)
        log_info(
            logger,
            f"Job {request.id} {status}",
            video_id=outcome.video_id,
            stage=outcome.stage.value,
            attempt=attempt,
        )
        return {
            "video_id": outcome.video_id,
            "stage": outcome.stage.value,
            "processed_path": outcome.processed_path,
            "trimmed": outcome.trimmed,
        }
    except PayloadError as e:
        status = "rejected"
        log_error(logger, f"Rejecting job {request.id}: {e}", video_id=video_id)
        raise Reject(str(e), requeue=False) from e
    except ClaimHeldError as e:
        status = "deferred"
        log_warning(
            logger,
            f"Job {request.id} deferred until the processing claim expires: {e}",
            video_id=video_id,
            attempt=attempt,
            deferrals=deferrals + 1,
        )
        task.defer_until_lease_expires(e, deferrals)
        raise
    except Exception as e:
        retryable = getattr(e, "retryable", True)
        if retryable and task.retry_config.should_retry(attempt):
            status = "retried"
            log_warning(
                logger,
                f"Job {request.id} attempt {attempt} failed, retrying: {e}",
                video_id=video_id,
                attempt=attempt,
                error_kind=getattr(getattr(e, "kind", None), "value", type(e).__name__),
            )
            task.retry_with_backoff(e, attempt)
        status = "dead_lettered"
        log_error(
            logger,
            f"Job {request.id} failed permanently after {attempt} attempt(s)",
            exception=e,
            video_id=video_id,
            attempt=attempt,
        )
        raise
    finally:
        JOBS_IN_PROGRESS.labels(job_type=job_type.value).dec()
        JOB_DURATION_SECONDS.labels(job_type=job_type.value).observe(time.monotonic() - started)
        JOBS_TOTAL.labels(job_type=job_type.value, status=status).inc()
        clear_correlation_id()


@celery_app.task(bind=True, base=VideoJobTask, name=JobType.VIDEO_PROCESSING.value)
def process_video_task(self: VideoJobTask, payload: Any, deferrals: int = 0) -> dict:
    """Process one uploaded video.

    Args:
        payload: Wire payload ``{"video_id": ...}``
        deferrals: Times the job waited out another worker's claim

    Returns:
        dict: Final stage and processed asset path
    """
    return run_job(self, JobType.VIDEO_PROCESSING, payload, deferrals=deferrals)
