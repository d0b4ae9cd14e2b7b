"""Job module: envelopes, producer, dispatch and the worker pool.

Only the envelope and error types are exported here; import
``producer``, ``tasks`` and ``worker`` directly since they pull in the
Celery app and the database engine.
"""

from videoworker.modules.job.errors import (
    ClaimHeldError,
    EnqueueError,
    ErrorKind,
    JobError,
    PayloadError,
    ProbeError,
    StatusUpdateError,
    TranscodeError,
    TrimError,
    VideoNotFoundError,
)
from videoworker.modules.job.schemas import JobEnvelope, JobReference, JobType

__all__ = [
    # Errors
    "ClaimHeldError",
    "EnqueueError",
    "ErrorKind",
    "JobError",
    "PayloadError",
    "ProbeError",
    "StatusUpdateError",
    "TranscodeError",
    "TrimError",
    "VideoNotFoundError",
    # Schemas
    "JobEnvelope",
    "JobReference",
    "JobType",
]
