"""Job error taxonomy.

Every error raised out of a job carries its ``kind`` so the queue task can
record the outcome and decide whether the message may be redelivered.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Categories of job failure."""
    STATUS_UPDATE = "StatusUpdateError"
    VIDEO_NOT_FOUND = "VideoNotFound"
    PROBE = "ProbeError"
    TRIM = "TrimError"
    TRANSCODE = "TranscodeError"
    PAYLOAD = "PayloadError"


class JobError(Exception):
    """Base class for errors that end a job."""

    kind: ErrorKind
    retryable: bool = True

    def __init__(self, message: str, video_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.video_id = video_id

    def __str__(self) -> str:
        if self.video_id:
            return f"{self.kind.value} [{self.video_id}]: {self.message}"
        return f"{self.kind.value}: {self.message}"


class StatusUpdateError(JobError):
    """Status store unreachable or the transition was rejected."""
    kind = ErrorKind.STATUS_UPDATE


class ClaimHeldError(StatusUpdateError):
    """Another worker holds a live processing claim on the video.

    The job is deferred until the claim's lease runs out rather than
    spending its retry attempts.
    """


class VideoNotFoundError(JobError):
    """Referenced video record is missing."""
    kind = ErrorKind.VIDEO_NOT_FOUND


class ProbeError(JobError):
    """Duration probe failed."""
    kind = ErrorKind.PROBE


class TrimError(JobError):
    """Trimming to the maximum duration failed."""
    kind = ErrorKind.TRIM


class TranscodeError(JobError):
    """Transcoding to the target resolution failed."""
    kind = ErrorKind.TRANSCODE


class PayloadError(JobError):
    """Malformed job envelope; the video cannot even be identified."""
    kind = ErrorKind.PAYLOAD
    retryable = False


class EnqueueError(Exception):
    """Publishing a job to the queue failed."""
