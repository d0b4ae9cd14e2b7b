"""Pydantic schemas for queued jobs."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from videoworker.modules.job.errors import PayloadError


class JobType(str, Enum):
    """Types of jobs handled by the worker pool."""
    VIDEO_PROCESSING = "video-processing"


class JobEnvelope(BaseModel):
    """Immutable description of one unit of work.

    Only ``video_id`` travels in the payload; the job type is carried by the
    queue task name.
    """

    model_config = ConfigDict(frozen=True)

    video_id: str = Field(..., description="Identifier of an already-persisted video")
    job_type: JobType = Field(default=JobType.VIDEO_PROCESSING, exclude=True)

    @field_validator("video_id")
    @classmethod
    def video_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("video_id must not be empty")
        return value

    def to_payload(self) -> dict[str, str]:
        """Serialize to the flat wire payload."""
        return {"video_id": self.video_id}

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        job_type: JobType = JobType.VIDEO_PROCESSING,
    ) -> "JobEnvelope":
        """Parse a wire payload.

        Raises:
            PayloadError: If the payload cannot identify a video
        """
        if not isinstance(payload, dict):
            raise PayloadError(f"payload must be an object, got {type(payload).__name__}")
        video_id = payload.get("video_id")
        if not isinstance(video_id, str):
            raise PayloadError("payload is missing a string video_id")
        try:
            return cls(video_id=video_id, job_type=job_type)
        except ValidationError as e:
            raise PayloadError(f"invalid payload: {e.errors()[0]['msg']}") from e


class JobReference(BaseModel):
    """Handle returned to the producer after enqueueing."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    job_type: JobType
    video_id: str
