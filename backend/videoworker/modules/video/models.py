"""Video record model.

The upload path creates the record with status ``uploaded`` before it
enqueues a processing job; the pipeline is the only writer of later statuses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from videoworker.core.database import Base


class VideoStatus(str, Enum):
    """Processing status of a video."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({VideoStatus.PROCESSED, VideoStatus.FAILED})


class Video(Base):
    """Uploaded video and its processing state."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=VideoStatus.UPLOADED.value, nullable=False, index=True
    )

    # Relative to the upload root; never changed by the worker
    original_path_ref: Mapped[str] = mapped_column(String(1024), nullable=False)

    processed_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Start of the current processing claim
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_videos_status_claim", "status", "processing_started_at"),
    )

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, status={self.status})>"


@dataclass(frozen=True)
class VideoRecord:
    """Projection of a video handed to the pipeline."""
    id: str
    status: VideoStatus
    original_path_ref: str
    user_id: Optional[str] = None
    processed_path: Optional[str] = None
    failure_reason: Optional[str] = None
    processing_started_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, video: Video) -> "VideoRecord":
        return cls(
            id=video.id,
            status=VideoStatus(video.status),
            original_path_ref=video.original_path_ref,
            user_id=video.user_id,
            processed_path=video.processed_path,
            failure_reason=video.failure_reason,
            processing_started_at=video.processing_started_at,
        )
