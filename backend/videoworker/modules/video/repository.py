"""Repository for video status transitions.

All transitions are compare-and-set UPDATE statements so that concurrent or
duplicate deliveries of the same video cannot overwrite each other.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from videoworker.modules.video.models import Video, VideoStatus


class ClaimResult(str, Enum):
    """Outcome of trying to move a video into processing."""
    CLAIMED = "claimed"
    ALREADY_PROCESSED = "already_processed"
    ALREADY_FAILED = "already_failed"
    IN_PROGRESS = "in_progress"
    NOT_FOUND = "not_found"


class TransitionRejected(Exception):
    """The video was not in the status a transition requires."""

    def __init__(self, video_id: str, target: VideoStatus, current: Optional[str]):
        super().__init__(
            f"cannot move video {video_id} to {target.value} from {current or 'missing'}"
        )
        self.video_id = video_id
        self.target = target
        self.current = current


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoRepository:
    """Repository for Video database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        video_id: str,
        original_path_ref: str,
        user_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Video:
        """Create a video record in the uploaded state."""
        video = Video(
            id=video_id,
            original_path_ref=original_path_ref,
            user_id=user_id,
            title=title,
            status=VideoStatus.UPLOADED.value,
        )
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_id(self, video_id: str) -> Optional[Video]:
        """Get video by ID."""
        result = await self.session.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def get_status(self, video_id: str) -> Optional[str]:
        """Get the current status of a video, or None when it does not exist."""
        result = await self.session.execute(
            select(Video.status).where(Video.id == video_id)
        )
        return result.scalar_one_or_none()

    async def claim_for_processing(
        self,
        video_id: str,
        lease_seconds: int,
    ) -> ClaimResult:
        """Move a video to processing.

        Succeeds from ``uploaded``, or from ``processing`` when the previous
        claim is older than the lease (its worker is presumed dead).
        """
        now = _utcnow()
        stale_before = now - timedelta(seconds=lease_seconds)
        stmt = (
            update(Video)
            .where(Video.id == video_id)
            .where(
                or_(
                    Video.status == VideoStatus.UPLOADED.value,
                    and_(
                        Video.status == VideoStatus.PROCESSING.value,
                        or_(
                            Video.processing_started_at.is_(None),
                            Video.processing_started_at < stale_before,
                        ),
                    ),
                )
            )
            .values(
                status=VideoStatus.PROCESSING.value,
                processing_started_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 1:
            return ClaimResult.CLAIMED

        status = await self.get_status(video_id)
        if status is None:
            return ClaimResult.NOT_FOUND
        if status == VideoStatus.PROCESSED.value:
            return ClaimResult.ALREADY_PROCESSED
        if status == VideoStatus.FAILED.value:
            return ClaimResult.ALREADY_FAILED
        return ClaimResult.IN_PROGRESS

    async def mark_processed(self, video_id: str, processed_path: str) -> None:
        """Move a processing video to processed and record its asset path.

        Raises:
            TransitionRejected: If the video is not processing
        """
        now = _utcnow()
        stmt = (
            update(Video)
            .where(Video.id == video_id)
            .where(Video.status == VideoStatus.PROCESSING.value)
            .values(
                status=VideoStatus.PROCESSED.value,
                processed_path=processed_path,
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            raise TransitionRejected(
                video_id, VideoStatus.PROCESSED, await self.get_status(video_id)
            )

    async def mark_failed(self, video_id: str, reason: str) -> None:
        """Move a processing video to failed and record the reason.

        Raises:
            TransitionRejected: If the video is not processing
        """
        stmt = (
            update(Video)
            .where(Video.id == video_id)
            .where(Video.status == VideoStatus.PROCESSING.value)
            .values(
                status=VideoStatus.FAILED.value,
                failure_reason=reason,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            raise TransitionRejected(
                video_id, VideoStatus.FAILED, await self.get_status(video_id)
            )

    async def release_claim(self, video_id: str) -> bool:
        """Return a processing video to uploaded so it can be claimed again.

        Used when a job is interrupted before reaching a terminal state.
        Returns False when the video was not processing.
        """
        stmt = (
            update(Video)
            .where(Video.id == video_id)
            .where(Video.status == VideoStatus.PROCESSING.value)
            .values(
                status=VideoStatus.UPLOADED.value,
                processing_started_at=None,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_stale_processing(
        self,
        older_than_seconds: int,
        limit: int = 100,
    ) -> list[Video]:
        """Get videos whose processing claim is older than the threshold.

        These are either crashed jobs awaiting redelivery or jobs whose
        retries were exhausted.
        """
        cutoff = _utcnow() - timedelta(seconds=older_than_seconds)
        result = await self.session.execute(
            select(Video)
            .where(Video.status == VideoStatus.PROCESSING.value)
            .where(Video.processing_started_at < cutoff)
            .order_by(Video.processing_started_at)
            .limit(limit)
        )
        return list(result.scalars().all())
