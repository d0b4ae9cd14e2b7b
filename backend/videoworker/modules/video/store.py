"""Video status store used by the pipeline.

The pipeline only depends on the ``VideoStatusStore`` protocol; the
SQLAlchemy implementation opens a short session per call and commits each
transition on its own.
"""

from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from videoworker.modules.video.models import VideoRecord
from videoworker.modules.video.repository import ClaimResult, VideoRepository


class VideoStatusStore(Protocol):
    """Status transitions and lookups the pipeline needs."""

    async def mark_processing(self, video_id: str) -> ClaimResult:
        ...

    async def mark_processed(self, video_id: str, processed_path: str) -> None:
        ...

    async def mark_failed(self, video_id: str, reason: str) -> None:
        ...

    async def release_claim(self, video_id: str) -> bool:
        ...

    async def get_video(
        self,
        video_id: str,
        *,
        privileged: bool = False,
        owner_id: Optional[str] = None,
    ) -> Optional[VideoRecord]:
        ...


class SQLAlchemyVideoStatusStore:
    """Database-backed status store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lease_seconds: int,
    ):
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds

    async def mark_processing(self, video_id: str) -> ClaimResult:
        async with self.session_factory() as session:
            result = await VideoRepository(session).claim_for_processing(
                video_id, self.lease_seconds
            )
            await session.commit()
            return result

    async def mark_processed(self, video_id: str, processed_path: str) -> None:
        async with self.session_factory() as session:
            await VideoRepository(session).mark_processed(video_id, processed_path)
            await session.commit()

    async def mark_failed(self, video_id: str, reason: str) -> None:
        async with self.session_factory() as session:
            await VideoRepository(session).mark_failed(video_id, reason)
            await session.commit()

    async def release_claim(self, video_id: str) -> bool:
        async with self.session_factory() as session:
            released = await VideoRepository(session).release_claim(video_id)
            await session.commit()
            return released

    async def get_video(
        self,
        video_id: str,
        *,
        privileged: bool = False,
        owner_id: Optional[str] = None,
    ) -> Optional[VideoRecord]:
        """Fetch a video.

        Non-privileged lookups only return videos owned by ``owner_id``;
        privileged lookups are for internal callers such as the pipeline.
        """
        async with self.session_factory() as session:
            video = await VideoRepository(session).get_by_id(video_id)
            if video is None:
                return None
            if not privileged and video.user_id != owner_id:
                return None
            return VideoRecord.from_model(video)
