"""Shared in-memory doubles for the video status store and media operations."""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from videoworker.core.storage import LocalStorage, StorageConfig
from videoworker.modules.transcoding.ffmpeg import MediaOperationError
from videoworker.modules.transcoding.pipeline import PipelineConfig, VideoPipeline
from videoworker.modules.video.models import VideoRecord, VideoStatus
from videoworker.modules.video.repository import ClaimResult, TransitionRejected


class InMemoryVideoStore:
    """Status store with the same compare-and-set rules as the database store."""

    def __init__(self):
        self.videos: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()

    def add(
        self,
        video_id: str,
        original_path_ref: str = "raw.mp4",
        status: VideoStatus = VideoStatus.UPLOADED,
        user_id: Optional[str] = None,
    ) -> None:
        self.videos[video_id] = {
            "status": status,
            "original_path_ref": original_path_ref,
            "user_id": user_id,
            "processed_path": None,
            "failure_reason": None,
        }

    def status(self, video_id: str) -> Optional[VideoStatus]:
        video = self.videos.get(video_id)
        return video["status"] if video else None

    def ops(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise RuntimeError(f"store unavailable during {op}")

    async def mark_processing(self, video_id: str) -> ClaimResult:
        self.calls.append(("mark_processing", video_id))
        self._check("mark_processing")
        video = self.videos.get(video_id)
        if video is None:
            return ClaimResult.NOT_FOUND
        if video["status"] == VideoStatus.UPLOADED:
            video["status"] = VideoStatus.PROCESSING
            return ClaimResult.CLAIMED
        if video["status"] == VideoStatus.PROCESSED:
            return ClaimResult.ALREADY_PROCESSED
        if video["status"] == VideoStatus.FAILED:
            return ClaimResult.ALREADY_FAILED
        return ClaimResult.IN_PROGRESS

    async def mark_processed(self, video_id: str, processed_path: str) -> None:
        self.calls.append(("mark_processed", video_id, processed_path))
        self._check("mark_processed")
        video = self.videos.get(video_id)
        if video is None or video["status"] != VideoStatus.PROCESSING:
            raise TransitionRejected(video_id, VideoStatus.PROCESSED, self.status(video_id))
        video["status"] = VideoStatus.PROCESSED
        video["processed_path"] = processed_path

    async def mark_failed(self, video_id: str, reason: str) -> None:
        self.calls.append(("mark_failed", video_id, reason))
        self._check("mark_failed")
        video = self.videos.get(video_id)
        if video is None or video["status"] != VideoStatus.PROCESSING:
            raise TransitionRejected(video_id, VideoStatus.FAILED, self.status(video_id))
        video["status"] = VideoStatus.FAILED
        video["failure_reason"] = reason

    async def release_claim(self, video_id: str) -> bool:
        self.calls.append(("release_claim", video_id))
        self._check("release_claim")
        video = self.videos.get(video_id)
        if video is None or video["status"] != VideoStatus.PROCESSING:
            return False
        video["status"] = VideoStatus.UPLOADED
        return True

    async def get_video(
        self,
        video_id: str,
        *,
        privileged: bool = False,
        owner_id: Optional[str] = None,
    ) -> Optional[VideoRecord]:
        self.calls.append(("get_video", video_id, privileged))
        self._check("get_video")
        video = self.videos.get(video_id)
        if video is None:
            return None
        if not privileged and video["user_id"] != owner_id:
            return None
        return VideoRecord(
            id=video_id,
            status=video["status"],
            original_path_ref=video["original_path_ref"],
            user_id=video["user_id"],
            processed_path=video["processed_path"],
            failure_reason=video["failure_reason"],
        )


class FakeMediaOperations:
    """Media operations that write small placeholder files."""

    def __init__(self, duration: float = 10.0):
        self.duration = duration
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.cancel_on: set[str] = set()
        self.yield_on_probe = False

    def ops(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _check(self, op: str) -> None:
        if op in self.cancel_on:
            raise asyncio.CancelledError()
        if op in self.fail_on:
            raise MediaOperationError(op, "exit code 1: simulated failure")

    async def probe_duration(self, path) -> float:
        self.calls.append(("probe", Path(path)))
        if self.yield_on_probe:
            await asyncio.sleep(0)
        self._check("probe")
        return self.duration

    async def trim(self, source, destination, max_seconds: int) -> None:
        self.calls.append(("trim", Path(source), Path(destination), max_seconds))
        self._check("trim")
        Path(destination).write_bytes(b"trimmed")

    async def transcode(self, source, destination) -> None:
        self.calls.append(("transcode", Path(source), Path(destination)))
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        self._check("transcode")
        Path(destination).write_bytes(b"720p")


def build_test_pipeline(
    root: Path,
    store: Optional[InMemoryVideoStore] = None,
    media: Optional[FakeMediaOperations] = None,
    max_video_duration: int = 30,
) -> VideoPipeline:
    storage = LocalStorage(
        StorageConfig(
            upload_path=str(root / "uploads"),
            processed_path=str(root / "processed"),
            temp_path=str(root / "tmp"),
        )
    )
    storage.ensure_directories()
    return VideoPipeline(
        store=store if store is not None else InMemoryVideoStore(),
        media=media if media is not None else FakeMediaOperations(),
        storage=storage,
        config=PipelineConfig(max_video_duration=max_video_duration),
    )


@pytest.fixture(scope="session")
def video_store_factory():
    return InMemoryVideoStore


@pytest.fixture(scope="session")
def media_factory():
    return FakeMediaOperations


@pytest.fixture(scope="session")
def pipeline_factory():
    return build_test_pipeline
