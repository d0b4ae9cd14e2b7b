"""Video processing pipeline.

Runs one job end to end:

1. Claim the video (``uploaded`` -> ``processing``)
2. Load the video record and resolve its source file
3. Probe the duration
4. Trim to the maximum duration when the source is longer
5. Transcode to the target resolution
6. Record the processed asset (``processing`` -> ``processed``)

Any failure after a successful claim marks the video ``failed`` with a fixed
reason before the error is re-raised. Intermediate files live in a scoped
temp file that is removed whatever the outcome.
"""

import logging
import os
import tempfile
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional

from videoworker.core.logging import log_error, log_info, log_warning
from videoworker.core.storage import LocalStorage, safe_file_stem
from videoworker.modules.job.errors import (
    ClaimHeldError,
    ErrorKind,
    JobError,
    ProbeError,
    StatusUpdateError,
    TranscodeError,
    TrimError,
    VideoNotFoundError,
)
from videoworker.modules.job.schemas import JobEnvelope
from videoworker.modules.transcoding.ffmpeg import MediaOperationError, MediaOperations
from videoworker.modules.video.repository import ClaimResult
from videoworker.modules.video.store import VideoStatusStore

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Stages a job moves through."""
    RECEIVED = "received"
    MARKING_PROCESSING = "marking_processing"
    PROBING = "probing"
    TRIMMING = "trimming"
    TRANSCODING = "transcoding"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


# Reasons recorded on the video when a stage fails
FAILURE_REASONS: dict[ErrorKind, str] = {
    ErrorKind.VIDEO_NOT_FOUND: "video not found",
    ErrorKind.PROBE: "failed to get video duration",
    ErrorKind.TRIM: "failed to trim video",
    ErrorKind.TRANSCODE: "failed to convert video to 720p",
}


@dataclass
class PipelineConfig:
    """Pipeline limits."""
    max_video_duration: int = 30  # seconds


@dataclass
class PipelineOutcome:
    """Result of a pipeline run that did not raise."""
    video_id: str
    stage: PipelineStage
    processed_path: Optional[str] = None
    duration: Optional[float] = None
    trimmed: bool = False

    @property
    def skipped(self) -> bool:
        return self.stage == PipelineStage.SKIPPED


@asynccontextmanager
async def temporary_video_file(
    video_id: str,
    directory: Optional[Path] = None,
) -> AsyncIterator[Path]:
    """Reserve a unique temp file for one job and remove it on exit."""
    fd, name = tempfile.mkstemp(
        prefix=f"{safe_file_stem(video_id)}_",
        suffix="_trimmed.mp4",
        dir=str(directory) if directory else None,
    )
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log_warning(
                logger,
                f"Failed to remove temp file {path}: {e}",
                video_id=video_id,
            )


class VideoPipeline:
    """Executes the processing steps for one video at a time.

    Instances hold no per-job state and may be shared between jobs.
    """

    def __init__(
        self,
        store: VideoStatusStore,
        media: MediaOperations,
        storage: LocalStorage,
        config: Optional[PipelineConfig] = None,
    ):
        self.store = store
        self.media = media
        self.storage = storage
        self.config = config or PipelineConfig()

    async def run(self, envelope: JobEnvelope) -> PipelineOutcome:
        """Process the video named by the envelope.

        Returns:
            Outcome with stage DONE, or SKIPPED when the video already
            reached a terminal status

        Raises:
            ClaimHeldError: Another worker holds a live claim on the video
            StatusUpdateError: Claim or finalize failed; the video is left as is
            VideoNotFoundError: No video record exists for the id
            ProbeError, TrimError, TranscodeError: A media step failed; the
                video has been marked failed
        """
        video_id = envelope.video_id
        self._log_stage(video_id, PipelineStage.RECEIVED)

        claim = await self._claim(video_id)
        if claim in (ClaimResult.ALREADY_PROCESSED, ClaimResult.ALREADY_FAILED):
            log_info(
                logger,
                f"Video {video_id} already {claim.value.split('_', 1)[1]}, skipping",
                video_id=video_id,
                stage=PipelineStage.SKIPPED.value,
            )
            return PipelineOutcome(video_id=video_id, stage=PipelineStage.SKIPPED)

        try:
            return await self._process(video_id)
        except JobError:
            self._log_stage(video_id, PipelineStage.FAILED)
            raise
        except BaseException:
            # Not a job failure; hand the video back for the next delivery
            await self._release(video_id)
            raise

    async def _claim(self, video_id: str) -> ClaimResult:
        self._log_stage(video_id, PipelineStage.MARKING_PROCESSING)
        try:
            claim = await self.store.mark_processing(video_id)
        except Exception as e:
            raise StatusUpdateError(
                f"failed to mark video as processing: {e}", video_id=video_id
            ) from e

        if claim == ClaimResult.NOT_FOUND:
            raise VideoNotFoundError(FAILURE_REASONS[ErrorKind.VIDEO_NOT_FOUND], video_id=video_id)
        if claim == ClaimResult.IN_PROGRESS:
            raise ClaimHeldError(
                "video is being processed by another worker", video_id=video_id
            )
        return claim

    async def _process(self, video_id: str) -> PipelineOutcome:
        try:
            video = await self.store.get_video(video_id, privileged=True)
        except Exception as e:
            raise await self._failed(
                VideoNotFoundError(f"failed to load video: {e}", video_id=video_id)
            ) from e
        if video is None:
            raise await self._failed(
                VideoNotFoundError(FAILURE_REASONS[ErrorKind.VIDEO_NOT_FOUND], video_id=video_id)
            )

        source = self.storage.resolve_upload_path(video.original_path_ref)
        destination = self.storage.processed_path_for(video_id)

        self._log_stage(video_id, PipelineStage.PROBING)
        try:
            duration = await self.media.probe_duration(source)
        except MediaOperationError as e:
            raise await self._failed(ProbeError(str(e), video_id=video_id)) from e

        trimmed = duration > self.config.max_video_duration
        async with AsyncExitStack() as stack:
            if trimmed:
                self._log_stage(video_id, PipelineStage.TRIMMING, duration=duration)
                temp_path = await stack.enter_async_context(
                    temporary_video_file(video_id, self.storage.temp_root)
                )
                try:
                    await self.media.trim(source, temp_path, self.config.max_video_duration)
                except MediaOperationError as e:
                    raise await self._failed(TrimError(str(e), video_id=video_id)) from e
                source = temp_path

            self._log_stage(video_id, PipelineStage.TRANSCODING)
            try:
                await self.media.transcode(source, destination)
            except MediaOperationError as e:
                raise await self._failed(TranscodeError(str(e), video_id=video_id)) from e

            self._log_stage(video_id, PipelineStage.FINALIZING)
            try:
                await self.store.mark_processed(video_id, str(destination))
            except Exception as e:
                raise StatusUpdateError(
                    f"failed to mark video as processed: {e}", video_id=video_id
                ) from e

        self._log_stage(video_id, PipelineStage.DONE, trimmed=trimmed)
        return PipelineOutcome(
            video_id=video_id,
            stage=PipelineStage.DONE,
            processed_path=str(destination),
            duration=duration,
            trimmed=trimmed,
        )

    async def _failed(self, error: JobError) -> JobError:
        """Mark the video failed and hand back the error to raise.

        Recording the failure is best effort; if the store rejects it the
        original error still propagates.
        """
        video_id = error.video_id
        reason = FAILURE_REASONS.get(error.kind, error.message)
        try:
            await self.store.mark_failed(video_id, reason)
        except Exception as e:
            log_error(
                logger,
                f"Failed to mark video {video_id} as failed",
                exception=e,
                video_id=video_id,
                failure_reason=reason,
            )
        return error

    async def _release(self, video_id: str) -> None:
        try:
            released = await self.store.release_claim(video_id)
        except Exception as e:
            log_error(
                logger,
                f"Failed to release processing claim for video {video_id}",
                exception=e,
                video_id=video_id,
            )
            return
        if released:
            log_warning(
                logger,
                f"Processing of video {video_id} interrupted, claim released",
                video_id=video_id,
            )

    def _log_stage(self, video_id: str, stage: PipelineStage, **extra) -> None:
        log_info(
            logger,
            f"Video {video_id}: {stage.value}",
            video_id=video_id,
            stage=stage.value,
            **extra,
        )
