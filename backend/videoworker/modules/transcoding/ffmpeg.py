"""FFmpeg media operations.

Duration probing, trimming and transcoding run as ffprobe/ffmpeg
subprocesses. Each invocation is bounded by a timeout and is terminated
(SIGTERM, then SIGKILL after a grace period) when the calling task is
cancelled, so a worker shutdown never leaves an orphaned encoder behind.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union

from videoworker.core.config import settings
from videoworker.core.metrics import (
    MEDIA_OPERATION_DURATION_SECONDS,
    MEDIA_OPERATION_FAILURES_TOTAL,
)
from videoworker.modules.transcoding.models import (
    Resolution,
    get_recommended_bitrate,
    get_resolution_dimensions,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Keep the tail of stderr; ffmpeg prints the actual error last
STDERR_TAIL_CHARS = 2000


class MediaOperationError(Exception):
    """A media operation failed or timed out."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class MediaOperations(Protocol):
    """Opaque media capabilities the pipeline orchestrates."""

    async def probe_duration(self, path: PathLike) -> float:
        ...

    async def trim(self, source: PathLike, destination: PathLike, max_seconds: int) -> None:
        ...

    async def transcode(self, source: PathLike, destination: PathLike) -> None:
        ...


@dataclass
class FFmpegConfig:
    """Configuration for FFmpeg media operations."""
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    resolution: Resolution = Resolution.RES_720P
    preset: str = "medium"
    audio_bitrate: int = 128000  # 128 kbps
    keyframe_interval: int = 2  # seconds
    timeout: float = 1200.0
    terminate_grace: float = 10.0


async def stop_process(process: asyncio.subprocess.Process, grace: float) -> None:
    """Terminate a subprocess, killing it if it outlives the grace period."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning("Media process %s ignored SIGTERM, killing", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


async def run_media_command(
    cmd: list[str],
    timeout: float,
    terminate_grace: float,
) -> tuple[int, str, str]:
    """Run a media command to completion.

    Returns:
        Tuple of (returncode, stdout, stderr)

    Raises:
        MediaOperationError: If the binary is missing or the command times out
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise MediaOperationError(Path(cmd[0]).name, str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await stop_process(process, terminate_grace)
        raise MediaOperationError(Path(cmd[0]).name, f"timed out after {timeout:.0f}s")
    except asyncio.CancelledError:
        await stop_process(process, terminate_grace)
        raise

    return (
        process.returncode,
        stdout.decode("utf-8", errors="ignore"),
        stderr.decode("utf-8", errors="ignore"),
    )


class FFmpegMediaOperations:
    """ffprobe/ffmpeg implementation of the media operations."""

    def __init__(self, config: FFmpegConfig):
        self.config = config

    def build_probe_command(self, path: PathLike) -> list[str]:
        return [
            self.config.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            str(path),
        ]

    def build_trim_command(
        self,
        source: PathLike,
        destination: PathLike,
        max_seconds: int,
    ) -> list[str]:
        return [
            self.config.ffmpeg_path,
            "-y",
            "-i", str(source),
            "-t", str(max_seconds),
            "-c", "copy",
            "-movflags", "+faststart",
            str(destination),
        ]

    def build_transcode_command(self, source: PathLike, destination: PathLike) -> list[str]:
        """Build the ffmpeg command that scales and pads to the target resolution."""
        width, height = get_resolution_dimensions(self.config.resolution)
        bitrate = get_recommended_bitrate(self.config.resolution)

        return [
            self.config.ffmpeg_path,
            "-y",  # Overwrite output
            "-i", str(source),
            # Video settings
            "-c:v", "libx264",
            "-preset", self.config.preset,
            "-b:v", str(bitrate),
            "-maxrate", str(int(bitrate * 1.5)),
            "-bufsize", str(int(bitrate * 2)),
            "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease,pad={width}:{height}:(ow-iw)/2:(oh-ih)/2",
            "-g", str(self.config.keyframe_interval * 30),  # Keyframe interval in frames (assuming 30fps)
            # Audio settings
            "-c:a", "aac",
            "-b:a", str(self.config.audio_bitrate),
            "-ar", "48000",
            "-ac", "2",
            # Output format
            "-movflags", "+faststart",
            "-f", "mp4",
            str(destination),
        ]

    async def _run(self, operation: str, cmd: list[str]) -> str:
        with MEDIA_OPERATION_DURATION_SECONDS.labels(operation=operation).time():
            try:
                returncode, stdout, stderr = await run_media_command(
                    cmd, self.config.timeout, self.config.terminate_grace
                )
            except MediaOperationError:
                MEDIA_OPERATION_FAILURES_TOTAL.labels(operation=operation).inc()
                raise

        if returncode != 0:
            MEDIA_OPERATION_FAILURES_TOTAL.labels(operation=operation).inc()
            raise MediaOperationError(
                operation,
                f"exit code {returncode}: {stderr.strip()[-STDERR_TAIL_CHARS:]}",
            )
        return stdout

    async def probe_duration(self, path: PathLike) -> float:
        """Get the container duration in seconds."""
        stdout = await self._run("probe", self.build_probe_command(path))
        try:
            duration = float(json.loads(stdout)["format"]["duration"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            MEDIA_OPERATION_FAILURES_TOTAL.labels(operation="probe").inc()
            raise MediaOperationError("probe", f"no duration in ffprobe output: {e}") from e
        if duration < 0:
            MEDIA_OPERATION_FAILURES_TOTAL.labels(operation="probe").inc()
            raise MediaOperationError("probe", f"negative duration {duration}")
        return duration

    async def trim(self, source: PathLike, destination: PathLike, max_seconds: int) -> None:
        """Cut the video down to its first ``max_seconds`` seconds."""
        try:
            await self._run("trim", self.build_trim_command(source, destination, max_seconds))
        except MediaOperationError:
            Path(destination).unlink(missing_ok=True)
            raise

    async def transcode(self, source: PathLike, destination: PathLike) -> None:
        """Transcode to the configured target resolution."""
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        try:
            await self._run("transcode", self.build_transcode_command(source, destination))
        except (MediaOperationError, asyncio.CancelledError):
            # Never leave a partial asset at the destination
            Path(destination).unlink(missing_ok=True)
            raise


def get_media_operations() -> FFmpegMediaOperations:
    """Build media operations from the worker settings."""
    return FFmpegMediaOperations(
        FFmpegConfig(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            resolution=settings.TARGET_RESOLUTION,
            timeout=settings.MEDIA_OPERATION_TIMEOUT_SECONDS,
            terminate_grace=settings.MEDIA_TERMINATE_GRACE_SECONDS,
        )
    )
