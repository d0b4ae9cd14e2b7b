"""Local storage roots for raw uploads and processed videos.

The worker never reads or writes bytes through this module; it only resolves
where the raw upload lives and where the processed asset must be written.
"""

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from videoworker.core.config import settings


PROCESSED_SUFFIX = "_processed.mp4"

_SAFE_FILE_STEM = re.compile(r"[A-Za-z0-9_-][A-Za-z0-9._-]*")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_file_stem(video_id: str) -> str:
    """Make a video id usable as a single path component.

    Ids that are already safe are used unchanged. Any other id is
    sanitized and tagged with a digest of the raw id after a ``~``, which
    safe ids never contain, so distinct ids never share a file name.
    """
    if _SAFE_FILE_STEM.fullmatch(video_id):
        return video_id
    digest = hashlib.sha256(video_id.encode("utf-8", "surrogatepass")).hexdigest()[:16]
    stem = _UNSAFE_FILENAME_CHARS.sub("_", video_id).lstrip(".")
    return f"{stem}~{digest}"


@dataclass(frozen=True)
class StorageConfig:
    """Storage configuration."""
    upload_path: str
    processed_path: str
    temp_path: Optional[str] = None


class LocalStorage:
    """Local filesystem storage roots."""

    def __init__(self, config: StorageConfig):
        self.upload_root = Path(config.upload_path)
        self.processed_root = Path(config.processed_path)
        self.temp_root = Path(config.temp_path) if config.temp_path else None

    def ensure_directories(self) -> None:
        """Create the processed and temp roots if missing."""
        self.processed_root.mkdir(parents=True, exist_ok=True)
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)

    def resolve_upload_path(self, original_path_ref: str) -> Path:
        """Resolve a stored reference to the raw upload on disk.

        Relative references live under the upload root; absolute ones are
        used unchanged.
        """
        ref = Path(original_path_ref)
        if ref.is_absolute():
            return ref
        return self.upload_root / ref

    def processed_path_for(self, video_id: str) -> Path:
        """Get the destination path of the processed asset for a video."""
        return self.processed_root / f"{safe_file_stem(video_id)}{PROCESSED_SUFFIX}"

    def get_processed_file_path(self, video_id: str) -> Path:
        """Get the processed asset for a video, which must already exist.

        Raises:
            FileNotFoundError: If the video has not been processed yet
        """
        path = self.processed_path_for(video_id)
        if not path.is_file():
            raise FileNotFoundError(f"processed file not found: {path}")
        return path


def get_storage() -> LocalStorage:
    """Build storage from the worker settings."""
    return LocalStorage(
        StorageConfig(
            upload_path=settings.UPLOAD_PATH,
            processed_path=settings.PROCESSED_PATH,
            temp_path=settings.TEMP_PATH,
        )
    )
