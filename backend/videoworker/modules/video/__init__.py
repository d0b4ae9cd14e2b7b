"""Video module: video record model and status store."""

from videoworker.modules.video.models import Video, VideoRecord, VideoStatus, TERMINAL_STATUSES
from videoworker.modules.video.repository import ClaimResult, TransitionRejected, VideoRepository
from videoworker.modules.video.store import SQLAlchemyVideoStatusStore, VideoStatusStore

__all__ = [
    # Models
    "Video",
    "VideoRecord",
    "VideoStatus",
    "TERMINAL_STATUSES",
    # Repository
    "ClaimResult",
    "TransitionRejected",
    "VideoRepository",
    # Store
    "SQLAlchemyVideoStatusStore",
    "VideoStatusStore",
]
