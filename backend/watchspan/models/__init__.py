from .base import Base
from .video import Video
from .video_progress import VideoProgress

__all__ = [
    "Base",
    "Video",
    "VideoProgress",
]
