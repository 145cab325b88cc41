"""In-memory video payloads passed between capture, compression and upload"""
from dataclasses import dataclass


@dataclass(frozen=True)
class VideoBlob:
    data: bytes
    mime_type: str = "video/mp4"
    name: str = "video.mp4"

    @property
    def size(self) -> int:
        return len(self.data)

    def __bool__(self) -> bool:
        return len(self.data) > 0


@dataclass(frozen=True)
class SelectedSource:
    """A blob that passed the duration check and may enter the pipeline"""
    blob: VideoBlob
    duration: float
    origin: str = "file"  # file | recording
