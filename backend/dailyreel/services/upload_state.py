"""Upload/compression state machine

``transition(state, event)`` is a pure function: it never performs I/O and
never mutates its input. Illegal events raise InvalidTransitionError.

    idle -> fileSelected -> compressing -> uploading -> completed
                               |              |
                               +--> error <---+

``completed`` and ``error`` return to ``idle`` on Reset. ``error`` returns to
``fileSelected`` on Retry when the source is still available.
"""
import enum
from dataclasses import dataclass, replace
from typing import Optional, Union

from dailyreel.core.config import settings
from dailyreel.core.errors import InvalidTransitionError
from dailyreel.services.media import SelectedSource, VideoBlob


class UploadPhase(str, enum.Enum):
    IDLE = "idle"
    FILE_SELECTED = "fileSelected"
    COMPRESSING = "compressing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


ACTIVE_PHASES = frozenset({UploadPhase.COMPRESSING, UploadPhase.UPLOADING})


@dataclass(frozen=True)
class UploadState:
    phase: UploadPhase = UploadPhase.IDLE
    source: Optional[SelectedSource] = None
    compressed: Optional[VideoBlob] = None
    progress: int = 0
    message: Optional[str] = None
    error_kind: Optional[str] = None
    split_brain: bool = False
    remote_file_id: Optional[str] = None
    video_id: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.phase in ACTIVE_PHASES


INITIAL_STATE = UploadState()


# --- Events ---

@dataclass(frozen=True)
class SourceSelected:
    source: SelectedSource


@dataclass(frozen=True)
class SelectionRejected:
    message: str
    error_kind: str


@dataclass(frozen=True)
class CompressionStarted:
    pass


@dataclass(frozen=True)
class CompressionFinished:
    blob: VideoBlob


@dataclass(frozen=True)
class ProgressReported:
    percent: int


@dataclass(frozen=True)
class UploadFinished:
    remote_file_id: str
    video_id: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    message: str
    error_kind: str
    split_brain: bool = False
    remote_file_id: Optional[str] = None


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Reset:
    pass


UploadEvent = Union[
    SourceSelected, SelectionRejected, CompressionStarted, CompressionFinished,
    ProgressReported, UploadFinished, Failed, Retry, Reset
]


def _require(state: UploadState, event, *phases: UploadPhase) -> None:
    if state.phase not in phases:
        raise InvalidTransitionError(
            f"Cannot apply {type(event).__name__} while {state.phase.value}"
        )


def _bump(progress: int, percent: int) -> int:
    """Progress never goes down and never exceeds 100"""
    return max(progress, min(100, max(0, int(percent))))


def transition(state: UploadState, event: UploadEvent) -> UploadState:
    """Return the state that follows state after event"""
    idle_like = (UploadPhase.IDLE, UploadPhase.FILE_SELECTED, UploadPhase.COMPLETED, UploadPhase.ERROR)

    if isinstance(event, SourceSelected):
        _require(state, event, *idle_like)
        if event.source.duration > settings.MAX_RECORDING_SECONDS:
            return UploadState(
                message=f"Video must be {settings.MAX_RECORDING_SECONDS:g} seconds or less",
                error_kind="DurationExceededError",
            )
        return UploadState(phase=UploadPhase.FILE_SELECTED, source=event.source)

    if isinstance(event, SelectionRejected):
        _require(state, event, *idle_like)
        return UploadState(message=event.message, error_kind=event.error_kind)

    if isinstance(event, CompressionStarted):
        _require(state, event, UploadPhase.FILE_SELECTED)
        return replace(state, phase=UploadPhase.COMPRESSING, progress=0)

    if isinstance(event, ProgressReported):
        _require(state, event, *ACTIVE_PHASES)
        return replace(state, progress=_bump(state.progress, event.percent))

    if isinstance(event, CompressionFinished):
        _require(state, event, UploadPhase.COMPRESSING)
        if not event.blob:
            return replace(
                state,
                phase=UploadPhase.ERROR,
                message="Video compression produced an empty file",
                error_kind="CompressionFailedError",
            )
        return replace(state, phase=UploadPhase.UPLOADING, compressed=event.blob, progress=_bump(state.progress, 50))

    if isinstance(event, UploadFinished):
        _require(state, event, UploadPhase.UPLOADING)
        return replace(
            state,
            phase=UploadPhase.COMPLETED,
            progress=100,
            remote_file_id=event.remote_file_id,
            video_id=event.video_id,
        )

    if isinstance(event, Failed):
        _require(state, event, *ACTIVE_PHASES)
        return replace(
            state,
            phase=UploadPhase.ERROR,
            message=event.message,
            error_kind=event.error_kind,
            split_brain=event.split_brain,
            remote_file_id=event.remote_file_id or state.remote_file_id,
        )

    if isinstance(event, Retry):
        _require(state, event, UploadPhase.ERROR)
        if state.source is None:
            return INITIAL_STATE
        return UploadState(phase=UploadPhase.FILE_SELECTED, source=state.source)

    if isinstance(event, Reset):
        _require(state, event, *idle_like)
        return INITIAL_STATE

    raise InvalidTransitionError(f"Unknown event {event!r}")
