"""Drives one upload session through the state machine

The session runs capture/selection -> compression -> upload strictly in order
and feeds every outcome into ``transition``. Failures always end in the
``error`` state with the error's message and kind; nothing is retried
automatically.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from dailyreel.core.config import settings
from dailyreel.core.errors import DailyReelError, DurationExceededError
from dailyreel.core.metrics import failed_uploads_counter
from dailyreel.services.capture import validate_selection
from dailyreel.services.compression import CompressionEngine, get_preset
from dailyreel.services.media import SelectedSource, VideoBlob
from dailyreel.services.upload_pipeline import UploadDestination, UploadPipeline, UploadResult
from dailyreel.services.upload_state import (
    INITIAL_STATE, CompressionFinished, CompressionStarted, Failed, ProgressReported, Reset,
    Retry, SelectionRejected, SourceSelected, UploadEvent, UploadFinished, UploadPhase,
    UploadState, transition
)

upload_logger = logging.getLogger("upload")

PROGRESS_COMPRESSION_STARTED = 5


class UploadSession:
    """One UI upload session

    Args:
        engine: Shared compression engine
        pipeline: Upload pipeline for the session's owner
        validate: Duration check for picked files
        on_change: Called with every new state
    """

    def __init__(self, engine: CompressionEngine, pipeline: UploadPipeline,
                 validate: Callable[[VideoBlob], Awaitable[SelectedSource]] = validate_selection,
                 on_change: Optional[Callable[[UploadState], None]] = None):
        self.engine = engine
        self.pipeline = pipeline
        self.validate = validate
        self.on_change = on_change
        self.result: Optional[UploadResult] = None
        self._state = INITIAL_STATE

    @property
    def state(self) -> UploadState:
        return self._state

    def _apply(self, event: UploadEvent) -> UploadState:
        self._state = transition(self._state, event)
        if self.on_change is not None:
            self.on_change(self._state)
        return self._state

    def _fail(self, exc: BaseException, message: Optional[str] = None) -> UploadState:
        kind = exc.kind if isinstance(exc, DailyReelError) else type(exc).__name__
        failed_uploads_counter.labels(error_kind=kind).inc()
        upload_logger.error(f"Upload session failed at {self._state.progress}% ({kind}): {exc}")
        return self._apply(Failed(
            message=message or getattr(exc, "message", None) or str(exc),
            error_kind=kind,
            split_brain=getattr(exc, "split_brain", False),
            remote_file_id=getattr(exc, "remote_file_id", None),
        ))

    async def select_file(self, blob: VideoBlob) -> UploadState:
        """Validate a picked file; an overlong or unreadable file never leaves this method"""
        try:
            source = await self.validate(blob)
        except DurationExceededError as e:
            return self._apply(SelectionRejected(e.message, e.kind))
        except ValueError as e:
            upload_logger.warning(f"Rejected selected file '{blob.name}': {e}")
            return self._apply(SelectionRejected(f"Could not read the selected video: {e}", "InvalidFileError"))
        return self._apply(SourceSelected(source))

    def select_recording(self, source: SelectedSource) -> UploadState:
        return self._apply(SourceSelected(source))

    async def start(self, destination: UploadDestination, preset: str = None) -> UploadState:
        """Compress and upload the selected source

        Returns the final state (completed or error).

        Raises:
            InvalidTransitionError: If no source is selected or a run is active
            ValueError: If the preset is unknown
        """
        preset = get_preset(preset or settings.DEFAULT_COMPRESSION_PRESET).name
        self._apply(CompressionStarted())
        source = self._state.source

        try:
            self._apply(ProgressReported(PROGRESS_COMPRESSION_STARTED))
            try:
                compressed = await self.engine.compress(source.blob, preset)
            except DailyReelError as e:
                return self._fail(e)

            if self._apply(CompressionFinished(compressed)).phase is UploadPhase.ERROR:
                failed_uploads_counter.labels(error_kind=self._state.error_kind).inc()
                return self._state

            target = replace(
                destination,
                original_size=destination.original_size or source.blob.size,
                duration_seconds=destination.duration_seconds or source.duration,
            )
            try:
                self.result = await self.pipeline.upload(
                    compressed, target,
                    on_progress=lambda percent: self._apply(ProgressReported(percent))
                )
            except DailyReelError as e:
                return self._fail(e)

            return self._apply(UploadFinished(self.result.remote_file_id, self.result.video_id))
        except asyncio.CancelledError as e:
            self._fail(e, message="Upload cancelled")
            raise
        except Exception as e:
            upload_logger.exception(f"Unexpected error during upload session: {e}")
            self._fail(e, message="Something went wrong while uploading")
            raise

    def retry(self) -> UploadState:
        self.result = None
        return self._apply(Retry())

    def reset(self) -> UploadState:
        self.result = None
        return self._apply(Reset())
