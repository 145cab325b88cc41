"""Capture source: device recording with a hard duration ceiling, and file selection checks"""
import asyncio
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Optional

from dailyreel.core.config import settings
from dailyreel.core.errors import DeviceAccessError, DurationExceededError, InvalidTransitionError
from dailyreel.services.media import SelectedSource, VideoBlob

capture_logger = logging.getLogger("capture")

PROBE_TIMEOUT = 30.0  # seconds
RECORDER_STOP_TIMEOUT = 10.0  # seconds


def _resolve_binary(configured: Optional[str], name: str) -> Optional[str]:
    return configured or shutil.which(name)


async def probe_duration(blob: VideoBlob, ffprobe_path: Optional[str] = None) -> float:
    """Get video duration in seconds using ffprobe

    Args:
        blob: Video bytes to probe
        ffprobe_path: ffprobe binary (defaults to FFPROBE_PATH or PATH lookup)

    Returns:
        Duration in seconds as float

    Raises:
        DurationExceededError is not raised here; see validate_selection
        ValueError: If ffprobe is missing or the file cannot be decoded
    """
    binary = _resolve_binary(ffprobe_path or settings.FFPROBE_PATH, "ffprobe")
    if not binary:
        raise ValueError("ffprobe is not installed")

    with tempfile.TemporaryDirectory(prefix="dailyreel-probe-") as tmp:
        path = Path(tmp) / (Path(blob.name).name or "input")
        path.write_bytes(blob.data)

        proc = await asyncio.create_subprocess_exec(
            binary,
            '-v', 'error',
            '-show_entries', 'format=duration',
            '-of', 'default=noprint_wrappers=1:nokey=1',
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=PROBE_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ValueError(f"ffprobe timed out after {PROBE_TIMEOUT:g}s")

    if proc.returncode != 0:
        raise ValueError(f"ffprobe failed: {stderr.decode(errors='replace').strip()}")

    duration_str = stdout.decode().strip()
    if not duration_str or duration_str == "N/A":
        raise ValueError("ffprobe returned empty duration")

    duration = float(duration_str)
    if duration <= 0:
        raise ValueError(f"Invalid duration: {duration}")
    return duration


async def validate_selection(
    blob: VideoBlob,
    max_seconds: float = None,
    probe: Callable[[VideoBlob], Awaitable[float]] = probe_duration,
) -> SelectedSource:
    """Accept a user-selected file only if its decoded duration fits the ceiling

    Raises:
        DurationExceededError: If the file is longer than max_seconds
        ValueError: If the file is empty or cannot be probed
    """
    limit = settings.MAX_RECORDING_SECONDS if max_seconds is None else max_seconds
    if not blob:
        raise ValueError("Selected file is empty")

    duration = await probe(blob)
    if duration > limit:
        capture_logger.info(f"Rejected '{blob.name}': {duration:.1f}s exceeds {limit:g}s ceiling")
        raise DurationExceededError(duration, limit)

    return SelectedSource(blob=blob, duration=duration, origin="file")


class Recorder(ABC):
    """Device stream + recorder pair"""

    @abstractmethod
    async def start(self) -> None:
        """Open the devices and begin recording

        Raises:
            DeviceAccessError: If camera or microphone cannot be opened
        """
        pass

    @abstractmethod
    async def stop(self) -> VideoBlob:
        """Stop recording, release the devices and return the recorded bytes"""
        pass


class FFmpegRecorder(Recorder):
    """Records camera + microphone into a WebM file through an ffmpeg child process"""

    def __init__(self, max_seconds: float = None, ffmpeg_path: Optional[str] = None,
                 video_format: str = None, video_device: str = None,
                 audio_format: str = None, audio_device: str = None):
        self.max_seconds = settings.MAX_RECORDING_SECONDS if max_seconds is None else max_seconds
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.video_format = video_format or settings.CAPTURE_VIDEO_FORMAT
        self.video_device = video_device or settings.CAPTURE_VIDEO_DEVICE
        self.audio_format = audio_format or settings.CAPTURE_AUDIO_FORMAT
        self.audio_device = audio_device or settings.CAPTURE_AUDIO_DEVICE
        self._proc = None
        self._tmp = None
        self._output = None

    def build_args(self, binary: str, output: Path):
        return [
            binary, '-hide_banner', '-loglevel', 'error',
            '-f', self.video_format, '-i', self.video_device,
            '-f', self.audio_format, '-i', self.audio_device,
            # Backstop in case the session timer never fires
            '-t', f"{self.max_seconds:g}",
            '-c:v', 'libvpx-vp9', '-deadline', 'realtime', '-b:v', '1M',
            '-c:a', 'libopus',
            '-y', str(output),
        ]

    async def start(self) -> None:
        binary = _resolve_binary(self.ffmpeg_path, "ffmpeg")
        if not binary:
            raise DeviceAccessError("Recording is unavailable: ffmpeg is not installed")

        self._tmp = tempfile.TemporaryDirectory(prefix="dailyreel-capture-")
        self._output = Path(self._tmp.name) / "recording.webm"
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.build_args(binary, self._output),
                stdin=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._cleanup()
            raise DeviceAccessError(f"Failed to access camera/microphone: {e}")

        # A child that exits during the grace period could not open the devices
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=settings.CAPTURE_STARTUP_GRACE_SECONDS)
        except asyncio.TimeoutError:
            capture_logger.info(f"Recording started from {self.video_device} + {self.audio_device}")
            return

        stderr = (await self._proc.stderr.read()).decode(errors="replace").strip()
        self._cleanup()
        capture_logger.error(f"Recorder exited during startup: {stderr}")
        raise DeviceAccessError(f"Failed to access camera/microphone: {stderr or 'device unavailable'}")

    async def stop(self) -> VideoBlob:
        if self._proc is None:
            raise InvalidTransitionError("Recorder was not started")
        try:
            if self._proc.returncode is None:
                try:
                    # ffmpeg finalizes the container when it reads 'q'
                    self._proc.stdin.write(b"q")
                    await self._proc.stdin.drain()
                except (BrokenPipeError, ConnectionResetError):
                    pass
                try:
                    await asyncio.wait_for(self._proc.wait(), timeout=RECORDER_STOP_TIMEOUT)
                except asyncio.TimeoutError:
                    capture_logger.warning("Recorder did not exit after 'q', killing it")
                    self._proc.kill()
                    await self._proc.wait()

            data = self._output.read_bytes() if self._output.exists() else b""
        finally:
            self._cleanup()

        if not data:
            raise DeviceAccessError("Recording produced no data")
        return VideoBlob(data=data, mime_type="video/webm", name="recording.webm")

    def _cleanup(self):
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None


class CaptureSession:
    """One recording with a hard ceiling

    The ceiling timer calls stop() itself. stop() is idempotent: every caller,
    including the timer, shares the same stop and gets the same blob.
    """

    def __init__(self, recorder: Recorder, max_seconds: float = None):
        self.recorder = recorder
        self.max_seconds = settings.MAX_RECORDING_SECONDS if max_seconds is None else max_seconds
        self.auto_stopped = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None

    @property
    def recording(self) -> bool:
        return self._started_at is not None and self._stop_task is None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else asyncio.get_running_loop().time()
        return end - self._started_at

    async def start(self) -> "CaptureSession":
        if self._started_at is not None:
            raise InvalidTransitionError("Recording already started")
        await self.recorder.start()
        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        self._timer = loop.call_later(self.max_seconds, self._auto_stop)
        return self

    def _auto_stop(self) -> None:
        self._timer = None
        if self._stop_task is None:
            capture_logger.info(f"Recording reached the {self.max_seconds:g}s ceiling, stopping")
            self.auto_stopped = True
            self._begin_stop()

    def _begin_stop(self) -> asyncio.Task:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._stopped_at = asyncio.get_running_loop().time()
        self._stop_task = asyncio.ensure_future(self.recorder.stop())
        return self._stop_task

    async def stop(self) -> VideoBlob:
        """Stop recording (no-op if already stopping or stopped) and return the blob"""
        if self._started_at is None:
            raise InvalidTransitionError("Recording has not started")
        task = self._stop_task or self._begin_stop()
        return await asyncio.shield(task)

    async def wait(self) -> VideoBlob:
        """Wait until the recording ends, by manual stop or by the ceiling"""
        if self._started_at is None:
            raise InvalidTransitionError("Recording has not started")
        while self._stop_task is None:
            await asyncio.sleep(0.05)
        return await asyncio.shield(self._stop_task)

    async def finish(self) -> SelectedSource:
        """Stop and hand the recording over as an already-validated source"""
        blob = await self.stop()
        return SelectedSource(blob=blob, duration=min(self.elapsed, self.max_seconds), origin="recording")
