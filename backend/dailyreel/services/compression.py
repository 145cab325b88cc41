"""Compression engine: ffmpeg transcode with quality presets

One engine instance is shared by the whole process (owned by app.state).
The ffmpeg binary is located and checked lazily on first use, then reused.
Only one transcode may run at a time; a second call is rejected with BusyError.
"""
import asyncio
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from dailyreel.core.config import settings
from dailyreel.core.errors import BusyError, CompressionFailedError
from dailyreel.core.metrics import compression_duration_histogram
from dailyreel.core.otel import get_tracer
from dailyreel.services.media import VideoBlob

compression_logger = logging.getLogger("compression")
tracer = get_tracer()

OUTPUT_MIME_TYPE = "video/mp4"


@dataclass(frozen=True)
class CompressionPreset:
    name: str
    crf: int  # x264 quality factor, higher = smaller
    speed: str  # x264 preset
    max_width: Optional[int]  # None keeps the source resolution
    audio_bitrate: str


PRESETS: Dict[str, CompressionPreset] = {
    "low": CompressionPreset("low", crf=28, speed="fast", max_width=640, audio_bitrate="64k"),
    "medium": CompressionPreset("medium", crf=23, speed="medium", max_width=854, audio_bitrate="96k"),
    "high": CompressionPreset("high", crf=18, speed="slow", max_width=None, audio_bitrate="128k"),
}


def get_preset(name: str) -> CompressionPreset:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset '{name}'. Expected one of: {', '.join(PRESETS)}")


def build_ffmpeg_args(binary: str, source: Path, output: Path, preset: CompressionPreset) -> List[str]:
    """Build the ffmpeg command line for a preset"""
    args = [
        binary, '-hide_banner', '-loglevel', 'error', '-y',
        '-i', str(source),
        '-c:v', 'libx264',
        '-crf', str(preset.crf),
        '-preset', preset.speed,
        '-pix_fmt', 'yuv420p',
    ]
    if preset.max_width:
        # Downscale only, keep aspect ratio, keep height even for yuv420p
        args += ['-vf', f"scale='min({preset.max_width},iw)':-2"]
    args += [
        '-c:a', 'aac', '-b:a', preset.audio_bitrate,
        '-movflags', '+faststart',
        str(output),
    ]
    return args


class CompressionEngine:
    """Process-wide transcoding engine handle"""

    def __init__(self, ffmpeg_path: Optional[str] = None, work_dir: Optional[Path] = None):
        self._configured_path = ffmpeg_path or settings.FFMPEG_PATH
        self.work_dir = work_dir or settings.FFMPEG_WORK_DIR
        self.binary: Optional[str] = None
        self.version: Optional[str] = None
        self._lock = asyncio.Lock()
        self._load_lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self.binary is not None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def load(self) -> None:
        """Locate ffmpeg and check it runs (once per engine)

        Raises:
            CompressionFailedError: If ffmpeg is missing or unusable
        """
        async with self._load_lock:
            if self.loaded:
                return

            binary = self._configured_path or shutil.which("ffmpeg")
            if not binary:
                raise CompressionFailedError("Compression engine unavailable: ffmpeg is not installed")

            try:
                proc = await asyncio.create_subprocess_exec(
                    binary, '-hide_banner', '-version',
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                stdout, stderr = await proc.communicate()
            except OSError as e:
                raise CompressionFailedError(f"Compression engine failed to start: {e}")

            if proc.returncode != 0:
                raise CompressionFailedError(
                    f"Compression engine failed to start: {stderr.decode(errors='replace').strip()}"
                )

            self.version = stdout.decode(errors="replace").splitlines()[0] if stdout else "unknown"
            self.binary = binary
            compression_logger.info(f"Compression engine loaded: {self.version}")

    async def compress(self, blob: VideoBlob, preset: str = "medium") -> VideoBlob:
        """Transcode blob with the given preset

        Raises:
            BusyError: If another compression is already running
            CompressionFailedError: If the engine cannot load, ffmpeg fails or the output is empty
            ValueError: If the preset is unknown
        """
        if self._lock.locked():
            raise BusyError()

        async with self._lock:
            spec = get_preset(preset)
            if not blob:
                raise CompressionFailedError("Nothing to compress: input is empty")
            await self.load()

            started = time.monotonic()
            with tempfile.TemporaryDirectory(prefix="dailyreel-compress-", dir=self.work_dir) as tmp:
                suffix = Path(blob.name).suffix or ".bin"
                source = Path(tmp) / f"input{suffix}"
                output = Path(tmp) / "output.mp4"
                source.write_bytes(blob.data)

                with tracer.start_as_current_span("ffmpeg.compress") as span:
                    span.set_attribute("dailyreel.preset", spec.name)
                    span.set_attribute("dailyreel.input_bytes", blob.size)
                    data = await self._run(build_ffmpeg_args(self.binary, source, output, spec), output)

            elapsed = time.monotonic() - started
            compression_duration_histogram.labels(preset=spec.name).observe(elapsed)
            compression_logger.info(
                f"Compressed {blob.size} -> {len(data)} bytes with preset '{spec.name}' in {elapsed:.1f}s",
                extra={"preset": spec.name, "original_size": blob.size, "compressed_size": len(data)}
            )
            return VideoBlob(data=data, mime_type=OUTPUT_MIME_TYPE, name=f"{Path(blob.name).stem or 'video'}.mp4")

    async def _run(self, args: List[str], output: Path) -> bytes:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # Abandoned run: do not leave the child transcoding in the background
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            compression_logger.info("Compression cancelled")
            raise

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            compression_logger.error(f"ffmpeg exited with code {proc.returncode}: {detail}")
            raise CompressionFailedError(f"Video compression failed: {detail[-300:] or 'ffmpeg error'}")

        data = output.read_bytes() if output.exists() else b""
        if not data:
            raise CompressionFailedError("Video compression produced an empty file")
        return data
