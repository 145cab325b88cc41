"""Compression engine tests"""
import asyncio
import shutil
import subprocess
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from dailyreel.core.errors import BusyError, CompressionFailedError
from dailyreel.services.compression import PRESETS, CompressionEngine, build_ffmpeg_args, get_preset
from dailyreel.services.media import VideoBlob

HAS_FFMPEG = shutil.which("ffmpeg") is not None


class FakeProcess:
    def __init__(self, returncode=0, stdout=b"", stderr=b"", delay=0.0, output=None, output_bytes=b""):
        self.returncode = None
        self._returncode = returncode
        self._stdout = stdout
        self._stderr = stderr
        self._delay = delay
        self._output = output
        self._output_bytes = output_bytes

    async def communicate(self):
        await asyncio.sleep(self._delay)
        if self._output is not None and self._output_bytes:
            self._output.write_bytes(self._output_bytes)
        self.returncode = self._returncode
        return self._stdout, self._stderr

    def kill(self):
        self.returncode = -9

    async def wait(self):
        return self.returncode


def fake_ffmpeg(output_bytes=b"compressed", returncode=0, stderr=b"", delay=0.0):
    """create_subprocess_exec stand-in: '-version' succeeds, transcodes write output_bytes"""
    spawned = []

    async def spawn(*args, **kwargs):
        spawned.append(args)
        if "-version" in args:
            return FakeProcess(stdout=b"ffmpeg version 6.1")
        return FakeProcess(returncode=returncode, stderr=stderr, delay=delay,
                           output=Path(args[-1]), output_bytes=output_bytes)

    return spawn, spawned


@pytest.mark.high
class TestPresets:

    def test_lower_presets_compress_harder(self):
        assert PRESETS["low"].crf > PRESETS["medium"].crf > PRESETS["high"].crf
        assert PRESETS["low"].max_width < PRESETS["medium"].max_width
        assert PRESETS["high"].max_width is None

    def test_args_are_deterministic(self, tmp_path):
        preset = get_preset("low")
        args = build_ffmpeg_args("ffmpeg", tmp_path / "in.webm", tmp_path / "out.mp4", preset)

        assert args == build_ffmpeg_args("ffmpeg", tmp_path / "in.webm", tmp_path / "out.mp4", preset)
        assert args[args.index("-crf") + 1] == "28"
        assert args[args.index("-vf") + 1] == "scale='min(640,iw)':-2"

    def test_high_keeps_resolution(self, tmp_path):
        args = build_ffmpeg_args("ffmpeg", tmp_path / "in", tmp_path / "out.mp4", get_preset("high"))
        assert "-vf" not in args

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            get_preset("ultra")


@pytest.mark.critical
class TestCompressionEngine:

    @pytest.mark.asyncio
    async def test_compress_returns_engine_output(self):
        spawn, _ = fake_ffmpeg(output_bytes=b"small-mp4")
        engine = CompressionEngine(ffmpeg_path="/usr/bin/ffmpeg")

        with patch("asyncio.create_subprocess_exec", spawn):
            result = await engine.compress(VideoBlob(data=b"raw-video", name="clip.webm"), "medium")

        assert result.data == b"small-mp4"
        assert result.mime_type == "video/mp4"
        assert result.name == "clip.mp4"

    @pytest.mark.asyncio
    async def test_engine_loads_once(self):
        spawn, spawned = fake_ffmpeg()
        engine = CompressionEngine(ffmpeg_path="/usr/bin/ffmpeg")

        with patch("asyncio.create_subprocess_exec", spawn):
            await engine.compress(VideoBlob(data=b"a"), "low")
            await engine.compress(VideoBlob(data=b"b"), "low")

        assert sum(1 for args in spawned if "-version" in args) == 1
        assert engine.loaded

    @pytest.mark.asyncio
    async def test_second_call_while_busy_is_rejected(self):
        spawn, _ = fake_ffmpeg(delay=0.1)
        engine = CompressionEngine(ffmpeg_path="/usr/bin/ffmpeg")

        with patch("asyncio.create_subprocess_exec", spawn):
            first = asyncio.ensure_future(engine.compress(VideoBlob(data=b"a"), "low"))
            await asyncio.sleep(0.01)
            assert engine.busy
            with pytest.raises(BusyError):
                await engine.compress(VideoBlob(data=b"b"), "low")
            assert (await first).data == b"compressed"

        assert not engine.busy

    @pytest.mark.asyncio
    async def test_empty_output_is_a_failure(self):
        spawn, _ = fake_ffmpeg(output_bytes=b"")
        engine = CompressionEngine(ffmpeg_path="/usr/bin/ffmpeg")

        with patch("asyncio.create_subprocess_exec", spawn):
            with pytest.raises(CompressionFailedError):
                await engine.compress(VideoBlob(data=b"raw"), "medium")

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_failure(self):
        spawn, _ = fake_ffmpeg(returncode=1, stderr=b"Invalid data found when processing input")
        engine = CompressionEngine(ffmpeg_path="/usr/bin/ffmpeg")

        with patch("asyncio.create_subprocess_exec", spawn):
            with pytest.raises(CompressionFailedError) as exc_info:
                await engine.compress(VideoBlob(data=b"raw"), "medium")

        assert "Invalid data" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_ffmpeg_is_a_failure(self):
        engine = CompressionEngine()

        with patch("dailyreel.services.compression.shutil.which", return_value=None), \
                patch.object(engine, "_configured_path", None):
            with pytest.raises(CompressionFailedError):
                await engine.compress(VideoBlob(data=b"raw"), "medium")

        assert not engine.busy

    @pytest.mark.asyncio
    async def test_empty_input_is_never_transcoded(self):
        spawn = AsyncMock()
        engine = CompressionEngine(ffmpeg_path="/usr/bin/ffmpeg")

        with patch("asyncio.create_subprocess_exec", spawn):
            with pytest.raises(CompressionFailedError):
                await engine.compress(VideoBlob(data=b""), "medium")

        spawn.assert_not_called()


@pytest.mark.medium
@pytest.mark.skipif(not HAS_FFMPEG, reason="ffmpeg not installed")
class TestRealFFmpeg:

    @pytest.fixture
    def sample_video(self, tmp_path) -> VideoBlob:
        path = tmp_path / "sample.mp4"
        subprocess.run(
            ["ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
             "-f", "lavfi", "-i", "testsrc2=size=1280x720:rate=30:duration=3",
             "-f", "lavfi", "-i", "sine=frequency=440:duration=3",
             "-c:v", "libx264", "-crf", "10", "-c:a", "aac", "-shortest", str(path)],
            check=True
        )
        return VideoBlob(data=path.read_bytes(), name="sample.mp4")

    @pytest.mark.asyncio
    async def test_output_size_grows_with_preset_quality(self, sample_video):
        engine = CompressionEngine()
        sizes = {}
        for preset in ("low", "medium", "high"):
            sizes[preset] = (await engine.compress(sample_video, preset)).size

        assert all(size > 0 for size in sizes.values())
        assert sizes["low"] <= sizes["medium"] <= sizes["high"]
