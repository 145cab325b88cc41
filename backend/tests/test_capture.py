"""Capture source tests"""
import asyncio

import pytest

from dailyreel.core.errors import DeviceAccessError, DurationExceededError, InvalidTransitionError
from dailyreel.services.capture import CaptureSession, FFmpegRecorder, validate_selection
from dailyreel.services.media import VideoBlob

from conftest import FakeRecorder, fake_probe, make_video_bytes


@pytest.mark.critical
class TestCaptureSession:

    @pytest.mark.asyncio
    async def test_auto_stop_fires_at_the_ceiling(self):
        recorder = FakeRecorder()
        session = await CaptureSession(recorder, max_seconds=0.05).start()

        blob = await asyncio.wait_for(session.wait(), timeout=2)

        assert session.auto_stopped is True
        assert recorder.stop_calls == 1
        assert blob.data == b"webm-bytes"
        assert 0.04 <= session.elapsed < 1.0

    @pytest.mark.asyncio
    async def test_manual_stop_prevents_auto_stop(self):
        recorder = FakeRecorder()
        session = await CaptureSession(recorder, max_seconds=0.05).start()

        await session.stop()
        await asyncio.sleep(0.1)

        assert session.auto_stopped is False
        assert recorder.stop_calls == 1

    @pytest.mark.asyncio
    async def test_double_stop_is_a_no_op(self):
        recorder = FakeRecorder()
        session = await CaptureSession(recorder, max_seconds=5).start()

        first = await session.stop()
        second = await session.stop()

        assert first == second
        assert recorder.stop_calls == 1

    @pytest.mark.asyncio
    async def test_stop_after_auto_stop_returns_same_blob(self):
        recorder = FakeRecorder()
        session = await CaptureSession(recorder, max_seconds=0.01).start()
        auto = await session.wait()

        assert await session.stop() == auto
        assert recorder.stop_calls == 1

    @pytest.mark.asyncio
    async def test_device_denial_surfaces_device_access_error(self):
        recorder = FakeRecorder(start_error=DeviceAccessError())
        session = CaptureSession(recorder, max_seconds=5)

        with pytest.raises(DeviceAccessError):
            await session.start()
        with pytest.raises(InvalidTransitionError):
            await session.stop()

    @pytest.mark.asyncio
    async def test_finish_hands_over_a_recording_source(self):
        session = await CaptureSession(FakeRecorder(), max_seconds=5).start()

        source = await session.finish()

        assert source.origin == "recording"
        assert source.duration <= 5
        assert source.blob.mime_type == "video/webm"


@pytest.mark.critical
class TestValidateSelection:

    @pytest.mark.asyncio
    async def test_95_second_file_is_rejected(self):
        with pytest.raises(DurationExceededError) as exc_info:
            await validate_selection(VideoBlob(data=make_video_bytes(95, 100)), probe=fake_probe)

        assert exc_info.value.duration == 95
        assert exc_info.value.limit == 90

    @pytest.mark.asyncio
    async def test_file_at_the_ceiling_is_accepted(self):
        source = await validate_selection(VideoBlob(data=make_video_bytes(90, 100)), probe=fake_probe)

        assert source.duration == 90
        assert source.origin == "file"

    @pytest.mark.asyncio
    async def test_empty_file_is_rejected_without_probing(self):
        async def probe(blob):
            raise AssertionError("should not probe")

        with pytest.raises(ValueError):
            await validate_selection(VideoBlob(data=b""), probe=probe)


@pytest.mark.medium
def test_recorder_args_cap_duration_and_write_webm(tmp_path):
    recorder = FFmpegRecorder(max_seconds=90, video_format="v4l2", video_device="/dev/video0",
                              audio_format="alsa", audio_device="default")

    args = recorder.build_args("ffmpeg", tmp_path / "out.webm")

    assert args[args.index("-t") + 1] == "90"
    assert ["-f", "v4l2", "-i", "/dev/video0"] == args[args.index("v4l2") - 1:args.index("v4l2") + 3]
    assert args[-1].endswith("out.webm")
