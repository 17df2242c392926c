"""Tests for reel_sdk.export backends — ffmpeg sink/recorder, capabilities, scheduling, delivery."""

import asyncio
import subprocess
import pytest
from unittest.mock import patch, MagicMock

from reel_sdk.config import ExportSettings
from reel_sdk.export.capability import FFmpegCapabilities, SinkFactory, parse_encoders
from reel_sdk.export.delivery import DirectoryDelivery, MemoryDelivery, artifact_filename
from reel_sdk.export.errors import (
    PRIMARY_RECOVERABLE,
    EmptyReelError,
    EncodeFailure,
    EncoderUnavailable,
    ExportError,
    FallbackUnsupportedContainer,
    MuxFinalizeFailure,
    RecorderFailure,
    RenderFailure,
)
from reel_sdk.export.recorder import CHUNK_SIZE, FFmpegSurfaceRecorder, normalize_mime
from reel_sdk.export.scheduler import HostScheduler, ManualClockScheduler
from reel_sdk.export.sinks import EncodableFrame, EncoderConfig, FFmpegVideoSink
from reel_sdk.render.surface import RasterSurface

ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC (codec h264)
 V....D libvpx               libvpx VP8 (codec vp8)
 V....D libvpx-vp9           libvpx VP9 (codec vp9)
 A....D aac                  AAC (Advanced Audio Coding)
"""


def _config(**overrides) -> EncoderConfig:
    values = dict(width=4, height=2, bitrate=1000, fps=30, keyframe_interval=60)
    values.update(overrides)
    return EncoderConfig(**values)


def _frame(index, width=4, height=2, key_frame=False) -> EncodableFrame:
    return EncodableFrame.from_surface(RasterSurface(width, height), index, 30, key_frame)


def _process(returncode=0) -> MagicMock:
    proc = MagicMock()
    proc.wait.return_value = returncode
    proc.poll.return_value = returncode
    proc.stdin.closed = False
    return proc


# ── Errors ──────────────────────────────────────────────────────────────

class TestErrors:
    def test_hierarchy(self):
        for cls in (EmptyReelError, EncoderUnavailable, EncodeFailure, MuxFinalizeFailure,
                    FallbackUnsupportedContainer, RecorderFailure, RenderFailure):
            assert issubclass(cls, ExportError)

    def test_primary_recoverable(self):
        assert set(PRIMARY_RECOVERABLE) == {EncoderUnavailable, EncodeFailure, MuxFinalizeFailure}
        assert RenderFailure not in PRIMARY_RECOVERABLE

    def test_render_failure_message(self):
        err = RenderFailure(12, 0.4, ValueError("boom"))
        assert err.frame == 12
        assert err.t == 0.4
        assert "frame 12" in str(err)
        assert "boom" in str(err)


# ── EncodableFrame ──────────────────────────────────────────────────────

class TestEncodableFrame:
    def test_from_surface(self):
        frame = _frame(3, key_frame=True)
        assert len(frame.data) == 4 * 2 * 3
        assert frame.timestamp_us == 100000
        assert frame.duration_us == 33333
        assert frame.key_frame

    def test_close_releases_data(self):
        frame = _frame(0)
        frame.close()
        assert frame.closed
        assert frame.data == b""

    def test_config_rejects_non_positive(self):
        with pytest.raises(ValueError):
            _config(keyframe_interval=0)


# ── FFmpegVideoSink ─────────────────────────────────────────────────────

class TestFFmpegVideoSink:
    def test_build_command(self, tmp_path):
        cmd = FFmpegVideoSink("ffmpeg").build_command(_config(), tmp_path / "out.mp4")
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-s") + 1] == "4x2"
        assert cmd[cmd.index("-g") + 1] == "60"
        assert cmd[cmd.index("-keyint_min") + 1] == "60"
        assert cmd[cmd.index("-sc_threshold") + 1] == "0"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[-1] == str(tmp_path / "out.mp4")

    @patch("reel_sdk.export.sinks.shutil.which", return_value=None)
    def test_missing_binary(self, mock_which):
        with pytest.raises(EncoderUnavailable):
            FFmpegVideoSink().configure(_config())

    @patch("reel_sdk.export.sinks.subprocess.Popen", side_effect=OSError("exec format error"))
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_popen_failure(self, mock_which, mock_popen):
        sink = FFmpegVideoSink()
        with pytest.raises(EncoderUnavailable):
            sink.configure(_config())
        sink.close()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_full_session(self, mock_which, mock_popen):
        proc = _process()
        mock_popen.return_value = proc
        sink = FFmpegVideoSink()
        sink.configure(_config())

        for i in range(3):
            sink.encode(_frame(i, key_frame=i == 0))
        assert proc.stdin.write.call_count == 3
        assert sink.frames_written == 3
        assert sink.key_frames == [0]

        sink.flush()
        proc.stdin.close.assert_called_once()
        sink.output_path.write_bytes(b"ftyp-moov-mdat")
        assert sink.finalize() == b"ftyp-moov-mdat"

        tmpdir = sink.output_path.parent
        sink.close()
        assert not tmpdir.exists()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_configure_twice(self, mock_which, mock_popen):
        mock_popen.return_value = _process()
        sink = FFmpegVideoSink()
        sink.configure(_config())
        with pytest.raises(EncodeFailure):
            sink.configure(_config())
        sink.close()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_encode_validation(self, mock_which, mock_popen):
        mock_popen.return_value = _process()
        sink = FFmpegVideoSink()
        with pytest.raises(EncodeFailure):
            sink.encode(_frame(0))

        sink.configure(_config())
        sink.encode(_frame(1))
        with pytest.raises(EncodeFailure, match="Non-increasing"):
            sink.encode(_frame(1))
        with pytest.raises(EncodeFailure, match="does not match"):
            sink.encode(_frame(2, width=8))
        released = _frame(3)
        released.close()
        with pytest.raises(EncodeFailure, match="released"):
            sink.encode(released)
        sink.close()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_broken_pipe(self, mock_which, mock_popen):
        proc = _process()
        proc.stdin.write.side_effect = BrokenPipeError()
        mock_popen.return_value = proc
        sink = FFmpegVideoSink()
        sink.configure(_config())
        with pytest.raises(EncodeFailure, match="frame 0"):
            sink.encode(_frame(0))
        sink.close()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_nonzero_exit(self, mock_which, mock_popen):
        mock_popen.return_value = _process(returncode=1)
        sink = FFmpegVideoSink()
        sink.configure(_config())
        with pytest.raises(EncodeFailure, match="code 1"):
            sink.flush()
        sink.close()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_finalize_failures(self, mock_which, mock_popen):
        mock_popen.return_value = _process()
        sink = FFmpegVideoSink()
        sink.configure(_config())
        with pytest.raises(MuxFinalizeFailure):
            sink.finalize()
        sink.flush()
        with pytest.raises(MuxFinalizeFailure, match="no container"):
            sink.finalize()
        sink.output_path.write_bytes(b"")
        with pytest.raises(MuxFinalizeFailure, match="empty"):
            sink.finalize()
        sink.close()

    @patch("reel_sdk.export.sinks.subprocess.Popen")
    @patch("reel_sdk.export.sinks.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_close_kills_running_encoder(self, mock_which, mock_popen):
        proc = _process()
        proc.poll.return_value = None
        mock_popen.return_value = proc
        sink = FFmpegVideoSink()
        sink.configure(_config())
        sink.close()
        proc.kill.assert_called_once()
        sink.close()


# ── FFmpegSurfaceRecorder ───────────────────────────────────────────────

class TestFFmpegSurfaceRecorder:
    def test_normalize_mime(self):
        assert normalize_mime("Video/WebM; codecs=VP9") == "video/webm;codecs=vp9"

    def test_vp9_command(self, tmp_path):
        cmd = FFmpegSurfaceRecorder().build_command("libvpx-vp9", 4, 2, 30, 1000, tmp_path / "o.webm")
        assert "-row-mt" in cmd
        assert cmd[cmd.index("-f", cmd.index("-i")) + 1] == "webm"

    def test_vp8_command(self, tmp_path):
        cmd = FFmpegSurfaceRecorder().build_command("libvpx", 4, 2, 30, 1000, tmp_path / "o.webm")
        assert "-row-mt" not in cmd
        assert cmd[cmd.index("-c:v") + 1] == "libvpx"

    def test_unknown_mime(self):
        with pytest.raises(FallbackUnsupportedContainer):
            FFmpegSurfaceRecorder().start(RasterSurface(4, 2), "video/mp4", 30, 1000)

    @patch("reel_sdk.export.recorder.shutil.which", return_value=None)
    def test_missing_binary(self, mock_which):
        with pytest.raises(RecorderFailure):
            FFmpegSurfaceRecorder().start(RasterSurface(4, 2), "video/webm", 30, 1000)

    @patch("reel_sdk.export.recorder.subprocess.Popen")
    @patch("reel_sdk.export.recorder.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_records_and_chunks(self, mock_which, mock_popen):
        proc = _process()
        mock_popen.return_value = proc
        recorder = FFmpegSurfaceRecorder()
        recorder.start(RasterSurface(4, 2), "video/webm;codecs=vp9", 30, 1000)
        cmd = mock_popen.call_args[0][0]
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"

        for _ in range(4):
            recorder.capture()
        assert recorder.frames_captured == 4
        proc.stdin.write.assert_called_with(b"\x00" * 24)

        output = recorder._tmpdir.name
        payload = b"x" * (CHUNK_SIZE * 2 + 10)
        with open(f"{output}/output.webm", "wb") as f:
            f.write(payload)
        chunks = recorder.stop()
        assert [len(c) for c in chunks] == [CHUNK_SIZE, CHUNK_SIZE, 10]
        assert b"".join(chunks) == payload

    @patch("reel_sdk.export.recorder.subprocess.Popen")
    @patch("reel_sdk.export.recorder.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_capture_write_failure(self, mock_which, mock_popen):
        proc = _process()
        proc.stdin.write.side_effect = BrokenPipeError()
        mock_popen.return_value = proc
        recorder = FFmpegSurfaceRecorder()
        recorder.start(RasterSurface(4, 2), "video/webm", 30, 1000)
        with pytest.raises(RecorderFailure):
            recorder.capture()
        recorder.abort()

    @patch("reel_sdk.export.recorder.subprocess.Popen")
    @patch("reel_sdk.export.recorder.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_nonzero_exit(self, mock_which, mock_popen):
        mock_popen.return_value = _process(returncode=1)
        recorder = FFmpegSurfaceRecorder()
        recorder.start(RasterSurface(4, 2), "video/webm", 30, 1000)
        with pytest.raises(RecorderFailure, match="code 1"):
            recorder.stop()

    def test_capture_before_start(self):
        with pytest.raises(RecorderFailure):
            FFmpegSurfaceRecorder().capture()

    def test_abort_is_safe_when_idle(self):
        FFmpegSurfaceRecorder().abort()


# ── Capabilities & SinkFactory ──────────────────────────────────────────

class TestCapabilities:
    def test_parse_encoders(self):
        assert parse_encoders(ENCODERS_OUTPUT) == ("libx264", "libvpx", "libvpx-vp9")

    def test_parse_empty(self):
        assert parse_encoders("") == ()

    @patch("reel_sdk.export.capability.subprocess.run")
    @patch("reel_sdk.export.capability.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_probe_once(self, mock_which, mock_run):
        mock_run.return_value = MagicMock(stdout=ENCODERS_OUTPUT)
        caps = FFmpegCapabilities()
        assert caps.available
        assert caps.has_encoder("libx264")
        assert caps.supports_mime("video/webm;codecs=vp8")
        assert not caps.supports_mime("video/ogg")
        mock_run.assert_called_once()

    @patch("reel_sdk.export.capability.shutil.which", return_value=None)
    def test_no_binary(self, mock_which):
        caps = FFmpegCapabilities()
        assert not caps.available
        assert caps.encoders == ()

    @patch("reel_sdk.export.capability.subprocess.run",
           side_effect=subprocess.TimeoutExpired("ffmpeg", 10))
    @patch("reel_sdk.export.capability.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_probe_timeout(self, mock_which, mock_run):
        assert FFmpegCapabilities().encoders == ()


def _caps(path="/usr/bin/ffmpeg", encoders=("libx264", "libvpx", "libvpx-vp9")) -> FFmpegCapabilities:
    caps = FFmpegCapabilities()
    caps.__dict__["path"] = path
    caps.__dict__["encoders"] = tuple(encoders)
    return caps


class TestSinkFactory:
    def test_create_sink(self):
        sink = SinkFactory(capabilities=_caps()).create_sink()
        assert isinstance(sink, FFmpegVideoSink)
        assert sink.binary == "/usr/bin/ffmpeg"

    def test_create_sink_without_binary(self):
        with pytest.raises(EncoderUnavailable):
            SinkFactory(capabilities=_caps(path=None, encoders=())).create_sink()

    def test_create_sink_without_codec(self):
        with pytest.raises(EncoderUnavailable, match="libx264"):
            SinkFactory(capabilities=_caps(encoders=("libvpx",))).create_sink()

    def test_select_mime_type_prefers_first(self):
        assert SinkFactory(capabilities=_caps()).select_mime_type() == "video/webm;codecs=vp9"

    def test_select_mime_type_skips_unsupported(self):
        factory = SinkFactory(capabilities=_caps(encoders=("libvpx",)))
        assert factory.select_mime_type() == "video/webm;codecs=vp8"

    def test_select_mime_type_none_supported(self):
        factory = SinkFactory(capabilities=_caps(encoders=("libx264",)))
        with pytest.raises(FallbackUnsupportedContainer):
            factory.select_mime_type()

    def test_create_recorder(self):
        recorder = SinkFactory(capabilities=_caps()).create_recorder()
        assert isinstance(recorder, FFmpegSurfaceRecorder)

    def test_settings_binary(self):
        factory = SinkFactory(ExportSettings(ffmpeg_binary="/opt/ffmpeg"))
        assert factory.capabilities.binary == "/opt/ffmpeg"


# ── Scheduling ──────────────────────────────────────────────────────────

class TestSchedulers:
    def test_host_run_ticks_sync(self):
        seen = []
        asyncio.run(HostScheduler().run_ticks(0.001, 5, seen.append))
        assert seen == [0, 1, 2, 3, 4]

    def test_host_run_ticks_async(self):
        seen = []

        async def tick(i):
            await asyncio.sleep(0)
            seen.append(i)

        asyncio.run(HostScheduler().run_ticks(0, 3, tick))
        assert seen == [0, 1, 2]

    def test_host_cooperative_yield(self):
        asyncio.run(HostScheduler().cooperative_yield())

    def test_manual_clock(self):
        clock_readings = []
        scheduler = ManualClockScheduler(on_advance=clock_readings.append)
        seen = []
        asyncio.run(scheduler.run_ticks(0.5, 4, seen.append))
        assert seen == [0, 1, 2, 3]
        assert scheduler.ticks == 4
        assert scheduler.now == pytest.approx(1.5)
        assert clock_readings == pytest.approx([0.5, 1.0, 1.5])

    def test_manual_yield_count(self):
        scheduler = ManualClockScheduler()

        async def run():
            for _ in range(3):
                await scheduler.cooperative_yield()

        asyncio.run(run())
        assert scheduler.yields == 3


# ── Delivery ────────────────────────────────────────────────────────────

class TestDelivery:
    def test_artifact_filename(self):
        assert artifact_filename("reel", "neon", "mp4") == "reel-neon.mp4"

    def test_directory_delivery(self, tmp_path):
        delivery = DirectoryDelivery(tmp_path / "exports")
        location = delivery.deliver("reel-neon.mp4", b"data", "video/mp4")
        assert (tmp_path / "exports" / "reel-neon.mp4").read_bytes() == b"data"
        assert location == str(tmp_path / "exports" / "reel-neon.mp4")

    def test_directory_delivery_overwrites(self, tmp_path):
        delivery = DirectoryDelivery(tmp_path)
        delivery.deliver("a.webm", b"one", "video/webm")
        delivery.deliver("a.webm", b"two", "video/webm")
        assert (tmp_path / "a.webm").read_bytes() == b"two"

    def test_memory_delivery(self):
        delivery = MemoryDelivery()
        assert delivery.deliver("a.mp4", b"x", "video/mp4") == "a.mp4"
        assert delivery.artifacts == {"a.mp4": (b"x", "video/mp4")}
