"""Tests for reel_sdk.export.pipeline — strategy selection, fallback, progress."""

import asyncio
import pytest
from unittest.mock import patch

from reel_sdk.config import ExportSettings
from reel_sdk.core.templates import TemplateLibrary
from reel_sdk.core.timeline import Reel, Slide
from reel_sdk.export.delivery import MemoryDelivery
from reel_sdk.export.errors import (
    EmptyReelError,
    EncodeFailure,
    EncoderUnavailable,
    FallbackUnsupportedContainer,
    MuxFinalizeFailure,
    RecorderFailure,
    RenderFailure,
)
from reel_sdk.export.pipeline import (
    STATUS_FALLBACK,
    STATUS_FALLBACK_DONE,
    STATUS_FALLING_BACK,
    STATUS_LOADING,
    STATUS_PRIMARY,
    STATUS_PRIMARY_DONE,
    ExportState,
    ProgressTracker,
    ReelExporter,
    count_frames,
    frame_time,
)
from reel_sdk.export.scheduler import ManualClockScheduler
from reel_sdk.render import renderer


# ── Fakes ───────────────────────────────────────────────────────────────

class FakeSink:
    def __init__(self, fail_at=None, fail_finalize=False):
        self.fail_at = fail_at
        self.fail_finalize = fail_finalize
        self.config = None
        self.frames = []
        self.flushed = False
        self.closed = False

    def configure(self, config):
        self.config = config

    def encode(self, frame):
        if self.fail_at is not None and len(self.frames) == self.fail_at:
            raise EncodeFailure(f"encoder died at frame {self.fail_at}")
        assert not frame.closed
        assert len(frame.data) == frame.width * frame.height * 3
        self.frames.append(frame)

    def flush(self):
        self.flushed = True

    def finalize(self):
        if self.fail_finalize:
            raise MuxFinalizeFailure("moov atom missing")
        return b"mp4:" + str(len(self.frames)).encode()

    def close(self):
        self.closed = True


class FakeRecorder:
    def __init__(self, fail_on_stop=False):
        self.fail_on_stop = fail_on_stop
        self.started_with = None
        self.captures = 0
        self.aborted = False
        self.stopped = False

    def start(self, surface, mime_type, fps, bitrate):
        self.started_with = (surface.size, mime_type, fps, bitrate)

    def capture(self):
        self.captures += 1

    def stop(self):
        if self.fail_on_stop:
            raise RecorderFailure("disk full")
        self.stopped = True
        return [b"webm:", str(self.captures).encode()]

    def abort(self):
        self.aborted = True


class FakeFactory:
    def __init__(self, sink=None, recorder=None, unavailable=False,
                 supported=("video/webm;codecs=vp9", "video/webm")):
        self.sink = sink or FakeSink()
        self.recorder = recorder or FakeRecorder()
        self.unavailable = unavailable
        self.supported = supported
        self.sinks_created = 0

    def create_sink(self):
        if self.unavailable:
            raise EncoderUnavailable("no libx264")
        self.sinks_created += 1
        return self.sink

    def create_recorder(self):
        return self.recorder

    def select_mime_type(self, candidates=None):
        for mime in candidates:
            if mime in self.supported:
                return mime
        raise FallbackUnsupportedContainer("nothing supported")


SETTINGS = ExportSettings(width=54, height=96)


def _exporter(factory, settings=SETTINGS):
    scheduler = ManualClockScheduler()
    delivery = MemoryDelivery()
    exporter = ReelExporter(factory=factory, scheduler=scheduler,
                            delivery=delivery, settings=settings)
    return exporter, scheduler, delivery


def _run(exporter, reel, **kwargs):
    progress, status = [], []
    result = asyncio.run(exporter.export(reel, on_progress=progress.append,
                                         on_status=status.append, **kwargs))
    return result, progress, status


def _non_decreasing(values) -> bool:
    return all(b >= a for a, b in zip(values, values[1:]))


@pytest.fixture
def reel():
    # 4.5 + 4.5 + 4 + 4 = 17s -> 510 frames at 30 fps
    return TemplateLibrary().create_reel("theme_showcase", "classic")


# ── Frame math ──────────────────────────────────────────────────────────

class TestFrameMath:
    def test_count_frames(self):
        assert count_frames(17, 30) == 510
        assert count_frames(5, 24) == 120
        assert count_frames(1.01, 30) == 31

    def test_count_frames_ignores_float_noise(self):
        assert count_frames(0.1 + 0.2, 10) == 3

    def test_frame_time(self):
        assert frame_time(0, 510, 17) == 0
        assert frame_time(255, 510, 17) == pytest.approx(8.5)
        assert frame_time(509, 510, 17) < 17

    def test_keyframe_interval(self):
        assert SETTINGS.keyframe_interval(30) == 60
        assert SETTINGS.keyframe_interval(24) == 48


class TestProgressTracker:
    def test_reports_fraction(self):
        seen = []
        p = ProgressTracker(seen.append)
        p.report(0.25)
        p.complete()
        assert seen == [0.25, 1.0]

    def test_never_decreases(self):
        seen = []
        p = ProgressTracker(seen.append)
        p.report(0.5)
        p.report(0.2)
        assert seen == [0.5, 0.5]

    def test_rebase_maps_onto_remaining_range(self):
        seen = []
        p = ProgressTracker(seen.append)
        p.report(0.5)
        p.rebase()
        p.report(0.0)
        p.report(0.5)
        assert seen == [0.5, 0.5, 0.75]

    def test_without_callback(self):
        p = ProgressTracker()
        p.report(0.3)
        assert p.last == 0.3


# ── Primary strategy ────────────────────────────────────────────────────

class TestPrimaryExport:
    def test_success(self, reel):
        factory = FakeFactory()
        exporter, scheduler, delivery = _exporter(factory)
        result, progress, status = _run(exporter, reel)

        assert result.strategy == "primary"
        assert result.filename == "reel-classic.mp4"
        assert result.mime_type == "video/mp4"
        assert result.frames == 510
        assert delivery.artifacts == {"reel-classic.mp4": (b"mp4:510", "video/mp4")}
        assert status == [STATUS_LOADING, STATUS_PRIMARY, STATUS_PRIMARY_DONE]
        assert result.states == [ExportState.START, ExportState.TRY_PRIMARY, ExportState.SUCCESS]
        assert factory.recorder.started_with is None

    def test_encoder_config(self, reel):
        factory = FakeFactory()
        exporter, _, _ = _exporter(factory)
        _run(exporter, reel)
        config = factory.sink.config
        assert (config.width, config.height) == (54, 96)
        assert config.fps == 30
        assert config.bitrate == 8_000_000
        assert config.keyframe_interval == 60
        assert config.codec == "libx264"

    def test_frame_timing_and_keyframes(self, reel):
        factory = FakeFactory()
        exporter, _, _ = _exporter(factory)
        _run(exporter, reel)
        frames = factory.sink.frames

        assert len(frames) == 510
        assert [f.timestamp_us for f in frames[:3]] == [0, 33333, 66667]
        assert all(f.duration_us == 33333 for f in frames)
        assert all(b.timestamp_us > a.timestamp_us for a, b in zip(frames, frames[1:]))
        assert [i for i, f in enumerate(frames) if f.key_frame] == list(range(0, 510, 60))

    def test_frames_released_after_submission(self, reel):
        factory = FakeFactory()
        exporter, _, _ = _exporter(factory)
        _run(exporter, reel)
        assert all(f.closed and f.data == b"" for f in factory.sink.frames)

    def test_sink_lifecycle(self, reel):
        factory = FakeFactory()
        exporter, _, _ = _exporter(factory)
        _run(exporter, reel)
        assert factory.sink.flushed
        assert factory.sink.closed

    def test_progress(self, reel):
        exporter, _, _ = _exporter(FakeFactory())
        _, progress, _ = _run(exporter, reel)
        assert progress[0] == 0
        assert progress[-1] == 1.0
        assert _non_decreasing(progress)
        assert len(progress) == 511

    def test_cooperative_yield_every_five_frames(self, reel):
        exporter, scheduler, _ = _exporter(FakeFactory())
        _run(exporter, reel)
        assert scheduler.yields == 102

    def test_custom_fps(self, reel):
        factory = FakeFactory()
        exporter, _, _ = _exporter(factory)
        result, _, _ = _run(exporter, reel, fps=24)
        assert result.frames == 408
        assert factory.sink.config.keyframe_interval == 48
        assert factory.sink.frames[1].timestamp_us == 41667

    def test_rendered_frames_reach_encoder_in_order(self):
        times = []
        real_render = renderer.render_frame

        def spy(surface, reel, theme, t, assets=None):
            times.append(t)
            return real_render(surface, reel, theme, t, assets)

        reel = Reel(slides=[Slide(id=1, duration=1)])
        exporter, _, _ = _exporter(FakeFactory())
        with patch("reel_sdk.export.pipeline.render_frame", side_effect=spy):
            _run(exporter, reel)
        assert len(times) == 30
        assert times == sorted(times)
        assert times[0] == 0

    def test_file_prefix(self, reel):
        settings = ExportSettings(width=54, height=96, file_prefix="si-reel")
        exporter, _, delivery = _exporter(FakeFactory(), settings)
        result, _, _ = _run(exporter, reel)
        assert result.filename == "si-reel-classic.mp4"
        assert "si-reel-classic.mp4" in delivery.artifacts


# ── Fallback strategy ───────────────────────────────────────────────────

class TestFallbackExport:
    def test_encode_failure_midway(self, reel):
        factory = FakeFactory(sink=FakeSink(fail_at=100))
        exporter, scheduler, delivery = _exporter(factory)
        result, progress, status = _run(exporter, reel)

        assert result.strategy == "fallback"
        assert result.filename == "reel-classic.webm"
        assert result.mime_type == "video/webm;codecs=vp9"
        assert "frame 100" in result.fallback_reason
        assert list(delivery.artifacts) == ["reel-classic.webm"]
        assert delivery.artifacts["reel-classic.webm"][0] == b"webm:510"

        assert factory.recorder.captures == 510
        assert scheduler.ticks == 510
        assert scheduler.intervals == [pytest.approx(1 / 30)]
        assert factory.sink.closed

        assert _non_decreasing(progress)
        assert progress[-1] == 1.0
        assert status == [STATUS_LOADING, STATUS_PRIMARY, STATUS_FALLING_BACK,
                          STATUS_FALLBACK, STATUS_FALLBACK_DONE]
        assert result.states == [
            ExportState.START, ExportState.TRY_PRIMARY, ExportState.FALLBACK,
            ExportState.FALLBACK_RUN, ExportState.SUCCESS,
        ]

    def test_progress_rebased_after_primary_progress(self, reel):
        exporter, _, _ = _exporter(FakeFactory(sink=FakeSink(fail_at=100)))
        _, progress, _ = _run(exporter, reel)
        primary_last = 99 / 510
        assert progress[99] == pytest.approx(primary_last)
        assert min(progress[100:]) >= primary_last

    def test_encoder_unavailable(self, reel):
        factory = FakeFactory(unavailable=True)
        exporter, _, delivery = _exporter(factory)
        result, progress, status = _run(exporter, reel)

        assert result.strategy == "fallback"
        assert factory.sinks_created == 0
        assert factory.recorder.started_with == ((54, 96), "video/webm;codecs=vp9", 30, 8_000_000)
        assert status == [STATUS_LOADING, STATUS_FALLBACK, STATUS_FALLBACK_DONE]
        assert STATUS_FALLING_BACK not in status
        assert progress[-1] == 1.0
        assert len(progress) == 511
        assert result.states == [
            ExportState.START, ExportState.TRY_PRIMARY, ExportState.FALLBACK,
            ExportState.FALLBACK_RUN, ExportState.SUCCESS,
        ]

    def test_encoder_missing_at_configure(self):
        class MissingBinarySink(FakeSink):
            def configure(self, config):
                raise EncoderUnavailable("ffmpeg vanished")

        factory = FakeFactory(sink=MissingBinarySink())
        exporter, _, _ = _exporter(factory)
        reel = Reel(slides=[Slide(id=1, duration=0.2)])
        result, _, status = _run(exporter, reel)
        assert result.strategy == "fallback"
        assert STATUS_FALLING_BACK not in status
        assert factory.sink.closed

    def test_finalize_failure(self, reel):
        factory = FakeFactory(sink=FakeSink(fail_finalize=True))
        exporter, _, delivery = _exporter(factory)
        result, progress, _ = _run(exporter, reel)
        assert result.strategy == "fallback"
        assert "moov" in result.fallback_reason
        assert list(delivery.artifacts) == ["reel-classic.webm"]
        assert _non_decreasing(progress)
        assert progress[-1] == 1.0

    def test_unexpected_sink_error_triggers_fallback(self, reel):
        class BrokenSink(FakeSink):
            def configure(self, config):
                raise RuntimeError("driver crashed")

        factory = FakeFactory(sink=BrokenSink())
        exporter, _, _ = _exporter(factory)
        result, _, _ = _run(exporter, reel)
        assert result.strategy == "fallback"
        assert factory.sink.closed

    def test_mime_type_preference(self, reel):
        factory = FakeFactory(unavailable=True, supported=("video/webm",))
        exporter, _, _ = _exporter(factory)
        result, _, _ = _run(exporter, reel)
        assert result.mime_type == "video/webm"

    def test_unsupported_container_is_fatal(self, reel):
        factory = FakeFactory(unavailable=True, supported=())
        exporter, _, delivery = _exporter(factory)
        with pytest.raises(FallbackUnsupportedContainer):
            _run(exporter, reel)
        assert delivery.artifacts == {}
        assert exporter.last_states[-1] is ExportState.FATAL

    def test_recorder_failure_is_fatal(self, reel):
        factory = FakeFactory(unavailable=True, recorder=FakeRecorder(fail_on_stop=True))
        exporter, _, delivery = _exporter(factory)
        with pytest.raises(RecorderFailure):
            _run(exporter, reel)
        assert factory.recorder.aborted
        assert delivery.artifacts == {}

    def test_unexpected_recorder_error_wrapped(self, reel):
        class CrashingRecorder(FakeRecorder):
            def capture(self):
                raise RuntimeError("stream gone")

        factory = FakeFactory(unavailable=True, recorder=CrashingRecorder())
        exporter, _, _ = _exporter(factory)
        with pytest.raises(RecorderFailure):
            _run(exporter, reel)
        assert factory.recorder.aborted


# ── Render failures & input validation ──────────────────────────────────

def _failing_render(at_call):
    calls = {"n": 0}
    real_render = renderer.render_frame

    def render(surface, reel, theme, t, assets=None):
        calls["n"] += 1
        if calls["n"] == at_call:
            raise ZeroDivisionError("bad glyph")
        return real_render(surface, reel, theme, t, assets)

    return render


class TestRenderFailure:
    def test_primary_render_failure_is_fatal(self, reel):
        factory = FakeFactory()
        exporter, _, delivery = _exporter(factory)
        with patch("reel_sdk.export.pipeline.render_frame", side_effect=_failing_render(43)):
            with pytest.raises(RenderFailure) as exc:
                _run(exporter, reel)
        assert exc.value.frame == 42
        assert isinstance(exc.value.__cause__, ZeroDivisionError)
        assert factory.recorder.started_with is None
        assert factory.sink.closed
        assert delivery.artifacts == {}
        assert exporter.last_states == [ExportState.START, ExportState.TRY_PRIMARY, ExportState.FATAL]

    def test_fallback_render_failure_is_fatal(self, reel):
        factory = FakeFactory(unavailable=True)
        exporter, _, delivery = _exporter(factory)
        with patch("reel_sdk.export.pipeline.render_frame", side_effect=_failing_render(10)):
            with pytest.raises(RenderFailure) as exc:
                _run(exporter, reel)
        assert exc.value.frame == 9
        assert factory.recorder.aborted
        assert delivery.artifacts == {}
        assert exporter.last_states[-1] is ExportState.FATAL


class TestInputValidation:
    def test_empty_reel_rejected(self):
        factory = FakeFactory()
        exporter, _, delivery = _exporter(factory)
        with pytest.raises(EmptyReelError):
            _run(exporter, Reel())
        assert factory.sinks_created == 0
        assert delivery.artifacts == {}

    def test_unknown_theme_uses_default(self):
        reel = Reel(theme_id="nope", slides=[Slide(id=1, duration=0.2)])
        exporter, _, delivery = _exporter(FakeFactory())
        result, _, _ = _run(exporter, reel)
        assert result.filename == "reel-nope.mp4"
        assert result.frames == 6


# ── Delivery & collaborators ────────────────────────────────────────────

class FailingDelivery:
    def deliver(self, filename, data, mime_type):
        raise OSError("disk full")


class TestDeliveryFailure:
    @pytest.mark.parametrize("unavailable", [False, True])
    def test_delivery_error_is_fatal(self, unavailable):
        factory = FakeFactory(unavailable=unavailable)
        exporter = ReelExporter(factory=factory, scheduler=ManualClockScheduler(),
                                delivery=FailingDelivery(), settings=SETTINGS)
        reel = Reel(slides=[Slide(id=1, duration=0.2)])
        progress, status = [], []
        with pytest.raises(OSError, match="disk full"):
            asyncio.run(exporter.export(reel, on_progress=progress.append,
                                        on_status=status.append))
        assert exporter.last_states[-1] is ExportState.FATAL
        assert ExportState.SUCCESS not in exporter.last_states
        assert STATUS_PRIMARY_DONE not in status
        assert STATUS_FALLBACK_DONE not in status
        assert 1.0 not in progress


class TestExporterDefaults:
    def test_font_sources_reach_font_book(self):
        settings = ExportSettings(width=54, height=96,
                                  font_sources={"Outfit": "https://fonts.example/outfit.ttf"})
        exporter = ReelExporter(factory=FakeFactory(), settings=settings)
        assert exporter.fonts.sources == {"Outfit": "https://fonts.example/outfit.ttf"}
        assert exporter.fonts.cache is exporter.cache
