"""Reel export pipeline.

Renders every frame of a reel and encodes it. The primary strategy pushes
frames through a ``VideoSink`` into an MP4; if that is unavailable or
fails for any reason other than rendering, the whole reel is re-rendered
through a ``SurfaceRecorder`` into a WebM instead.

    START -> TRY_PRIMARY -> SUCCESS
                         -> FALLBACK -> FALLBACK_RUN -> SUCCESS | FATAL
"""

import asyncio
import logging
import math
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from ..config import ExportSettings
from ..core.assets import AssetCache
from ..core.themes import Theme, ThemeRegistry
from ..core.timeline import Reel
from ..render.fonts import FontBook
from ..render.renderer import RenderAssets, render_frame
from ..render.surface import RasterSurface
from .capability import SinkFactory
from .delivery import ArtifactDelivery, DirectoryDelivery, artifact_filename
from .errors import (
    PRIMARY_RECOVERABLE,
    EmptyReelError,
    EncoderUnavailable,
    ExportError,
    RecorderFailure,
    RenderFailure,
)
from .scheduler import HostScheduler
from .sinks import EncodableFrame, EncoderConfig

logger = logging.getLogger("ReelStudio.export.pipeline")

ProgressCallback = Callable[[float], None]
StatusCallback = Callable[[str], None]

STATUS_LOADING = "Loading encoder..."
STATUS_PRIMARY = "Generating MP4..."
STATUS_FALLING_BACK = "MP4 encoder failed, falling back to WebM..."
STATUS_FALLBACK = "Generating WebM..."
STATUS_PRIMARY_DONE = "MP4 saved"
STATUS_FALLBACK_DONE = "WebM saved (convert to MP4 externally, e.g. with ffmpeg or cloudconvert.com)"


class ExportState(str, Enum):
    START = "start"
    TRY_PRIMARY = "try_primary"
    FALLBACK = "fallback"
    FALLBACK_RUN = "fallback_run"
    SUCCESS = "success"
    FATAL = "fatal"


class ExportResult(BaseModel):
    """Summary of a finished export."""
    filename: str
    location: str
    mime_type: str
    strategy: str  # "primary" or "fallback"
    frames: int
    fps: int
    duration: float
    size_bytes: int
    fallback_reason: Optional[str] = None
    states: list[ExportState] = Field(default_factory=list)


def count_frames(duration: float, fps: int) -> int:
    """Frames needed to cover ``duration`` seconds at ``fps``, rounded up."""
    # Rounding first keeps float noise (e.g. 17.000000000000004) from adding a frame
    return math.ceil(round(duration * fps, 6))


def frame_time(frame: int, total_frames: int, total_duration: float) -> float:
    return frame / total_frames * total_duration


class ProgressTracker:
    """Forwards progress so the reported sequence never decreases.

    ``rebase`` maps later fractions onto [last reported, 1], used when the
    fallback restarts from frame 0 after the primary already made progress.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.last = 0.0
        self.base = 0.0

    def rebase(self):
        self.base = self.last

    def report(self, fraction: float):
        fraction = min(max(fraction, 0.0), 1.0)
        value = max(self.base + (1.0 - self.base) * fraction, self.last)
        self._emit(min(value, 1.0))

    def complete(self):
        self._emit(1.0)

    def _emit(self, value: float):
        self.last = value
        if self.callback:
            self.callback(value)


class ReelExporter:
    """Runs exports against injectable backends.

    All collaborators default to the real ones: ffmpeg via ``SinkFactory``,
    the asyncio loop via ``HostScheduler``, and a directory on disk.
    """

    def __init__(self, factory: Optional[SinkFactory] = None,
                 scheduler=None,
                 delivery: Optional[ArtifactDelivery] = None,
                 settings: Optional[ExportSettings] = None,
                 themes: Optional[ThemeRegistry] = None,
                 cache: Optional[AssetCache] = None,
                 fonts: Optional[FontBook] = None):
        self.settings = settings or ExportSettings()
        self.factory = factory or SinkFactory(self.settings)
        self.scheduler = scheduler or HostScheduler()
        self.delivery = delivery or DirectoryDelivery(self.settings.export_dir)
        self.themes = themes or ThemeRegistry()
        self.cache = cache or AssetCache()
        self.fonts = fonts or FontBook(self.settings.font_dir, self.settings.font_sources,
                                       self.cache)
        self.last_states: list[ExportState] = []

    async def export(self, reel: Reel, theme: Optional[Theme] = None,
                     fps: Optional[int] = None,
                     on_progress: Optional[ProgressCallback] = None,
                     on_status: Optional[StatusCallback] = None,
                     assets: Optional[RenderAssets] = None) -> ExportResult:
        fps = fps or self.settings.fps
        states = [ExportState.START]
        self.last_states = states
        if not reel.slides:
            raise EmptyReelError("Reel has no slides")
        total_duration = reel.total_duration
        total_frames = count_frames(total_duration, fps)
        if total_frames <= 0:
            raise EmptyReelError("Reel has no frames to render")

        theme = theme or self.themes.resolve(reel.theme_id)
        surface = RasterSurface(self.settings.width, self.settings.height)
        if assets is None:
            assets = await RenderAssets.prepare(reel, theme, surface.size, self.cache, self.fonts)
        progress = ProgressTracker(on_progress)

        def status(message: str):
            logger.info(message)
            if on_status:
                on_status(message)

        run = _ExportRun(self, reel, theme, surface, assets, fps,
                         total_frames, total_duration, progress, status)
        logger.info(f"Exporting reel ({len(reel.slides)} slides, {total_duration:.2f}s, "
                    f"{total_frames} frames at {fps}fps, theme '{theme.id}')")

        status(STATUS_LOADING)
        states.append(ExportState.TRY_PRIMARY)
        fallback_reason = None
        primary_ran = True
        try:
            data = await run.primary()
        except RenderFailure as e:
            states.append(ExportState.FATAL)
            logger.error(f"Export aborted: {e}")
            raise
        except EncoderUnavailable as e:
            logger.info(f"Primary encoder unavailable: {e}")
            fallback_reason = str(e)
            primary_ran = False
        except PRIMARY_RECOVERABLE as e:
            logger.warning(f"Primary encoder failed, discarding its output: {e}")
            fallback_reason = str(e)
        except Exception as e:
            logger.warning(f"Unexpected primary encoder error, discarding its output: {e!r}")
            fallback_reason = str(e)
        else:
            filename, location = self._deliver(reel, "mp4", data, "video/mp4", states)
            progress.complete()
            status(STATUS_PRIMARY_DONE)
            states.append(ExportState.SUCCESS)
            return self._result(filename, location, "video/mp4", "primary", data, fps,
                                total_frames, total_duration, None, states)

        states.append(ExportState.FALLBACK)
        if primary_ran:
            status(STATUS_FALLING_BACK)
        progress.rebase()
        states.append(ExportState.FALLBACK_RUN)
        try:
            mime_type, data = await run.fallback()
        except ExportError as e:
            states.append(ExportState.FATAL)
            logger.error(f"Fallback export failed: {e}")
            raise
        except Exception as e:
            states.append(ExportState.FATAL)
            logger.error(f"Fallback recorder failed: {e}")
            raise RecorderFailure(str(e)) from e

        filename, location = self._deliver(reel, "webm", data, mime_type, states)
        progress.complete()
        status(STATUS_FALLBACK_DONE)
        states.append(ExportState.SUCCESS)
        return self._result(filename, location, mime_type, "fallback", data, fps,
                            total_frames, total_duration, fallback_reason, states)

    def _deliver(self, reel: Reel, extension: str, data: bytes, mime_type: str,
                 states: list[ExportState]) -> tuple[str, str]:
        filename = artifact_filename(self.settings.file_prefix, reel.theme_id, extension)
        try:
            return filename, self.delivery.deliver(filename, data, mime_type)
        except Exception as e:
            states.append(ExportState.FATAL)
            logger.error(f"Could not deliver {filename}: {e}")
            raise

    def _result(self, filename, location, mime_type, strategy, data, fps, total_frames,
                total_duration, fallback_reason, states) -> ExportResult:
        return ExportResult(
            filename=filename,
            location=location,
            mime_type=mime_type,
            strategy=strategy,
            frames=total_frames,
            fps=fps,
            duration=total_duration,
            size_bytes=len(data),
            fallback_reason=fallback_reason,
            states=states,
        )


class _ExportRun:
    """State shared by both strategies of a single export call."""

    def __init__(self, exporter: ReelExporter, reel: Reel, theme: Theme,
                 surface: RasterSurface, assets: RenderAssets, fps: int,
                 total_frames: int, total_duration: float,
                 progress: ProgressTracker, status: StatusCallback):
        self.exporter = exporter
        self.settings = exporter.settings
        self.reel = reel
        self.theme = theme
        self.surface = surface
        self.assets = assets
        self.fps = fps
        self.total_frames = total_frames
        self.total_duration = total_duration
        self.progress = progress
        self.status = status

    def render(self, frame: int):
        t = frame_time(frame, self.total_frames, self.total_duration)
        try:
            render_frame(self.surface, self.reel, self.theme, t, self.assets)
        except Exception as e:
            raise RenderFailure(frame, t, e) from e

    async def primary(self) -> bytes:
        """Encode every frame through the push encoder; returns the MP4."""
        sink = await asyncio.to_thread(self.exporter.factory.create_sink)
        try:
            config = EncoderConfig(
                codec=self.settings.primary_codec,
                width=self.surface.width,
                height=self.surface.height,
                bitrate=self.settings.bitrate,
                fps=self.fps,
                keyframe_interval=self.settings.keyframe_interval(self.fps),
            )
            sink.configure(config)
            self.status(STATUS_PRIMARY)

            for frame in range(self.total_frames):
                self.render(frame)
                encodable = EncodableFrame.from_surface(
                    self.surface, frame, self.fps,
                    key_frame=frame % config.keyframe_interval == 0,
                )
                try:
                    sink.encode(encodable)
                finally:
                    encodable.close()
                self.progress.report(frame / self.total_frames)

                if frame % self.settings.yield_every_frames == 0:
                    await self.exporter.scheduler.cooperative_yield()

            sink.flush()
            return sink.finalize()
        finally:
            sink.close()

    async def fallback(self) -> tuple[str, bytes]:
        """Record every frame off the surface; returns (mime type, WebM)."""
        factory = self.exporter.factory
        mime_type = factory.select_mime_type(self.settings.fallback_mime_types)
        recorder = factory.create_recorder()
        self.status(STATUS_FALLBACK)
        recorder.start(self.surface, mime_type, self.fps, self.settings.bitrate)

        def tick(frame: int):
            self.render(frame)
            recorder.capture()
            self.progress.report(frame / self.total_frames)

        try:
            await self.exporter.scheduler.run_ticks(1.0 / self.fps, self.total_frames, tick)
            chunks = recorder.stop()
        except BaseException:
            recorder.abort()
            raise
        if not chunks:
            raise RecorderFailure("Recorder produced no data")
        return mime_type, b"".join(chunks)


async def export_reel(reel: Reel, theme: Optional[Theme] = None,
                      fps: Optional[int] = None,
                      on_progress: Optional[ProgressCallback] = None,
                      on_status: Optional[StatusCallback] = None,
                      settings: Optional[ExportSettings] = None) -> ExportResult:
    """Export a reel with the default backends and settings."""
    exporter = ReelExporter(settings=settings or ExportSettings.from_env())
    return await exporter.export(reel, theme, fps, on_progress, on_status)
