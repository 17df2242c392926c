"""Primary push encoder: raw frames in, a finished MP4 container out."""

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from ..render.surface import RasterSurface
from .errors import EncodeFailure, EncoderUnavailable, MuxFinalizeFailure

logger = logging.getLogger("ReelStudio.export.sinks")

MICROSECONDS = 1_000_000


class EncoderConfig(BaseModel):
    """Fixed parameters for one encoding session."""
    codec: str = "libx264"
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    bitrate: int = Field(gt=0)
    fps: int = Field(gt=0)
    keyframe_interval: int = Field(gt=0)


@dataclass
class EncodableFrame:
    """One raster snapshot with its presentation timing.

    Holds a full copy of the frame pixels; call ``close`` as soon as the
    sink has taken it.
    """
    data: bytes
    width: int
    height: int
    timestamp_us: int
    duration_us: int
    key_frame: bool = False
    closed: bool = field(default=False, init=False)

    @classmethod
    def from_surface(cls, surface: RasterSurface, index: int, fps: int,
                     key_frame: bool = False) -> "EncodableFrame":
        return cls(
            data=surface.to_rgb_bytes(),
            width=surface.width,
            height=surface.height,
            timestamp_us=round(index * MICROSECONDS / fps),
            duration_us=round(MICROSECONDS / fps),
            key_frame=key_frame,
        )

    def close(self):
        self.data = b""
        self.closed = True


class VideoSink(Protocol):
    """A push encoder fused with its container muxer."""

    def configure(self, config: EncoderConfig) -> None: ...

    def encode(self, frame: EncodableFrame) -> None: ...

    def flush(self) -> None: ...

    def finalize(self) -> bytes: ...

    def close(self) -> None: ...


def _stderr_tail(path: Optional[Path], lines: int = 5) -> str:
    if path is None or not path.exists():
        return ""
    text = path.read_text(errors="replace").strip().splitlines()
    return " | ".join(text[-lines:])


class FFmpegVideoSink:
    """Encodes rgb24 frames through an ffmpeg subprocess into a temp MP4.

    Frames are streamed over stdin at a constant frame rate. Keyframes are
    placed on a fixed GOP (``-g``) with scene-cut detection disabled, so the
    GOP matches ``EncoderConfig.keyframe_interval`` exactly. ``+faststart``
    moves the index to the front of the file when ffmpeg exits.
    """

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary
        self.config: Optional[EncoderConfig] = None
        self.frames_written = 0
        self.key_frames: list[int] = []
        self._proc: Optional[subprocess.Popen] = None
        self._tmpdir: Optional[tempfile.TemporaryDirectory] = None
        self._stderr = None
        self._last_timestamp = -1
        self._flushed = False

    @property
    def output_path(self) -> Optional[Path]:
        return Path(self._tmpdir.name) / "output.mp4" if self._tmpdir else None

    @property
    def _stderr_path(self) -> Optional[Path]:
        return Path(self._tmpdir.name) / "ffmpeg.log" if self._tmpdir else None

    def build_command(self, config: EncoderConfig, output: Path) -> list[str]:
        gop = str(config.keyframe_interval)
        return [
            self.binary, "-hide_banner", "-loglevel", "error", "-y",
            "-f", "rawvideo",
            "-vcodec", "rawvideo",
            "-s", f"{config.width}x{config.height}",
            "-pix_fmt", "rgb24",
            "-r", str(config.fps),
            "-i", "-",
            "-c:v", config.codec,
            "-b:v", str(config.bitrate),
            "-g", gop,
            "-keyint_min", gop,
            "-sc_threshold", "0",
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-f", "mp4",
            str(output),
        ]

    def configure(self, config: EncoderConfig) -> None:
        if self._proc is not None:
            raise EncodeFailure("Encoder is already configured")
        if shutil.which(self.binary) is None:
            raise EncoderUnavailable(f"ffmpeg binary '{self.binary}' not found")

        self.config = config
        self._tmpdir = tempfile.TemporaryDirectory(prefix="reel-mp4-")
        self._stderr = open(self._stderr_path, "wb")
        cmd = self.build_command(config, self.output_path)
        logger.debug(f"Starting encoder: {' '.join(cmd)}")
        try:
            self._proc = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=self._stderr,
            )
        except OSError as e:
            raise EncoderUnavailable(f"Could not start ffmpeg: {e}") from e

    def encode(self, frame: EncodableFrame) -> None:
        if self._proc is None or self._flushed:
            raise EncodeFailure("Encoder is not accepting frames")
        if frame.closed:
            raise EncodeFailure("Frame was released before it was encoded")
        if (frame.width, frame.height) != (self.config.width, self.config.height):
            raise EncodeFailure(
                f"Frame size {frame.width}x{frame.height} does not match "
                f"encoder {self.config.width}x{self.config.height}"
            )
        if frame.timestamp_us <= self._last_timestamp:
            raise EncodeFailure(
                f"Non-increasing timestamp {frame.timestamp_us}us after {self._last_timestamp}us"
            )

        try:
            self._proc.stdin.write(frame.data)
        except (BrokenPipeError, OSError) as e:
            raise EncodeFailure(
                f"Encoder stopped at frame {self.frames_written}: {_stderr_tail(self._stderr_path) or e}"
            ) from e

        if frame.key_frame:
            self.key_frames.append(self.frames_written)
        self._last_timestamp = frame.timestamp_us
        self.frames_written += 1

    def flush(self) -> None:
        """Close the input and wait for ffmpeg to drain pending frames."""
        if self._proc is None:
            raise EncodeFailure("Encoder was never configured")
        if self._flushed:
            return
        try:
            self._proc.stdin.close()
        except (BrokenPipeError, OSError) as e:
            logger.debug(f"Encoder stdin already closed: {e}")
        returncode = self._proc.wait()
        self._flushed = True
        if returncode != 0:
            raise EncodeFailure(
                f"ffmpeg exited with code {returncode}: {_stderr_tail(self._stderr_path)}"
            )

    def finalize(self) -> bytes:
        if not self._flushed:
            raise MuxFinalizeFailure("Finalize called before flush")
        output = self.output_path
        if output is None or not output.exists():
            raise MuxFinalizeFailure("Encoder produced no container")
        data = output.read_bytes()
        if not data:
            raise MuxFinalizeFailure("Encoder produced an empty container")
        logger.info(f"MP4 finalized: {self.frames_written} frames, {len(data)} bytes")
        return data

    def close(self) -> None:
        """Release the subprocess and temp files. Safe to call more than once."""
        if self._proc is not None and self._proc.poll() is None:
            self._proc.kill()
            self._proc.wait()
        if self._proc is not None and self._proc.stdin and not self._proc.stdin.closed:
            try:
                self._proc.stdin.close()
            except OSError:
                logger.debug("Ignoring error closing encoder stdin after kill")
        self._proc = None
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None
        if self._tmpdir is not None:
            self._tmpdir.cleanup()
            self._tmpdir = None
