"""Fallback surface recorder: captures the live surface into a WebM stream."""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from ..render.surface import RasterSurface
from .errors import FallbackUnsupportedContainer, RecorderFailure

logger = logging.getLogger("ReelStudio.export.recorder")

# Size of the data chunks handed back by stop()
CHUNK_SIZE = 1024 * 1024

# Capture container -> ffmpeg encoder
MIME_CODECS = {
    "video/webm;codecs=vp9": "libvpx-vp9",
    "video/webm;codecs=vp8": "libvpx",
    "video/webm": "libvpx",
}


def normalize_mime(mime_type: str) -> str:
    return mime_type.replace(" ", "").lower()


class SurfaceRecorder(Protocol):
    """Records whatever is on the surface each time ``capture`` is called."""

    def start(self, surface: RasterSurface, mime_type: str, fps: int, bitrate: int) -> None: ...

    def capture(self) -> None: ...

    def stop(self) -> list[bytes]: ...

    def abort(self) -> None: ...


class FFmpegSurfaceRecorder:
    """Pipes surface snapshots into ffmpeg's VP9/VP8 encoder.

    Output accumulates in a temp file until ``stop``, which returns it as a
    list of chunks in recording order.
    """

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary
        self.surface: Optional[RasterSurface] = None
        self.mime_type: Optional[str] = None
        self.frames_captured = 0
        self._proc: Optional[subprocess.Popen] = None
        self._tmpdir: Optional[tempfile.TemporaryDirectory] = None
        self._stderr = None

    def build_command(self, codec: str, width: int, height: int, fps: int,
                      bitrate: int, output: Path) -> list[str]:
        cmd = [
            self.binary, "-hide_banner", "-loglevel", "error", "-y",
            "-f", "rawvideo",
            "-vcodec", "rawvideo",
            "-s", f"{width}x{height}",
            "-pix_fmt", "rgb24",
            "-r", str(fps),
            "-i", "-",
            "-c:v", codec,
            "-b:v", str(bitrate),
            "-pix_fmt", "yuv420p",
        ]
        if codec == "libvpx-vp9":
            cmd += ["-deadline", "realtime", "-row-mt", "1"]
        cmd += ["-f", "webm", str(output)]
        return cmd

    def start(self, surface: RasterSurface, mime_type: str, fps: int, bitrate: int) -> None:
        codec = MIME_CODECS.get(normalize_mime(mime_type))
        if codec is None:
            raise FallbackUnsupportedContainer(f"Unsupported capture type: {mime_type}")
        if shutil.which(self.binary) is None:
            raise RecorderFailure(f"ffmpeg binary '{self.binary}' not found")

        self.surface = surface
        self.mime_type = mime_type
        self._tmpdir = tempfile.TemporaryDirectory(prefix="reel-webm-")
        tmp = Path(self._tmpdir.name)
        self._stderr = open(tmp / "ffmpeg.log", "wb")
        cmd = self.build_command(codec, surface.width, surface.height, fps, bitrate,
                                 tmp / "output.webm")
        logger.debug(f"Starting recorder: {' '.join(cmd)}")
        try:
            self._proc = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=self._stderr,
            )
        except OSError as e:
            self._cleanup()
            raise RecorderFailure(f"Could not start ffmpeg: {e}") from e

    def capture(self) -> None:
        if self._proc is None:
            raise RecorderFailure("Recorder is not running")
        try:
            self._proc.stdin.write(self.surface.to_rgb_bytes())
        except (BrokenPipeError, OSError) as e:
            raise RecorderFailure(f"Recorder stopped at frame {self.frames_captured}: {e}") from e
        self.frames_captured += 1

    def stop(self) -> list[bytes]:
        if self._proc is None:
            raise RecorderFailure("Recorder is not running")
        tmp = Path(self._tmpdir.name)
        try:
            self._proc.stdin.close()
            returncode = self._proc.wait()
            if returncode != 0:
                log = (tmp / "ffmpeg.log").read_text(errors="replace").strip()
                raise RecorderFailure(f"ffmpeg exited with code {returncode}: {log[-500:]}")
            data = (tmp / "output.webm").read_bytes()
        except OSError as e:
            raise RecorderFailure(f"Could not read recording: {e}") from e
        finally:
            self._proc = None
            self._cleanup()

        chunks = [data[i:i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE)]
        logger.info(f"WebM recorded: {self.frames_captured} frames, {len(data)} bytes")
        return chunks

    def abort(self) -> None:
        """Discard the recording. Safe to call in any state."""
        if self._proc is not None:
            if self._proc.poll() is None:
                self._proc.kill()
            self._proc.wait()
            if self._proc.stdin and not self._proc.stdin.closed:
                try:
                    self._proc.stdin.close()
                except OSError:
                    logger.debug("Ignoring error closing recorder stdin after kill")
            self._proc = None
        self._cleanup()

    def _cleanup(self):
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None
        if self._tmpdir is not None:
            self._tmpdir.cleanup()
            self._tmpdir = None
