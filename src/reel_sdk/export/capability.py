"""Host capability probing and construction of the encoding backends."""

import logging
import shutil
import subprocess
from functools import cached_property
from typing import Optional

from ..config import ExportSettings
from .errors import EncoderUnavailable, FallbackUnsupportedContainer
from .recorder import MIME_CODECS, FFmpegSurfaceRecorder, SurfaceRecorder, normalize_mime
from .sinks import FFmpegVideoSink, VideoSink

logger = logging.getLogger("ReelStudio.export.capability")


def parse_encoders(output: str) -> tuple[str, ...]:
    """Video encoder names from ``ffmpeg -encoders`` output."""
    encoders = []
    for line in output.splitlines():
        parts = line.split()
        # Capability flags like "V....D" followed by the encoder name
        if len(parts) >= 2 and parts[0].startswith("V") and parts[1] != "=":
            encoders.append(parts[1])
    return tuple(encoders)


class FFmpegCapabilities:
    """What the local ffmpeg can do. Probed once, on first access."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    @cached_property
    def path(self) -> Optional[str]:
        return shutil.which(self.binary)

    @cached_property
    def encoders(self) -> tuple[str, ...]:
        if self.path is None:
            return ()
        try:
            result = subprocess.run(
                [self.path, "-hide_banner", "-encoders"],
                capture_output=True, text=True, timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Could not detect ffmpeg encoders: {e}")
            return ()
        encoders = parse_encoders(result.stdout)
        logger.debug(f"ffmpeg video encoders: {', '.join(encoders)}")
        return encoders

    @property
    def available(self) -> bool:
        return self.path is not None

    def has_encoder(self, name: str) -> bool:
        return name in self.encoders

    def supports_mime(self, mime_type: str) -> bool:
        codec = MIME_CODECS.get(normalize_mime(mime_type))
        return codec is not None and self.has_encoder(codec)


class SinkFactory:
    """Builds the primary sink and the fallback recorder for an export.

    Capability probing happens once per factory and is reused across
    exports. Swap in another factory to target a different backend.
    """

    def __init__(self, settings: Optional[ExportSettings] = None,
                 capabilities: Optional[FFmpegCapabilities] = None):
        self.settings = settings or ExportSettings()
        self.capabilities = capabilities or FFmpegCapabilities(self.settings.ffmpeg_binary)

    def create_sink(self) -> VideoSink:
        caps = self.capabilities
        if not caps.available:
            raise EncoderUnavailable(f"ffmpeg binary '{self.settings.ffmpeg_binary}' not found")
        if not caps.has_encoder(self.settings.primary_codec):
            raise EncoderUnavailable(f"ffmpeg has no '{self.settings.primary_codec}' encoder")
        return FFmpegVideoSink(caps.path)

    def create_recorder(self) -> SurfaceRecorder:
        return FFmpegSurfaceRecorder(self.capabilities.path or self.settings.ffmpeg_binary)

    def select_mime_type(self, candidates: Optional[list[str]] = None) -> str:
        """First supported capture type from ``candidates``, in order."""
        candidates = candidates or self.settings.fallback_mime_types
        for mime_type in candidates:
            if self.capabilities.supports_mime(mime_type):
                return mime_type
        raise FallbackUnsupportedContainer(
            f"None of the capture types are supported: {', '.join(candidates)}"
        )
