"""Export and rendering configuration."""

import json
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

# 9:16 portrait, the native reel format
FRAME_WIDTH = 1080
FRAME_HEIGHT = 1920

DEFAULT_FPS = 30
DEFAULT_BITRATE = 8_000_000
KEYFRAME_INTERVAL_SECONDS = 2.0
YIELD_EVERY_FRAMES = 5
DEFAULT_FILE_PREFIX = "reel"
DEFAULT_EXPORT_DIR = "./exports"

# Capture containers tried in order by the fallback recorder
FALLBACK_MIME_TYPES = [
    "video/webm;codecs=vp9",
    "video/webm;codecs=vp8",
    "video/webm",
]


# Environment variable -> ExportSettings field
ENV_FIELDS = {
    "REEL_FPS": "fps",
    "REEL_BITRATE": "bitrate",
    "REEL_FFMPEG": "ffmpeg_binary",
    "REEL_FILE_PREFIX": "file_prefix",
    "REEL_EXPORT_DIR": "export_dir",
    "REEL_FONT_DIR": "font_dir",
}


class ExportSettings(BaseModel):
    """Tunables for one export call.

    Defaults match the native reel format; ``from_env`` lets a deployment
    override them without code changes.
    """
    model_config = ConfigDict(validate_assignment=True)

    width: int = Field(FRAME_WIDTH, gt=0)
    height: int = Field(FRAME_HEIGHT, gt=0)
    fps: int = Field(DEFAULT_FPS, gt=0)
    bitrate: int = Field(DEFAULT_BITRATE, gt=0)
    keyframe_interval_seconds: float = Field(KEYFRAME_INTERVAL_SECONDS, gt=0)
    yield_every_frames: int = Field(YIELD_EVERY_FRAMES, gt=0)
    ffmpeg_binary: str = "ffmpeg"
    primary_codec: str = "libx264"
    fallback_mime_types: list[str] = Field(default_factory=lambda: list(FALLBACK_MIME_TYPES))
    file_prefix: str = DEFAULT_FILE_PREFIX
    export_dir: Path = Path(DEFAULT_EXPORT_DIR)
    font_dir: Optional[Path] = None
    # Font family -> .ttf path or URL, used when font_dir has no match
    font_sources: dict[str, str] = Field(default_factory=dict)

    def keyframe_interval(self, fps: Optional[int] = None) -> int:
        """Keyframe spacing in frames for the given fps (at least 1)."""
        fps = fps or self.fps
        return max(1, round(self.keyframe_interval_seconds * fps))

    @classmethod
    def from_env(cls) -> "ExportSettings":
        """Settings with ``REEL_*`` environment overrides, validated like any other."""
        overrides = {}
        for var, field in ENV_FIELDS.items():
            if os.getenv(var):
                overrides[field] = os.environ[var]
        if os.getenv("REEL_FONT_SOURCES"):
            overrides["font_sources"] = json.loads(os.environ["REEL_FONT_SOURCES"])
        return cls(**overrides)
