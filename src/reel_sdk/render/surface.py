"""Raster surface — the pixel buffer frames are drawn into before encoding."""

import io

import numpy as np
from PIL import Image

from ..config import FRAME_HEIGHT, FRAME_WIDTH


class RasterSurface:
    """A single mutable RGBA frame buffer.

    One export owns one surface; the renderer overwrites it on every frame.
    """

    def __init__(self, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT):
        self.width = width
        self.height = height
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def clear(self):
        self.image.paste((0, 0, 0, 0), (0, 0, self.width, self.height))

    def draw(self, frame: Image.Image):
        """Replace the surface contents with a composed frame."""
        if frame.size != self.size:
            raise ValueError(f"Frame size {frame.size} does not match surface {self.size}")
        self.image.paste(frame.convert("RGBA"), (0, 0))

    def snapshot(self) -> Image.Image:
        return self.image.copy()

    def to_rgb_bytes(self) -> bytes:
        """Packed rgb24 pixels, the layout ffmpeg's rawvideo input expects."""
        return self.image.convert("RGB").tobytes()

    def to_array(self) -> np.ndarray:
        return np.asarray(self.image.convert("RGB"))

    def to_png(self, max_size: int = 0) -> bytes:
        img = self.image.convert("RGB")
        if max_size and max(img.size) > max_size:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
