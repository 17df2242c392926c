"""Font resolution for theme font tokens."""

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import ImageFont

from ..core.assets import AssetCache

logger = logging.getLogger("ReelStudio.render.fonts")

# Google Fonts static file naming: <Family>-<Weight>[Italic].ttf
WEIGHT_NAMES = {
    100: "Thin",
    200: "ExtraLight",
    300: "Light",
    400: "Regular",
    500: "Medium",
    600: "SemiBold",
    700: "Bold",
    800: "ExtraBold",
    900: "Black",
}

Font = ImageFont.FreeTypeFont | ImageFont.ImageFont


def font_file_candidates(family: str, weight: int = 400, italic: bool = False) -> list[str]:
    """File names to try for a family, most specific first."""
    stem = family.replace(" ", "")
    weight_name = WEIGHT_NAMES.get(weight, "Regular")
    candidates = []
    if italic:
        candidates.append(f"{stem}-Italic.ttf" if weight_name == "Regular"
                          else f"{stem}-{weight_name}Italic.ttf")
    candidates.append(f"{stem}-{weight_name}.ttf")
    candidates.append(f"{stem}-Regular.ttf")
    candidates.append(f"{stem}.ttf")
    return candidates


class FontBook:
    """Resolves (family, weight, size, style) to a PIL font, memoized.

    Lookup order: a ``.ttf`` in ``font_dir`` following Google Fonts naming,
    then an explicit per-family source (path or URL, URLs must be preloaded
    through the asset cache), then Pillow's built-in scalable font.
    """

    def __init__(self, font_dir: Optional[Path] = None,
                 sources: Optional[dict[str, str]] = None,
                 cache: Optional[AssetCache] = None):
        self.font_dir = Path(font_dir) if font_dir else None
        self.sources = dict(sources or {})
        self.cache = cache or AssetCache()
        self._fonts: dict[tuple, Font] = {}

    async def preload(self, families: list[str]) -> None:
        """Fetch remote font sources for the given families."""
        for family in families:
            url = self.sources.get(family)
            if not url or not url.startswith(("http://", "https://")):
                continue
            try:
                await self.cache.load(url)
            except Exception as e:
                logger.warning(f"Font '{family}' unavailable, using default: {e}")

    def get(self, family: str, weight: int = 400, size: int = 32,
            italic: bool = False) -> Font:
        key = (family, weight, size, italic)
        font = self._fonts.get(key)
        if font is None:
            font = self._load(family, weight, size, italic)
            self._fonts[key] = font
        return font

    def _load(self, family: str, weight: int, size: int, italic: bool) -> Font:
        path = self._find_file(family, weight, italic)
        if path is not None:
            return ImageFont.truetype(str(path), size)

        source = self.sources.get(family)
        if source:
            data = self.cache.get(source)
            if data is not None:
                return ImageFont.truetype(io.BytesIO(data), size)
            if Path(source).exists():
                return ImageFont.truetype(source, size)

        logger.debug(f"No font file for '{family}' ({weight}), using default")
        return ImageFont.load_default(size=size)

    def _find_file(self, family: str, weight: int, italic: bool) -> Optional[Path]:
        if self.font_dir is None or not self.font_dir.is_dir():
            return None
        for name in font_file_candidates(family, weight, italic):
            path = self.font_dir / name
            if path.exists():
                return path
        # Variable fonts ship as e.g. Inter[opsz,wght].ttf
        stem = family.replace(" ", "")
        matches = sorted(self.font_dir.glob(f"{stem}*.ttf"))
        return matches[0] if matches else None
