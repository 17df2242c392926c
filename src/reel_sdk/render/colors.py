"""CSS color parsing for theme tokens."""

import re

from PIL import ImageColor

RGBA = tuple[int, int, int, int]

_RGBA_RE = re.compile(
    r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([\d.]+)\s*)?\)",
    re.IGNORECASE,
)


def parse_color(value: str) -> RGBA:
    """Parse a CSS color string into an RGBA tuple.

    Supports hex (#rgb, #rrggbb, #rrggbbaa), named colors, ``transparent``,
    and ``rgb()`` / ``rgba()`` with a fractional alpha as CSS writes it.
    """
    value = value.strip()
    if value.lower() == "transparent":
        return (0, 0, 0, 0)

    m = _RGBA_RE.fullmatch(value)
    if m:
        r, g, b = (min(int(c), 255) for c in m.group(1, 2, 3))
        alpha = float(m.group(4)) if m.group(4) is not None else 1.0
        return (r, g, b, round(min(max(alpha, 0.0), 1.0) * 255))

    return ImageColor.getcolor(value, "RGBA")


def with_alpha(color: RGBA, factor: float) -> RGBA:
    """Scale a color's alpha by ``factor``."""
    r, g, b, a = color
    return (r, g, b, round(a * min(max(factor, 0.0), 1.0)))


def opaque(color: RGBA) -> RGBA:
    r, g, b, _ = color
    return (r, g, b, 255)
