"""Frame renderer — maps (reel, theme, time) to pixels.

Rendering is a pure function of its inputs: nothing is remembered between
calls, so any frame can be rendered in any order and comes out identical.
All pixel constants are authored for the 1080px-wide reel frame and scaled
to the surface width.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageOps

from ..config import FRAME_HEIGHT, FRAME_WIDTH
from ..core.assets import AssetCache
from ..core.themes import Theme
from ..core.timeline import (
    AnimationState,
    BackgroundKind,
    Element,
    ElementKind,
    Reel,
    Slide,
    transition_alpha,
)
from .colors import RGBA, opaque, parse_color, with_alpha
from .fonts import Font, FontBook
from .surface import RasterSurface

logger = logging.getLogger("ReelStudio.render.renderer")

SIDE_MARGIN = 72
GLASS_TINT = (45, 90, 60)


@dataclass
class RenderAssets:
    """Read-only inputs prepared once per export.

    ``backgrounds`` maps a slide image reference to the image already
    cover-fitted to the frame; ``decorations`` maps a theme id to its
    decoration layer.
    """
    fonts: FontBook = field(default_factory=FontBook)
    backgrounds: dict[str, Image.Image] = field(default_factory=dict)
    decorations: dict[str, Image.Image] = field(default_factory=dict)

    def background_for(self, ref: Optional[str], size: tuple[int, int]) -> Optional[Image.Image]:
        img = self.backgrounds.get(ref) if ref else None
        if img is None or img.size != size:
            return None
        return img

    def decoration_for(self, theme: Theme, size: tuple[int, int]) -> Image.Image:
        layer = self.decorations.get(theme.id)
        if layer is not None and layer.size == size:
            return layer
        return build_decoration_layer(theme, size)

    @classmethod
    async def prepare(cls, reel: Reel, theme: Theme,
                      size: tuple[int, int] = (FRAME_WIDTH, FRAME_HEIGHT),
                      cache: Optional[AssetCache] = None,
                      fonts: Optional[FontBook] = None) -> "RenderAssets":
        """Load fonts and background images a reel needs.

        Images that fail to load are skipped; their slides render with the
        theme's solid background.
        """
        cache = cache or (fonts.cache if fonts else AssetCache())
        fonts = fonts or FontBook(cache=cache)
        await fonts.preload(theme.font_families())

        backgrounds: dict[str, Image.Image] = {}
        for slide in reel.slides:
            ref = slide.background.image
            if slide.background.kind is not BackgroundKind.IMAGE or not ref or ref in backgrounds:
                continue
            try:
                data = await cache.load(ref)
                backgrounds[ref] = fit_background(data, size)
            except Exception as e:
                logger.warning(f"Background image '{ref}' unavailable for slide {slide.id}: {e}")

        return cls(
            fonts=fonts,
            backgrounds=backgrounds,
            decorations={theme.id: build_decoration_layer(theme, size)},
        )


def fit_background(data: bytes, size: tuple[int, int]) -> Image.Image:
    """Scale and center-crop an encoded image to cover the frame."""
    with Image.open(io.BytesIO(data)) as src:
        return ImageOps.fit(src.convert("RGB"), size, Image.Resampling.LANCZOS)


# ── Theme decorations ───────────────────────────────────────────────────

def build_decoration_layer(theme: Theme, size: tuple[int, int]) -> Image.Image:
    """Theme-specific ornaments drawn over the background of every slide."""
    w, h = size
    k = w / FRAME_WIDTH
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    flags = theme.flags
    accent = parse_color(theme.colors.accent)

    if not flags.brutal and not flags.glass:
        corner = Image.new("RGBA", size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(corner)
        arm = round(100 * k)
        draw.line([(w - arm, 0), (w - 1, 0), (w - 1, arm)],
                  fill=with_alpha(accent, 0.25), width=max(1, round(2 * k)))
        layer = Image.alpha_composite(layer, corner)

    if flags.glow:
        ys, xs = np.mgrid[0:h, 0:w].astype(np.float32)
        cx, cy, radius = w * 0.3, h * 0.4, w * 0.8
        dist = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2) / radius
        alpha = np.rint(0x18 * (1 - np.clip(dist, 0, 1))).astype(np.uint8)
        layer = Image.alpha_composite(layer, _tinted(opaque(accent), alpha))

    if flags.glass:
        ys, xs = np.mgrid[0:h, 0:w].astype(np.float32)
        t = (xs * w + ys * h) / float(w * w + h * h)
        alpha = np.rint(0.08 * 255 * (1 - np.clip(t, 0, 1))).astype(np.uint8)
        layer = Image.alpha_composite(layer, _tinted(GLASS_TINT + (255,), alpha))

    return layer


def _tinted(color: RGBA, alpha: np.ndarray) -> Image.Image:
    h, w = alpha.shape
    rgba = np.empty((h, w, 4), dtype=np.uint8)
    rgba[..., 0], rgba[..., 1], rgba[..., 2] = color[0], color[1], color[2]
    rgba[..., 3] = alpha
    return Image.fromarray(rgba, "RGBA")


# ── Text helpers ────────────────────────────────────────────────────────

def wrap_text(draw: ImageDraw.ImageDraw, text: str, font: Font, max_width: float) -> list[str]:
    """Greedy word wrap. Explicit newlines always break."""
    lines = []
    for paragraph in text.split("\n"):
        line = ""
        for word in paragraph.split(" "):
            candidate = f"{line} {word}" if line else word
            if line and draw.textlength(candidate, font=font) > max_width:
                lines.append(line)
                line = word
            else:
                line = candidate
        lines.append(line)
    return lines


def _draw_wrapped(draw: ImageDraw.ImageDraw, text: str, x: float, y: float,
                  font: Font, fill: RGBA, max_width: float, line_height: float):
    for i, line in enumerate(wrap_text(draw, text, font, max_width)):
        draw.text((x, y + i * line_height), line, font=font, fill=fill, anchor="ls")


def _add_glow(layer: Image.Image, color: RGBA, radius: float) -> Image.Image:
    halo_alpha = layer.getchannel("A").filter(ImageFilter.GaussianBlur(radius / 2))
    halo = Image.new("RGBA", layer.size, opaque(color))
    halo.putalpha(halo_alpha)
    return Image.alpha_composite(halo, layer)


# ── Element drawing ─────────────────────────────────────────────────────

@dataclass
class _Canvas:
    """Per-slide drawing context."""
    size: tuple[int, int]
    theme: Theme
    fonts: FontBook

    @property
    def k(self) -> float:
        return self.size[0] / FRAME_WIDTH

    def px(self, value: float) -> int:
        return max(1, round(value * self.k))


def _draw_logo(draw, c: _Canvas, el: Element, x: float, y: float):
    style = c.theme.active_logo
    font = c.fonts.get(c.theme.fonts.ui_family, 600, c.px(32))
    text = el.text
    pad_x, pad_y = c.px(20), c.px(12)
    box = (x - pad_x, y - pad_y - c.px(4),
           x + draw.textlength(text, font=font) + pad_x, y + c.px(32) + pad_y - c.px(4))

    fill = parse_color(style.background) if style.background else None
    outline = parse_color(style.border_color) if style.border_color and style.border_width else None
    width = c.px(style.border_width) if outline else 0
    if fill or outline:
        if style.radius:
            draw.rounded_rectangle(box, radius=c.px(style.radius), fill=fill, outline=outline, width=width)
        else:
            draw.rectangle(box, fill=fill, outline=outline, width=width)

    draw.text((x, y + c.px(20)), text, font=font, fill=parse_color(style.color), anchor="ls")


def _draw_divider(draw, c: _Canvas, el: Element, x: float, y: float):
    draw.rectangle((x, y, x + c.px(60) - 1, y + c.px(3) - 1), fill=parse_color(c.theme.colors.accent))


def _draw_footer(draw, c: _Canvas, el: Element, x: float, y: float):
    w = c.size[0]
    rule = (255, 255, 255, 15) if c.theme.flags.always_dark else (0, 0, 0, 13)
    draw.rectangle((0, y, w - 1, y + c.px(1) - 1), fill=with_alpha(rule, 0.4))
    if el.text:
        font = c.fonts.get(c.theme.fonts.ui_family, 400, c.px(22))
        fill = with_alpha(parse_color(c.theme.colors.accent), 0.5)
        draw.text((x, y + c.px(44)), el.text, font=font, fill=fill, anchor="ls")


def _draw_eyebrow(draw, c: _Canvas, el: Element, x: float, y: float):
    weight = 700 if c.theme.flags.brutal else 600
    font = c.fonts.get(c.theme.fonts.ui_family, weight, c.px(26))
    draw.text((x, y), el.text.upper(), font=font, fill=parse_color(c.theme.colors.accent), anchor="ls")


def _draw_headline(draw, c: _Canvas, el: Element, x: float, y: float):
    f = c.theme.fonts
    size = c.px(el.font_size or 90)
    font = c.fonts.get(f.headline_family, f.headline_weight, size, f.headline_style == "italic")
    text = el.text.upper() if f.headline_uppercase else el.text
    _draw_wrapped(draw, text, x, y, font, parse_color(c.theme.headline_color),
                  c.size[0] - 2 * c.px(SIDE_MARGIN), size * 1.15)


def _draw_accent_word(draw, c: _Canvas, el: Element, x: float, y: float):
    f = c.theme.fonts
    size = c.px(el.font_size or 100)
    family = f.script_family or f.headline_family
    font = c.fonts.get(family, 400, size, f.script_style == "italic")
    draw.text((x, y), el.text, font=font, fill=parse_color(c.theme.colors.accent), anchor="ls")


def _draw_body(draw, c: _Canvas, el: Element, x: float, y: float):
    f = c.theme.fonts
    size = c.px(el.font_size or 28)
    font = c.fonts.get(f.body_family, f.body_weight, size, f.body_style == "italic")
    _draw_wrapped(draw, el.text, x, y, font, parse_color(c.theme.colors.body),
                  c.size[0] - 2 * c.px(SIDE_MARGIN), size * 1.7)


def _glow_for(c: _Canvas, kind: ElementKind) -> Optional[tuple[RGBA, float]]:
    if not c.theme.flags.glow:
        return None
    accent = parse_color(c.theme.colors.accent)
    match kind:
        case ElementKind.EYEBROW:
            return accent, c.px(15)
        case ElementKind.DIVIDER:
            return accent, c.px(12)
        case ElementKind.ACCENT_WORD:
            secondary = c.theme.colors.secondary
            return (parse_color(secondary) if secondary else accent), c.px(20)
        case _:
            return None


def draw_element(c: _Canvas, el: Element, state: AnimationState) -> Image.Image:
    """Draw one element at its animation state onto a transparent layer."""
    w, h = c.size
    x = el.x * w + state.offset_x * c.k
    y = el.y * h + state.offset_y * c.k

    layer = Image.new("RGBA", c.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)

    match el.kind:
        case ElementKind.LOGO:
            _draw_logo(draw, c, el, x, y)
        case ElementKind.DIVIDER:
            _draw_divider(draw, c, el, x, y)
        case ElementKind.EYEBROW:
            _draw_eyebrow(draw, c, el, x, y)
        case ElementKind.HEADLINE:
            _draw_headline(draw, c, el, x, y)
        case ElementKind.BODY:
            _draw_body(draw, c, el, x, y)
        case ElementKind.ACCENT_WORD:
            _draw_accent_word(draw, c, el, x, y)
        case ElementKind.FOOTER:
            _draw_footer(draw, c, el, x, y)
        case _:
            raise ValueError(f"Unhandled element kind: {el.kind!r}")

    glow = _glow_for(c, el.kind)
    if glow is not None:
        layer = _add_glow(layer, *glow)

    if state.scale != 1:
        s = state.scale
        layer = layer.transform(
            c.size, Image.Transform.AFFINE,
            (1 / s, 0, x - x / s, 0, 1 / s, y - y / s),
            resample=Image.Resampling.BICUBIC,
        )

    if state.alpha < 1:
        alpha = state.alpha
        layer.putalpha(layer.getchannel("A").point(lambda v: int(v * alpha + 0.5)))

    return layer


# ── Slides and frames ───────────────────────────────────────────────────

def render_slide_image(slide: Slide, theme: Theme, local_time: float,
                       assets: Optional[RenderAssets] = None,
                       size: tuple[int, int] = (FRAME_WIDTH, FRAME_HEIGHT)) -> Image.Image:
    """Compose one slide at a slide-local time into an opaque RGBA image."""
    assets = assets or RenderAssets()

    bg = slide.background
    image = assets.background_for(bg.image, size) if bg.kind is BackgroundKind.IMAGE else None
    if image is not None:
        frame = image.convert("RGBA")
        overlay = Image.new("RGBA", size, (0, 0, 0, round(bg.darken * 255)))
        frame = Image.alpha_composite(frame, overlay)
    else:
        frame = Image.new("RGBA", size, opaque(parse_color(theme.frame_background)))

    frame = Image.alpha_composite(frame, assets.decoration_for(theme, size))

    canvas = _Canvas(size=size, theme=theme, fonts=assets.fonts)
    for el in slide.elements:
        state = el.state_at(local_time)
        if state is None:
            continue
        frame = Image.alpha_composite(frame, draw_element(canvas, el, state))

    return frame


def compose_frame(reel: Reel, theme: Theme, t: float,
                  assets: Optional[RenderAssets] = None,
                  size: tuple[int, int] = (FRAME_WIDTH, FRAME_HEIGHT)) -> Image.Image:
    """Compose the frame at global time ``t``, blending slide transitions."""
    assets = assets or RenderAssets()
    index, slide, local_time = reel.locate(t)

    progress = slide.transition_progress(local_time) if index > 0 else None
    current = render_slide_image(slide, theme, local_time, assets, size)
    if progress is None:
        return current

    previous = reel.slides[index - 1]
    outgoing = render_slide_image(previous, theme, previous.duration, assets, size)
    return Image.blend(outgoing, current, transition_alpha(slide.transition.type, progress))


def render_frame(surface: RasterSurface, reel: Reel, theme: Theme, t: float,
                 assets: Optional[RenderAssets] = None):
    """Render the frame at global time ``t`` into ``surface``.

    A reel without slides clears the surface.
    """
    if not reel.slides:
        surface.clear()
        return
    surface.draw(compose_frame(reel, theme, t, assets, surface.size))


def render_thumbnail(slide: Slide, theme: Theme, size: tuple[int, int] = (270, 480),
                     at: float = 2.0, assets: Optional[RenderAssets] = None) -> Image.Image:
    """Small preview of a slide, taken once most elements have settled."""
    full = render_slide_image(slide, theme, min(at, slide.duration), assets)
    return full.convert("RGB").resize(size, Image.Resampling.LANCZOS)
