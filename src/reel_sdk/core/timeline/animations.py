"""Animation and transition variants.

Every animation variant is a total function from progress ``p`` in [0, 1] to
an ``AnimationState``. Progress outside the range is clamped, so callers can
pass raw ratios.
"""

from enum import Enum
from typing import Callable, NamedTuple


class AnimationKind(str, Enum):
    FADE_UP = "fadeUp"
    FADE_IN = "fadeIn"
    SLIDE_RIGHT = "slideRight"
    SCALE_IN = "scaleIn"


class TransitionKind(str, Enum):
    NONE = "none"
    CROSSFADE = "crossfade"


class AnimationState(NamedTuple):
    alpha: float
    offset_x: float
    offset_y: float
    scale: float


REST = AnimationState(alpha=1.0, offset_x=0.0, offset_y=0.0, scale=1.0)


def clamp01(t: float) -> float:
    return min(max(t, 0.0), 1.0)


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def ease_out(t: float) -> float:
    """Cubic ease-out."""
    return 1 - (1 - clamp01(t)) ** 3


def ease_in_out(t: float) -> float:
    """Cubic ease-in-out."""
    c = clamp01(t)
    return 4 * c * c * c if c < 0.5 else 1 - (-2 * c + 2) ** 3 / 2


def _fade_up(p: float) -> AnimationState:
    e = ease_out(p)
    return AnimationState(alpha=e, offset_x=0.0, offset_y=lerp(60, 0, e), scale=1.0)


def _fade_in(p: float) -> AnimationState:
    return AnimationState(alpha=ease_out(p), offset_x=0.0, offset_y=0.0, scale=1.0)


def _slide_right(p: float) -> AnimationState:
    e = ease_out(p)
    return AnimationState(alpha=e, offset_x=lerp(-80, 0, e), offset_y=0.0, scale=1.0)


def _scale_in(p: float) -> AnimationState:
    e = ease_out(p)
    return AnimationState(alpha=e, offset_x=0.0, offset_y=0.0, scale=lerp(0.7, 1, e))


ANIMATIONS: dict[AnimationKind, Callable[[float], AnimationState]] = {
    AnimationKind.FADE_UP: _fade_up,
    AnimationKind.FADE_IN: _fade_in,
    AnimationKind.SLIDE_RIGHT: _slide_right,
    AnimationKind.SCALE_IN: _scale_in,
}

# Adding an AnimationKind without an interpolation must fail at import time
_missing = set(AnimationKind) - set(ANIMATIONS)
if _missing:
    raise RuntimeError(f"Animation kinds without interpolation: {sorted(k.value for k in _missing)}")


def animate(kind: AnimationKind, progress: float) -> AnimationState:
    """Interpolate an animation variant at the given progress."""
    return ANIMATIONS[AnimationKind(kind)](clamp01(progress))


def transition_alpha(kind: TransitionKind, progress: float) -> float:
    """Opacity of the incoming slide during a transition."""
    kind = TransitionKind(kind)
    if kind is TransitionKind.NONE:
        return 1.0
    if kind is TransitionKind.CROSSFADE:
        return ease_in_out(progress)
    raise ValueError(f"Unhandled transition kind: {kind}")
