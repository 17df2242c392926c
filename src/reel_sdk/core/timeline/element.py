"""Element data model — one animated unit on a slide."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .animations import AnimationKind, AnimationState, REST, animate


class ElementKind(str, Enum):
    LOGO = "logo"
    DIVIDER = "divider"
    EYEBROW = "eyebrow"
    HEADLINE = "headline"
    BODY = "body"
    ACCENT_WORD = "accentWord"
    FOOTER = "footer"


class Element(BaseModel):
    """A timed, animated text or graphic element.

    ``x`` and ``y`` are normalized (0-1) frame coordinates of the element's
    anchor. ``delay`` is measured from the start of the owning slide.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: int
    kind: ElementKind
    text: str = ""
    animation: AnimationKind = AnimationKind.FADE_UP
    delay: float = Field(0.0, ge=0)
    anim_duration: float = Field(0.5, gt=0)
    x: float = 0.067
    y: float = 0.5
    font_size: Optional[int] = Field(None, gt=0)

    @property
    def settled_at(self) -> float:
        """Slide-local time at which the element reaches its rest state."""
        return self.delay + self.anim_duration

    def is_visible(self, local_time: float) -> bool:
        return local_time >= self.delay

    def progress(self, local_time: float) -> float:
        """Normalized animation progress, clamped to [0, 1]."""
        return min(max((local_time - self.delay) / self.anim_duration, 0.0), 1.0)

    def state_at(self, local_time: float) -> Optional[AnimationState]:
        """Animation state at a slide-local time, or None before the delay."""
        if not self.is_visible(local_time):
            return None
        if local_time >= self.settled_at:
            return REST
        return animate(self.animation, self.progress(local_time))
