"""Slide data model."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .animations import TransitionKind
from .element import Element


class BackgroundKind(str, Enum):
    SOLID = "solid"
    IMAGE = "image"


class Background(BaseModel):
    """Slide background. ``image`` is a file path or URL; ``darken`` is the
    alpha of the black overlay composited over it."""
    model_config = ConfigDict(validate_assignment=True)

    kind: BackgroundKind = BackgroundKind.SOLID
    image: Optional[str] = None
    darken: float = Field(0.4, ge=0, le=1)


class SlideTransition(BaseModel):
    """Transition into this slide from the previous one.

    Types: none, crossfade. ``duration`` is the length of the blend window
    at the start of the slide.
    """
    model_config = ConfigDict(validate_assignment=True)

    type: TransitionKind = TransitionKind.CROSSFADE
    duration: float = Field(0.5, ge=0)


class Slide(BaseModel):
    """A timed segment of a reel with its own background and elements."""
    model_config = ConfigDict(validate_assignment=True)

    id: int
    duration: float = Field(4.0, gt=0)
    transition: SlideTransition = Field(default_factory=SlideTransition)
    background: Background = Field(default_factory=Background)
    elements: list[Element] = Field(default_factory=list)

    def get_element(self, element_id: int) -> Optional[Element]:
        for el in self.elements:
            if el.id == element_id:
                return el
        return None

    def transition_progress(self, local_time: float) -> Optional[float]:
        """Progress through the transition-in window, or None outside it."""
        tr = self.transition
        if tr.type is TransitionKind.NONE or tr.duration <= 0:
            return None
        if local_time < tr.duration:
            return max(local_time, 0.0) / tr.duration
        return None
