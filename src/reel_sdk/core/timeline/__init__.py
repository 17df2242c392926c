"""Timeline package — public API re-exports."""

from .animations import (
    AnimationKind,
    AnimationState,
    TransitionKind,
    REST,
    animate,
    ease_in_out,
    ease_out,
    transition_alpha,
)
from .element import Element, ElementKind
from .slide import Background, BackgroundKind, Slide, SlideTransition
from .reel import Reel, SlidePosition, locate_slide_at_time, slide_boundaries, total_duration

__all__ = [
    "AnimationKind",
    "AnimationState",
    "TransitionKind",
    "REST",
    "animate",
    "ease_in_out",
    "ease_out",
    "transition_alpha",
    "Element",
    "ElementKind",
    "Background",
    "BackgroundKind",
    "Slide",
    "SlideTransition",
    "Reel",
    "SlidePosition",
    "locate_slide_at_time",
    "slide_boundaries",
    "total_duration",
]
