"""Reel timeline — ordered slides plus a theme reference."""

from typing import NamedTuple, Optional, Sequence
from pydantic import BaseModel, Field, model_validator

from ..themes import DEFAULT_THEME_ID
from .element import Element
from .slide import Slide


class SlidePosition(NamedTuple):
    """Result of mapping a global time onto the timeline."""
    index: int
    slide: Slide
    local_time: float


def total_duration(slides: Sequence[Slide]) -> float:
    """Sum of slide durations. Non-positive durations are rejected."""
    total = 0.0
    for slide in slides:
        if slide.duration <= 0:
            raise ValueError(f"Slide {slide.id} has non-positive duration {slide.duration}")
        total += slide.duration
    return total


def slide_boundaries(slides: Sequence[Slide]) -> list[float]:
    """Start offset of every slide, followed by the total duration."""
    bounds = [0.0]
    for slide in slides:
        bounds.append(bounds[-1] + slide.duration)
    return bounds


def locate_slide_at_time(slides: Sequence[Slide], t: float) -> SlidePosition:
    """Find the slide showing at global time ``t`` and the time since it began.

    ``t`` is clamped to [0, total duration]. Slide intervals are half-open
    except the last, so ``t == total`` yields the last slide at its full
    duration.
    """
    if not slides:
        raise ValueError("Cannot locate a time in a reel with no slides")

    total = total_duration(slides)
    t = min(max(t, 0.0), total)

    start = 0.0
    for i, slide in enumerate(slides):
        end = start + slide.duration
        if t < end:
            return SlidePosition(i, slide, t - start)
        start = end

    last = slides[-1]
    return SlidePosition(len(slides) - 1, last, last.duration)


class Reel(BaseModel):
    """The exportable unit: a theme id and an ordered list of slides."""
    theme_id: str = DEFAULT_THEME_ID
    slides: list[Slide] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "Reel":
        slide_ids = [s.id for s in self.slides]
        if len(slide_ids) != len(set(slide_ids)):
            raise ValueError("Slide ids must be unique within a reel")
        element_ids = [el.id for s in self.slides for el in s.elements]
        if len(element_ids) != len(set(element_ids)):
            raise ValueError("Element ids must be unique within a reel")
        return self

    @property
    def total_duration(self) -> float:
        return total_duration(self.slides)

    def locate(self, t: float) -> SlidePosition:
        return locate_slide_at_time(self.slides, t)

    def get_slide(self, slide_id: int) -> Optional[Slide]:
        for s in self.slides:
            if s.id == slide_id:
                return s
        return None

    def find_element(self, element_id: int) -> Optional[tuple[Slide, Element]]:
        for s in self.slides:
            el = s.get_element(element_id)
            if el is not None:
                return s, el
        return None

    def slide_start(self, slide_id: int) -> Optional[float]:
        """Global time at which the given slide begins."""
        start = 0.0
        for s in self.slides:
            if s.id == slide_id:
                return start
            start += s.duration
        return None

    def next_id(self) -> int:
        """Smallest id greater than every slide and element id in the reel."""
        ids = [s.id for s in self.slides] + [el.id for s in self.slides for el in s.elements]
        return max(ids, default=0) + 1

    def to_summary(self) -> list[dict]:
        bounds = slide_boundaries(self.slides)
        return [
            {
                "id": s.id,
                "index": i,
                "time_range": f"{bounds[i]:.1f}s - {bounds[i + 1]:.1f}s",
                "duration": s.duration,
                "transition": s.transition.type.value,
                "background": s.background.kind.value,
                "elements": [
                    {"id": el.id, "kind": el.kind.value, "text": el.text}
                    for el in s.elements
                ],
            }
            for i, s in enumerate(self.slides)
        ]
