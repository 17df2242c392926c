"""Session state management for a reel under edit, with undo support."""

import logging
from typing import Optional
from pydantic import BaseModel, Field

from .templates import TemplateLibrary
from .themes import ThemeRegistry
from .timeline import (
    Background,
    BackgroundKind,
    Element,
    Reel,
    Slide,
    TransitionKind,
)
from .workspace import Workspace

logger = logging.getLogger("ReelStudio.core.state")

MAX_UNDO = 50

EDITABLE_ELEMENT_FIELDS = {"text", "animation", "delay", "anim_duration", "x", "y", "font_size"}


class UndoEntry(BaseModel):
    """A snapshot of the reel for undo."""
    description: str
    reel_json: str


class ReelSession(BaseModel):
    """The reel being edited, plus everything needed to edit it."""
    workspace: Optional[Workspace] = None
    reel: Reel = Field(default_factory=Reel)
    undo_stack: list[UndoEntry] = Field(default_factory=list)
    templates: TemplateLibrary = Field(default_factory=TemplateLibrary)
    themes: ThemeRegistry = Field(default_factory=ThemeRegistry)

    model_config = {"arbitrary_types_allowed": True}

    def checkpoint(self, description: str):
        """Save the current reel to the undo stack."""
        entry = UndoEntry(
            description=description,
            reel_json=self.reel.model_dump_json(),
        )
        self.undo_stack.append(entry)
        if len(self.undo_stack) > MAX_UNDO:
            self.undo_stack = self.undo_stack[-MAX_UNDO:]

    def undo(self) -> Optional[str]:
        """Revert to the last checkpoint. Returns description of what was undone."""
        if not self.undo_stack:
            return None
        entry = self.undo_stack.pop()
        self.reel = Reel.model_validate_json(entry.reel_json)
        return entry.description

    # ── Edits ───────────────────────────────────────────────────────────

    def apply_template(self, template_id: str, theme_id: Optional[str] = None) -> Reel:
        """Replace the reel with a fresh copy of a template."""
        theme_id = theme_id or self.reel.theme_id
        if theme_id not in self.themes:
            raise ValueError(f"Unknown theme '{theme_id}'")
        reel = self.templates.create_reel(template_id, theme_id)
        self.checkpoint(f"apply template {template_id}")
        self.reel = reel
        logger.info(f"Applied template '{template_id}' with theme '{theme_id}'")
        return reel

    def set_theme(self, theme_id: str):
        if theme_id not in self.themes:
            raise ValueError(f"Unknown theme '{theme_id}'")
        self.checkpoint(f"set theme {theme_id}")
        self.reel.theme_id = theme_id

    def edit_element(self, element_id: int, **updates) -> Element:
        """Update fields of one element; invalid values leave it unchanged."""
        found = self.reel.find_element(element_id)
        if found is None:
            raise ValueError(f"Element {element_id} not found")
        unknown = set(updates) - EDITABLE_ELEMENT_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit element fields: {', '.join(sorted(unknown))}")

        slide, el = found
        edited = Element.model_validate({**el.model_dump(), **updates})
        self.checkpoint(f"edit element {element_id}")
        slide.elements[slide.elements.index(el)] = edited
        return edited

    def edit_slide(self, slide_id: int, duration: Optional[float] = None,
                   transition: Optional[str] = None,
                   transition_duration: Optional[float] = None,
                   background_image: Optional[str] = None,
                   darken: Optional[float] = None) -> Slide:
        """Update timing, transition or background of a slide.

        An empty ``background_image`` string switches back to a solid fill.
        """
        slide = self.reel.get_slide(slide_id)
        if slide is None:
            raise ValueError(f"Slide {slide_id} not found")

        data = slide.model_dump()
        if duration is not None:
            data["duration"] = duration
        if transition is not None:
            data["transition"]["type"] = TransitionKind(transition)
        if transition_duration is not None:
            data["transition"]["duration"] = transition_duration
        if background_image is not None:
            if self.workspace and background_image:
                background_image = self.workspace.resolve_ref(background_image)
            data["background"] = Background(
                kind=BackgroundKind.IMAGE if background_image else BackgroundKind.SOLID,
                image=background_image or None,
                darken=data["background"]["darken"],
            ).model_dump()
        if darken is not None:
            data["background"]["darken"] = darken

        edited = Slide.model_validate(data)
        self.checkpoint(f"edit slide {slide_id}")
        self.reel.slides[self.reel.slides.index(slide)] = edited
        return edited

    def remove_slide(self, slide_id: int) -> bool:
        slide = self.reel.get_slide(slide_id)
        if slide is None:
            return False
        self.checkpoint(f"remove slide {slide_id}")
        self.reel.slides.remove(slide)
        return True

    def reorder_slides(self, slide_ids: list[int]):
        """Put slides in the given order. Must name every slide exactly once."""
        current = {s.id: s for s in self.reel.slides}
        if sorted(slide_ids) != sorted(current):
            raise ValueError("Order must list every slide id exactly once")
        self.checkpoint("reorder slides")
        self.reel.slides = [current[i] for i in slide_ids]

    # ── Persistence ─────────────────────────────────────────────────────

    def auto_save(self):
        """Save current reel to workspace if available."""
        if self.workspace:
            self.workspace.reel_path.write_text(self.reel.model_dump_json(indent=2))

    def load_reel_from_workspace(self):
        """Load the saved reel from the workspace if it exists."""
        if not self.workspace:
            return
        if self.workspace.reel_path.exists():
            self.reel = Reel.model_validate_json(self.workspace.reel_path.read_text())
