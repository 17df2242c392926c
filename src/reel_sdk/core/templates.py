"""Reel templates — ready-made slide sequences.

Each factory takes an ``IdGenerator`` owned by the caller, so ids are
sequential within one reel and no state is shared between calls.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .themes import DEFAULT_THEME_ID
from .timeline import (
    AnimationKind,
    Background,
    Element,
    ElementKind,
    Reel,
    Slide,
    SlideTransition,
    TransitionKind,
)

BRAND_MARK = "S&I."
SITE_URL = "siwedding.com"


class IdGenerator:
    """Sequential id source scoped to one reel construction."""

    def __init__(self, start: int = 1):
        self._next = start

    def __call__(self) -> int:
        value = self._next
        self._next += 1
        return value

    @property
    def peek(self) -> int:
        return self._next


def make_element(ids: IdGenerator, kind: ElementKind, text: str = "",
                 animation: AnimationKind = AnimationKind.FADE_UP,
                 delay: float = 0.0, anim_duration: float = 0.5,
                 x: float = 0.067, y: float = 0.5,
                 font_size: Optional[int] = None) -> Element:
    return Element(
        id=ids(),
        kind=kind,
        text=text,
        animation=animation,
        delay=delay,
        anim_duration=anim_duration,
        x=x,
        y=y,
        font_size=font_size,
    )


def make_slide(ids: IdGenerator, elements: list[Element], duration: float = 4.0,
               transition: TransitionKind = TransitionKind.CROSSFADE,
               transition_duration: float = 0.5, darken: float = 0.4) -> Slide:
    # Elements are built before their slide, so they hold the lower ids
    return Slide(
        id=ids(),
        duration=duration,
        transition=SlideTransition(type=transition, duration=transition_duration),
        background=Background(darken=darken),
        elements=elements,
    )


# Shorthands for the recurring chrome
def _logo(ids: IdGenerator, delay: float = 0.0) -> Element:
    return make_element(ids, ElementKind.LOGO, BRAND_MARK,
                        animation=AnimationKind.FADE_IN, delay=delay, y=0.04)


def _footer(ids: IdGenerator, delay: float) -> Element:
    return make_element(ids, ElementKind.FOOTER, SITE_URL, delay=delay, y=0.96)


def _el(ids: IdGenerator, kind: ElementKind, text: str, delay: float, y: float,
        font_size: Optional[int] = None) -> Element:
    return make_element(ids, kind, text, delay=delay, y=y, font_size=font_size)


# ── Factories ───────────────────────────────────────────────────────────

def theme_showcase(ids: IdGenerator) -> list[Slide]:
    """Intro → Features → Highlight → CTA."""
    E = ElementKind
    return [
        make_slide(ids, [
            _logo(ids, 0.2),
            _el(ids, E.DIVIDER, "", 0.4, 0.38),
            _el(ids, E.EYEBROW, "New theme", 0.6, 0.35),
            _el(ids, E.HEADLINE, "The Classic Theme", 0.8, 0.42, font_size=85),
            _el(ids, E.BODY, "Timeless elegance for your wedding website.", 1.2, 0.62),
            _footer(ids, 1.5),
        ], duration=4.5, transition=TransitionKind.NONE),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "Features", 0.3, 0.28),
            _el(ids, E.HEADLINE, "Everything you need", 0.5, 0.34, font_size=72),
            _el(ids, E.DIVIDER, "", 0.8, 0.46),
            _el(ids, E.BODY, "RSVP · Guest list · Love story\nCountdown · Photo upload\n"
                             "Song requests · Password protection", 1.0, 0.50),
            _footer(ids, 1.5),
        ], duration=4.5),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "Handmade", 0.3, 0.35),
            _el(ids, E.HEADLINE, "No template. Your design.", 0.5, 0.42, font_size=80),
            _el(ids, E.ACCENT_WORD, "Design.", 1.0, 0.62),
            _footer(ids, 1.2),
        ], duration=4),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.DIVIDER, "", 0.3, 0.38),
            _el(ids, E.HEADLINE, "Request a demo today", 0.5, 0.42, font_size=80),
            _el(ids, E.BODY, f"{SITE_URL}\nLink in bio", 1.0, 0.60),
            _footer(ids, 1.2),
        ], duration=4),
    ]


def feature_highlight(ids: IdGenerator) -> list[Slide]:
    """Problem → Solution → Detail → CTA."""
    E = ElementKind
    return [
        make_slide(ids, [
            _logo(ids, 0.2),
            _el(ids, E.HEADLINE, "Your guests don't know when or where?", 0.5, 0.40, font_size=78),
            _el(ids, E.BODY, "No more endless group chats.", 1.2, 0.60),
            _footer(ids, 1.5),
        ], duration=4.5, transition=TransitionKind.NONE),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "The solution", 0.3, 0.32),
            _el(ids, E.HEADLINE, "Your own wedding website", 0.5, 0.38, font_size=76),
            _el(ids, E.DIVIDER, "", 0.9, 0.52),
            _el(ids, E.BODY, "Every detail in one place.\nYour domain. Your design.\n"
                             "With an admin dashboard for you.", 1.1, 0.56),
            _footer(ids, 1.5),
        ], duration=4.5),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "RSVP feature", 0.3, 0.30),
            _el(ids, E.HEADLINE, "Every reply at a glance", 0.5, 0.36, font_size=72),
            _el(ids, E.BODY, "Guests respond right on\nthe website. You see it all in\n"
                             "the dashboard, in real time.", 1.0, 0.54),
            _footer(ids, 1.3),
        ], duration=4),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.HEADLINE, "Ready for your website?", 0.5, 0.42, font_size=80),
            _el(ids, E.ACCENT_WORD, "website?", 1.0, 0.60),
            _el(ids, E.BODY, f"Link in bio · {SITE_URL}", 1.3, 0.72),
            _footer(ids, 1.5),
        ], duration=4),
    ]


def wedding_tip(ids: IdGenerator) -> list[Slide]:
    """Hook → three tips → CTA."""
    E = ElementKind
    return [
        make_slide(ids, [
            _logo(ids, 0.2),
            _el(ids, E.EYEBROW, "Wedding tip", 0.5, 0.35),
            _el(ids, E.HEADLINE, "3 things your guests really want", 0.7, 0.42, font_size=74),
            _el(ids, E.DIVIDER, "", 1.2, 0.60),
            _el(ids, E.BODY, "Save this for later!", 1.4, 0.64),
            _footer(ids, 1.6),
        ], duration=4, transition=TransitionKind.NONE),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "Tip 1", 0.3, 0.32),
            _el(ids, E.HEADLINE, "Clear venue details", 0.5, 0.38, font_size=76),
            _el(ids, E.BODY, "Directions, parking, dress code,\nall at a glance, without\n"
                             "ten follow-up messages.", 1.0, 0.56),
            _footer(ids, 1.3),
        ], duration=4),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "Tip 2", 0.3, 0.32),
            _el(ids, E.HEADLINE, "Effortless RSVPs", 0.5, 0.38, font_size=76),
            _el(ids, E.BODY, "No phone call needed. One click.\nWith menu choice and allergies\n"
                             "right on the website.", 1.0, 0.56),
            _footer(ids, 1.3),
        ], duration=4),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "Tip 3", 0.3, 0.28),
            _el(ids, E.HEADLINE, "One place for every memory", 0.5, 0.34, font_size=72),
            _el(ids, E.BODY, "Upload photos, share song\nrequests, your website as a\n"
                             "shared experience.", 1.0, 0.52),
            _el(ids, E.DIVIDER, "", 1.5, 0.70),
            _el(ids, E.BODY, f"More at {SITE_URL} · Link in bio", 1.7, 0.74),
            _footer(ids, 1.9),
        ], duration=5),
    ]


def before_after(ids: IdGenerator) -> list[Slide]:
    """Before → After → Result → CTA."""
    E = ElementKind
    return [
        make_slide(ids, [
            _logo(ids, 0.2),
            _el(ids, E.EYEBROW, "Before", 0.5, 0.32),
            _el(ids, E.HEADLINE, "Group-chat chaos, lost replies, no overview", 0.7, 0.38, font_size=68),
            _el(ids, E.BODY, "Sound familiar? Five groups, twenty questions,\n"
                             "and still nobody knows what's going on.", 1.3, 0.62),
            _footer(ids, 1.6),
        ], duration=4.5, transition=TransitionKind.NONE),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "After", 0.3, 0.32),
            _el(ids, E.HEADLINE, "One website. Every detail. Full control.", 0.5, 0.38, font_size=72),
            _el(ids, E.DIVIDER, "", 1.0, 0.54),
            _el(ids, E.BODY, "RSVP, guest list, venue,\nall on your own website.\n"
                             "In your design.", 1.2, 0.58),
            _footer(ids, 1.5),
        ], duration=4.5),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.EYEBROW, "The result", 0.3, 0.35),
            _el(ids, E.HEADLINE, "Stress-free wedding", 0.5, 0.42, font_size=88),
            _el(ids, E.ACCENT_WORD, "Stress-free", 1.0, 0.60),
            _footer(ids, 1.3),
        ], duration=3.5),
        make_slide(ids, [
            _logo(ids),
            _el(ids, E.HEADLINE, "From €1,290", 0.4, 0.40, font_size=96),
            _el(ids, E.BODY, f"Handmade in Hamburg.\n{SITE_URL} · Link in bio", 1.0, 0.58),
            _footer(ids, 1.3),
        ], duration=4),
    ]


def blank(ids: IdGenerator) -> list[Slide]:
    """A single placeholder slide to fill in by hand."""
    E = ElementKind
    return [
        make_slide(ids, [
            _logo(ids, 0.2),
            _el(ids, E.EYEBROW, "Eyebrow text", 0.5, 0.35),
            _el(ids, E.HEADLINE, "Your headline here", 0.8, 0.42, font_size=80),
            _el(ids, E.BODY, "Body text goes here.", 1.2, 0.62),
            _footer(ids, 1.5),
        ], duration=5, transition=TransitionKind.NONE),
    ]


# ── Library ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReelTemplate:
    """A named slide-sequence factory."""
    id: str
    name: str
    description: str
    factory: Callable[[IdGenerator], list[Slide]]

    def create(self, ids: Optional[IdGenerator] = None) -> list[Slide]:
        return self.factory(ids or IdGenerator())


BUILTIN_TEMPLATES: dict[str, ReelTemplate] = {
    t.id: t for t in [
        ReelTemplate("theme_showcase", "Theme Showcase",
                     "Intro → Features → Preview → CTA", theme_showcase),
        ReelTemplate("feature_highlight", "Feature Highlight",
                     "Problem → Solution → Demo → CTA", feature_highlight),
        ReelTemplate("wedding_tip", "Wedding Tip",
                     "Hook → 3 tips → CTA", wedding_tip),
        ReelTemplate("before_after", "Before/After",
                     "Problem → Solution → Result → CTA", before_after),
        ReelTemplate("blank", "Blank",
                     "One empty slide to design yourself", blank),
    ]
}


class TemplateLibrary:
    """Collection of reel templates with CRUD operations."""

    def __init__(self, templates: Optional[dict[str, ReelTemplate]] = None):
        self.templates: dict[str, ReelTemplate] = dict(
            BUILTIN_TEMPLATES if templates is None else templates
        )

    def get(self, template_id: str) -> Optional[ReelTemplate]:
        return self.templates.get(template_id)

    def add(self, template: ReelTemplate) -> ReelTemplate:
        self.templates[template.id] = template
        return template

    def remove(self, template_id: str) -> bool:
        if template_id in self.templates:
            del self.templates[template_id]
            return True
        return False

    def create(self, template_id: str, ids: Optional[IdGenerator] = None) -> list[Slide]:
        template = self.get(template_id)
        if template is None:
            raise KeyError(f"Unknown template '{template_id}'")
        return template.create(ids)

    def create_reel(self, template_id: str, theme_id: str = DEFAULT_THEME_ID) -> Reel:
        return Reel(theme_id=theme_id, slides=self.create(template_id))

    def list_templates(self) -> list[dict]:
        return [
            {
                "id": t.id,
                "name": t.name,
                "description": t.description,
            }
            for t in self.templates.values()
        ]
