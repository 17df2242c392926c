"""Theme registry — named visual presets for reels.

Themes are frozen once built; the registry refuses to replace an id that is
already registered.
"""

import logging
from typing import Optional
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("ReelStudio.core.themes")

DEFAULT_THEME_ID = "classic"


class ThemeColors(BaseModel):
    """Color tokens. Values are CSS color strings (hex, rgba(), transparent)."""
    model_config = ConfigDict(frozen=True)

    background: str
    background_dark: str
    text: str
    text_dark: str
    accent: str
    muted: str
    body: str
    secondary: Optional[str] = None


class ThemeFonts(BaseModel):
    """Font tokens — family names plus weight/style per role."""
    model_config = ConfigDict(frozen=True)

    headline_family: str
    headline_weight: int = 400
    headline_style: str = "normal"
    headline_uppercase: bool = False
    script_family: Optional[str] = None
    script_style: str = "normal"
    body_family: str
    body_weight: int = 400
    body_style: str = "normal"
    ui_family: str


class LogoStyle(BaseModel):
    """Badge drawn behind the logo mark."""
    model_config = ConfigDict(frozen=True)

    background: Optional[str] = None  # None = transparent
    color: str = "#FFFFFF"
    border_color: Optional[str] = None
    border_width: int = 0
    radius: int = 0


class ThemeFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    always_dark: bool = False
    glass: bool = False
    brutal: bool = False
    glow: bool = False


class Theme(BaseModel):
    """An immutable visual preset."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    colors: ThemeColors
    fonts: ThemeFonts
    logo: LogoStyle = LogoStyle()
    logo_dark: Optional[LogoStyle] = None
    flags: ThemeFlags = ThemeFlags()

    @property
    def frame_background(self) -> str:
        """Reels always render on the dark variant."""
        return self.colors.background_dark or self.colors.background

    @property
    def headline_color(self) -> str:
        return self.colors.text_dark or self.colors.text

    @property
    def active_logo(self) -> LogoStyle:
        return self.logo_dark or self.logo

    def font_families(self) -> list[str]:
        """Distinct font families this theme references, in role order."""
        families = []
        for family in (self.fonts.headline_family, self.fonts.script_family,
                       self.fonts.body_family, self.fonts.ui_family):
            if family and family not in families:
                families.append(family)
        return families


# Built-in themes
BUILTIN_THEMES: dict[str, Theme] = {
    "classic": Theme(
        id="classic",
        name="Classic",
        description="Elegant and timeless — cream tones, script accents",
        colors=ThemeColors(
            background="#FDFCFA", background_dark="#1A1A1A",
            text="#1A1A1A", text_dark="#FDFCFA",
            accent="#999999", muted="#999999", body="#555555",
        ),
        fonts=ThemeFonts(
            headline_family="Cormorant Garamond", headline_weight=300,
            script_family="Mrs Saint Delafield",
            body_family="Josefin Sans", body_weight=300,
            ui_family="Josefin Sans",
        ),
        logo=LogoStyle(background="#1A1A1A", color="#FFFFFF"),
        logo_dark=LogoStyle(
            background="rgba(255,255,255,0.1)", color="#FDFCFA",
            border_color="rgba(255,255,255,0.12)", border_width=1,
        ),
    ),
    "editorial": Theme(
        id="editorial",
        name="Editorial",
        description="High-contrast magazine look — red accent, uppercase headlines",
        colors=ThemeColors(
            background="#FAFAFA", background_dark="#0A0A0A",
            text="#0A0A0A", text_dark="#FAFAFA",
            accent="#C41E3A", muted="#999999", body="#666666",
        ),
        fonts=ThemeFonts(
            headline_family="Oswald", headline_weight=700, headline_uppercase=True,
            script_family="Source Serif 4", script_style="italic",
            body_family="Source Serif 4", body_weight=400, body_style="italic",
            ui_family="Inter",
        ),
        logo=LogoStyle(background="#0A0A0A", color="#FFFFFF"),
        logo_dark=LogoStyle(background="#C41E3A", color="#FFFFFF"),
    ),
    "botanical": Theme(
        id="botanical",
        name="Botanical",
        description="Dark and moody — glassmorphism, plant greens",
        colors=ThemeColors(
            background="#040604", background_dark="#040604",
            text="rgba(255,255,255,0.95)", text_dark="rgba(255,255,255,0.95)",
            accent="rgba(45,90,60,0.8)", muted="rgba(255,255,255,0.55)",
            body="rgba(255,255,255,0.55)",
        ),
        fonts=ThemeFonts(
            headline_family="Cormorant Garamond", headline_weight=300,
            body_family="Montserrat", body_weight=300,
            ui_family="Montserrat",
        ),
        logo=LogoStyle(
            background="rgba(255,255,255,0.08)", color="rgba(255,255,255,0.9)",
            border_color="rgba(255,255,255,0.12)", border_width=1, radius=8,
        ),
        flags=ThemeFlags(always_dark=True, glass=True),
    ),
    "contemporary": Theme(
        id="contemporary",
        name="Contemporary",
        description="Neobrutalism — bold shadows, multi-color accents",
        colors=ThemeColors(
            background="#FAFAFA", background_dark="#0D0D0D",
            text="#0D0D0D", text_dark="#FFFFFF",
            accent="#FF6B6B", muted="#737373", body="#525252",
            secondary="#4ECDC4",
        ),
        fonts=ThemeFonts(
            headline_family="Space Grotesk", headline_weight=700, headline_uppercase=True,
            body_family="Space Grotesk", body_weight=400,
            ui_family="Space Grotesk",
        ),
        logo=LogoStyle(background="#0D0D0D", color="#FFFFFF"),
        logo_dark=LogoStyle(background="#0D0D0D", color="#FFE66D"),
        flags=ThemeFlags(brutal=True),
    ),
    "luxe": Theme(
        id="luxe",
        name="Luxe",
        description="Ultra-premium dark — gold accents, cinematic feel",
        colors=ThemeColors(
            background="#0A0A0A", background_dark="#0A0A0A",
            text="#F8F6F3", text_dark="#F8F6F3",
            accent="#C9A962", muted="rgba(248,246,243,0.4)",
            body="rgba(248,246,243,0.45)",
        ),
        fonts=ThemeFonts(
            headline_family="Cormorant", headline_weight=300, headline_style="italic",
            body_family="Outfit", body_weight=300,
            ui_family="Outfit",
        ),
        logo=LogoStyle(color="#C9A962", border_color="rgba(201,169,98,0.3)", border_width=1),
        flags=ThemeFlags(always_dark=True),
    ),
    "neon": Theme(
        id="neon",
        name="Neon",
        description="Cyberpunk dark — neon glows, bold type",
        colors=ThemeColors(
            background="#0A0A0F", background_dark="#0A0A0F",
            text="#FFFFFF", text_dark="#FFFFFF",
            accent="#00FFFF", muted="rgba(255,255,255,0.4)",
            body="rgba(255,255,255,0.5)", secondary="#FF00FF",
        ),
        fonts=ThemeFonts(
            headline_family="Space Grotesk", headline_weight=700, headline_uppercase=True,
            body_family="Space Grotesk", body_weight=400,
            ui_family="Space Grotesk",
        ),
        logo=LogoStyle(
            background="rgba(0,255,255,0.08)", color="#00FFFF",
            border_color="rgba(0,255,255,0.3)", border_width=1,
        ),
        flags=ThemeFlags(always_dark=True, glow=True),
    ),
    "modern": Theme(
        id="modern",
        name="Modern",
        description="Clean minimal — warm neutrals, bold simplicity",
        colors=ThemeColors(
            background="#FFFFFF", background_dark="#000000",
            text="#000000", text_dark="#FFFFFF",
            accent="#000000", muted="#888888", body="#555555",
        ),
        fonts=ThemeFonts(
            headline_family="DM Sans", headline_weight=700,
            body_family="DM Sans", body_weight=400,
            ui_family="DM Sans",
        ),
        logo=LogoStyle(background="#000000", color="#FFFFFF"),
        logo_dark=LogoStyle(background="#FFFFFF", color="#000000"),
    ),
    "video": Theme(
        id="video",
        name="Video",
        description="Cinematic dark — steel blue accent, layered typography",
        colors=ThemeColors(
            background="#0A0A0A", background_dark="#0A0A0A",
            text="#FFFFFF", text_dark="#FFFFFF",
            accent="#6B8CAE", muted="rgba(255,255,255,0.35)", body="#B0B0B0",
        ),
        fonts=ThemeFonts(
            headline_family="Manrope", headline_weight=700,
            script_family="Cormorant Garamond", script_style="italic",
            body_family="Inter", body_weight=400,
            ui_family="Inter",
        ),
        logo=LogoStyle(color="#6B8CAE", border_color="rgba(107,140,174,0.3)", border_width=1),
        flags=ThemeFlags(always_dark=True),
    ),
}


class ThemeRegistry:
    """Synchronous lookup of themes by id."""

    def __init__(self, themes: Optional[dict[str, Theme]] = None):
        self._themes: dict[str, Theme] = dict(BUILTIN_THEMES if themes is None else themes)

    def get(self, theme_id: str) -> Optional[Theme]:
        return self._themes.get(theme_id)

    def resolve(self, theme_id: str) -> Theme:
        """Look up a theme, falling back to the default theme for unknown ids."""
        theme = self._themes.get(theme_id)
        if theme is None:
            logger.warning(f"Unknown theme '{theme_id}', using '{DEFAULT_THEME_ID}'")
            theme = self._themes.get(DEFAULT_THEME_ID) or BUILTIN_THEMES[DEFAULT_THEME_ID]
        return theme

    def register(self, theme: Theme) -> Theme:
        if theme.id in self._themes:
            raise ValueError(f"Theme '{theme.id}' is already registered")
        self._themes[theme.id] = theme
        return theme

    def __contains__(self, theme_id: str) -> bool:
        return theme_id in self._themes

    def list_themes(self) -> list[dict]:
        return [
            {
                "id": t.id,
                "name": t.name,
                "description": t.description,
                "always_dark": t.flags.always_dark,
            }
            for t in self._themes.values()
        ]
