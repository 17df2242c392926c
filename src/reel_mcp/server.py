"""Reel Studio MCP Server - MCP tools for building and exporting short-form reels."""

from mcp.server.fastmcp import FastMCP, Context, Image
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Any
from pathlib import Path

# SDK imports
from reel_sdk.config import ExportSettings
from reel_sdk.core.assets import AssetCache
from reel_sdk.core.state import ReelSession
from reel_sdk.core.workspace import Workspace
from reel_sdk.export.capability import SinkFactory
from reel_sdk.export.delivery import DirectoryDelivery
from reel_sdk.export.errors import ExportError
from reel_sdk.export.pipeline import ReelExporter, count_frames
from reel_sdk.render.fonts import FontBook
from reel_sdk.render.renderer import RenderAssets, render_frame, render_thumbnail
from reel_sdk.render.surface import RasterSurface

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("ReelStudio")

DEFAULT_PROJECTS_DIR = "./projects"
PREVIEW_MAX_SIZE = 960


# ── Global State ────────────────────────────────────────────────────────

_settings = ExportSettings.from_env()
_session = ReelSession()
_cache = AssetCache()
_fonts = FontBook(_settings.font_dir, _settings.font_sources, _cache)
_factory = SinkFactory(_settings)


def _exports_dir() -> Path:
    if _session.workspace:
        return _session.workspace.exports_dir
    return _settings.export_dir


def _font_book() -> FontBook:
    """Fonts from the open project take precedence over REEL_FONT_DIR."""
    global _fonts
    ws = _session.workspace
    if ws and ws.fonts_dir.is_dir() and any(ws.fonts_dir.glob("*.ttf")):
        if _fonts.font_dir != ws.fonts_dir:
            _fonts = FontBook(ws.fonts_dir, _settings.font_sources, _cache)
    return _fonts


async def _render_assets(size: tuple[int, int]) -> RenderAssets:
    theme = _session.themes.resolve(_session.reel.theme_id)
    return await RenderAssets.prepare(_session.reel, theme, size, _cache, _font_book())


# ── Server Setup ────────────────────────────────────────────────────────

@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
    try:
        logger.info("ReelStudio server starting up")
        caps = _factory.capabilities
        if not caps.available:
            logger.warning(f"ffmpeg not found ('{_settings.ffmpeg_binary}') - exports will fail")
        elif not caps.has_encoder(_settings.primary_codec):
            logger.warning(f"ffmpeg has no {_settings.primary_codec} encoder - exports will use WebM")
        yield {}
    finally:
        _cache.clear()
        logger.info("ReelStudio server shut down")


mcp = FastMCP("ReelStudio", lifespan=server_lifespan)


# ═══════════════════════════════════════════════════════════════════════
# PROJECT MANAGEMENT TOOLS
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def create_project(ctx: Context, project_name: str, base_path: str = "") -> str:
    """Create a new reel project with standard directory structure.

    Parameters:
    - project_name: Name for the project (used as directory name)
    - base_path: Optional base directory (defaults to ./projects/)
    """
    global _session
    base = Path(base_path) if base_path else Path(DEFAULT_PROJECTS_DIR)
    project_path = base / project_name

    if project_path.exists():
        return f"Error: Project directory already exists at {project_path}"

    workspace = Workspace(project_name=project_name, root_path=project_path)
    workspace.initialize()

    _session = ReelSession(workspace=workspace, reel=_session.reel)
    _session.auto_save()

    return json.dumps({
        "status": "created",
        "project_name": project_name,
        "path": str(project_path),
        "directories": ["assets/images/", "assets/fonts/", "exports/"],
    }, indent=2)


@mcp.tool()
def load_project(ctx: Context, project_path: str) -> str:
    """Load an existing reel project.

    Parameters:
    - project_path: Path to the project directory
    """
    global _session
    try:
        workspace = Workspace.load(Path(project_path))
        _session = ReelSession(workspace=workspace)
        _session.load_reel_from_workspace()

        return json.dumps({
            "status": "loaded",
            "project_name": workspace.project_name,
            "path": str(workspace.root_path),
            "asset_count": len(workspace.assets),
            "slide_count": len(_session.reel.slides),
        }, indent=2)
    except Exception as e:
        return f"Error loading project: {str(e)}"


@mcp.tool()
def save_project(ctx: Context) -> str:
    """Save the current project state (reel and manifest)."""
    if not _session.workspace:
        return "Error: No project is currently open. Use create_project or load_project first."

    _session.auto_save()
    _session.workspace.save_manifest()
    return f"Project '{_session.workspace.project_name}' saved successfully."


@mcp.tool()
def import_asset(ctx: Context, file_path: str, asset_type: str = "image") -> str:
    """Copy a background image or font file into the project.

    Parameters:
    - file_path: Local path to the file
    - asset_type: "image" or "font"
    """
    if not _session.workspace:
        return "Error: No project is currently open."
    if asset_type not in ("image", "font"):
        return f"Error: Unknown asset type '{asset_type}'. Use 'image' or 'font'."
    try:
        asset = _session.workspace.import_file(Path(file_path), type=asset_type)
        return json.dumps(asset.model_dump(), indent=2, default=str)
    except Exception as e:
        return f"Error importing asset: {str(e)}"


# ═══════════════════════════════════════════════════════════════════════
# THEMES & TEMPLATES
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_themes(ctx: Context) -> str:
    """List available visual themes."""
    return json.dumps(_session.themes.list_themes(), indent=2)


@mcp.tool()
def list_templates(ctx: Context) -> str:
    """List available reel templates."""
    return json.dumps(_session.templates.list_templates(), indent=2)


@mcp.tool()
def apply_template(ctx: Context, template_id: str, theme_id: str = "") -> str:
    """Replace the current reel with a fresh copy of a template.

    Parameters:
    - template_id: One of the ids from list_templates()
    - theme_id: Optional theme id (keeps the current theme if omitted)
    """
    try:
        reel = _session.apply_template(template_id, theme_id or None)
    except (KeyError, ValueError) as e:
        return f"Error: {str(e)}"
    _session.auto_save()
    return json.dumps({
        "template": template_id,
        "theme": reel.theme_id,
        "total_duration": reel.total_duration,
        "slides": reel.to_summary(),
    }, indent=2)


@mcp.tool()
def set_theme(ctx: Context, theme_id: str) -> str:
    """Switch the reel to another theme.

    Parameters:
    - theme_id: One of the ids from list_themes()
    """
    try:
        _session.set_theme(theme_id)
    except ValueError as e:
        return f"Error: {str(e)}"
    _session.auto_save()
    return f"Theme set to '{theme_id}'."


# ═══════════════════════════════════════════════════════════════════════
# REEL EDITING
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def get_reel(ctx: Context) -> str:
    """Get a summary of the current reel: slides, timing and element copy."""
    reel = _session.reel
    return json.dumps({
        "theme": reel.theme_id,
        "total_duration": reel.total_duration if reel.slides else 0.0,
        "frames": count_frames(reel.total_duration, _settings.fps) if reel.slides else 0,
        "slides": reel.to_summary(),
    }, indent=2)


@mcp.tool()
def get_slide(ctx: Context, slide_id: int) -> str:
    """Get full details of one slide.

    Parameters:
    - slide_id: The ID of the slide
    """
    slide = _session.reel.get_slide(slide_id)
    if not slide:
        return f"Error: Slide {slide_id} not found"
    return slide.model_dump_json(indent=2)


@mcp.tool()
def edit_element(ctx: Context, element_id: int, text: str = None,
                 animation: str = None, delay: float = None,
                 anim_duration: float = None, font_size: int = None) -> str:
    """Edit copy or animation of one element.

    Parameters:
    - element_id: The ID of the element
    - text: New text
    - animation: fadeUp, fadeIn, slideRight or scaleIn
    - delay: Seconds after the slide starts before the element appears
    - anim_duration: Length of the entrance animation in seconds
    - font_size: Font size override in reel pixels
    """
    updates = {
        k: v for k, v in {
            "text": text, "animation": animation, "delay": delay,
            "anim_duration": anim_duration, "font_size": font_size,
        }.items() if v is not None
    }
    if not updates:
        return "Error: Nothing to change."
    try:
        el = _session.edit_element(element_id, **updates)
    except ValueError as e:
        return f"Error: {str(e)}"
    _session.auto_save()
    return el.model_dump_json(indent=2)


@mcp.tool()
def edit_slide(ctx: Context, slide_id: int, duration: float = None,
               transition: str = None, transition_duration: float = None,
               background_image: str = None, darken: float = None) -> str:
    """Edit timing, transition or background of a slide.

    Parameters:
    - slide_id: The ID of the slide
    - duration: Slide length in seconds
    - transition: none or crossfade
    - transition_duration: Crossfade length in seconds
    - background_image: Path, URL or project asset id ("" for a solid background)
    - darken: Opacity of the black overlay on the image (0-1)
    """
    try:
        slide = _session.edit_slide(slide_id, duration, transition, transition_duration,
                                    background_image, darken)
    except ValueError as e:
        return f"Error: {str(e)}"
    _session.auto_save()
    return slide.model_dump_json(indent=2)


@mcp.tool()
def remove_slide(ctx: Context, slide_id: int) -> str:
    """Remove a slide from the reel.

    Parameters:
    - slide_id: The ID of the slide to remove
    """
    if _session.remove_slide(slide_id):
        _session.auto_save()
        return f"Slide {slide_id} removed. {len(_session.reel.slides)} slides remaining."
    return f"Error: Slide {slide_id} not found"


@mcp.tool()
def reorder_slides(ctx: Context, slide_id_list: list[int]) -> str:
    """Reorder slides by providing the complete list of slide IDs in desired order.

    Parameters:
    - slide_id_list: List of all slide IDs in the new order
    """
    try:
        _session.reorder_slides(slide_id_list)
    except ValueError as e:
        return f"Error: {str(e)}"
    _session.auto_save()
    return json.dumps({"status": "reordered", "slides": _session.reel.to_summary()}, indent=2)


@mcp.tool()
def undo(ctx: Context) -> str:
    """Undo the last reel edit."""
    desc = _session.undo()
    if desc is None:
        return "Nothing to undo."
    _session.auto_save()
    return f"Undone: {desc}"


# ═══════════════════════════════════════════════════════════════════════
# PREVIEW & EXPORT
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
async def preview_frame(ctx: Context, time: float = 2.0) -> Image:
    """Render the reel at a point in time and return it as an image.

    Parameters:
    - time: Seconds from the start of the reel
    """
    if not _session.reel.slides:
        raise Exception("The reel has no slides. Use apply_template() first.")
    try:
        theme = _session.themes.resolve(_session.reel.theme_id)
        surface = RasterSurface(_settings.width, _settings.height)
        assets = await _render_assets(surface.size)
        render_frame(surface, _session.reel, theme, time, assets)
        return Image(data=surface.to_png(PREVIEW_MAX_SIZE), format="png")
    except Exception as e:
        raise Exception(f"Preview render failed: {str(e)}")


@mcp.tool()
async def preview_slide(ctx: Context, slide_id: int) -> Image:
    """Return a small thumbnail of one slide.

    Parameters:
    - slide_id: The ID of the slide
    """
    slide = _session.reel.get_slide(slide_id)
    if not slide:
        raise Exception(f"Slide {slide_id} not found")
    try:
        theme = _session.themes.resolve(_session.reel.theme_id)
        assets = await _render_assets((_settings.width, _settings.height))
        thumb = render_thumbnail(slide, theme, assets=assets)
        surface = RasterSurface(*thumb.size)
        surface.draw(thumb)
        return Image(data=surface.to_png(), format="png")
    except Exception as e:
        raise Exception(f"Thumbnail render failed: {str(e)}")


@mcp.tool()
async def export_reel(ctx: Context, fps: int = 0) -> str:
    """Export the reel as MP4 (WebM if the MP4 encoder is unavailable).

    Parameters:
    - fps: Frames per second (defaults to REEL_FPS or 30)
    """
    messages: list[str] = []
    exporter = ReelExporter(
        factory=_factory,
        delivery=DirectoryDelivery(_exports_dir()),
        settings=_settings,
        themes=_session.themes,
        cache=_cache,
        fonts=_font_book(),
    )
    try:
        result = await exporter.export(_session.reel, fps=fps or None,
                                       on_status=messages.append)
    except ExportError as e:
        return f"Error: Export failed: {str(e)}"
    except Exception as e:
        logger.exception("Unexpected export failure")
        return f"Error: Export failed: {str(e)}"

    data = result.model_dump(mode="json")
    data["status_messages"] = messages
    return json.dumps(data, indent=2)


# ═══════════════════════════════════════════════════════════════════════
# PROMPTS
# ═══════════════════════════════════════════════════════════════════════

@mcp.prompt()
def reel_workflow() -> str:
    """Recommended workflow for creating a reel"""
    return """You are helping the user create a short vertical video reel. Follow this workflow:

1. **Optional project**: Use create_project() to keep the reel, background images
   and fonts on disk. Without a project the reel lives in memory only.

2. **Pick a starting point**: Use list_templates() and list_themes(), then
   apply_template() with the chosen template and theme.

3. **Edit the copy**: Use get_reel() to see slides and element ids, then:
   - edit_element() to change text and animation timing
   - edit_slide() to change slide duration, transition or background image
   - remove_slide() / reorder_slides() to restructure
   - set_theme() to try another look
   - undo() reverts the last change

4. **Preview**: Use preview_frame() at a few times, or preview_slide() for a thumbnail.

5. **Export**: Use export_reel(). The result names the saved file. An MP4 is
   produced when ffmpeg has libx264; otherwise a WebM is saved instead.

Tips:
- Reels are 1080x1920 at 30 fps by default
- Each slide fades in over the previous one unless its transition is "none"
- Background images can be project asset ids, file paths or URLs
"""


def main():
    """Run the MCP server"""
    mcp.run()


if __name__ == "__main__":
    main()
