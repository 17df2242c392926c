"""Project workspace: background images, fonts, exports and the saved reel."""

import json
import shutil
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field


class AssetMetadata(BaseModel):
    """Metadata for a registered project asset."""
    asset_id: str
    filename: str
    type: str  # "image", "font"
    source: str = ""  # e.g. "local", or the URL it was taken from
    dimensions: Optional[tuple[int, int]] = None


class Workspace(BaseModel):
    """Manages a reel project directory and its asset manifest."""
    project_name: str
    root_path: Path
    assets: dict[str, AssetMetadata] = Field(default_factory=dict)

    model_config = {"arbitrary_types_allowed": True}

    @property
    def assets_dir(self) -> Path:
        return self.root_path / "assets"

    @property
    def images_dir(self) -> Path:
        return self.assets_dir / "images"

    @property
    def fonts_dir(self) -> Path:
        return self.assets_dir / "fonts"

    @property
    def exports_dir(self) -> Path:
        return self.root_path / "exports"

    @property
    def manifest_path(self) -> Path:
        return self.root_path / "project.json"

    @property
    def reel_path(self) -> Path:
        return self.root_path / "reel.json"

    def initialize(self) -> "Workspace":
        """Create the project directory structure."""
        for d in [self.images_dir, self.fonts_dir, self.exports_dir]:
            d.mkdir(parents=True, exist_ok=True)

        notes_md = self.root_path / "project.md"
        if not notes_md.exists():
            notes_md.write_text(
                f"# Reel project: {self.project_name}\n\n"
                "## Copy\n\n## Decisions\n\n## Notes\n"
            )

        self.save_manifest()
        return self

    def save_manifest(self):
        """Save the project manifest to disk."""
        data = {
            "project_name": self.project_name,
            "assets": {k: v.model_dump() for k, v in self.assets.items()},
        }
        self.manifest_path.write_text(json.dumps(data, indent=2, default=str))

    @classmethod
    def load(cls, project_path: Path) -> "Workspace":
        """Load a workspace from an existing project directory."""
        manifest_path = project_path / "project.json"
        if not manifest_path.exists():
            raise FileNotFoundError(f"No project.json found in {project_path}")

        data = json.loads(manifest_path.read_text())
        assets = {
            k: AssetMetadata(**v) for k, v in data.get("assets", {}).items()
        }
        return cls(
            project_name=data["project_name"],
            root_path=project_path,
            assets=assets,
        )

    def register_asset(self, asset: AssetMetadata) -> AssetMetadata:
        """Register an asset in the workspace manifest."""
        self.assets[asset.asset_id] = asset
        self.save_manifest()
        return asset

    def import_file(self, source: Path, type: str = "image",
                    asset_id: Optional[str] = None) -> AssetMetadata:
        """Copy a local file into the workspace and register it."""
        source = Path(source)
        if not source.is_file():
            raise FileNotFoundError(f"No such file: {source}")
        target_dir = self.fonts_dir if type == "font" else self.images_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target_dir / source.name)
        return self.register_asset(AssetMetadata(
            asset_id=asset_id or source.stem,
            filename=source.name,
            type=type,
            source="local",
        ))

    def get_asset_path(self, asset_id: str) -> Optional[Path]:
        """Get the full path to an asset file."""
        asset = self.assets.get(asset_id)
        if not asset:
            return None
        type_dirs = {
            "image": self.images_dir,
            "font": self.fonts_dir,
        }
        base_dir = type_dirs.get(asset.type, self.assets_dir)
        return base_dir / asset.filename

    def resolve_ref(self, ref: str) -> str:
        """Turn an asset id into a file path; URLs and paths pass through."""
        path = self.get_asset_path(ref)
        return str(path) if path is not None else ref
