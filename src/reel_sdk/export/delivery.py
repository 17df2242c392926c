"""Delivery targets for finished export artifacts."""

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger("ReelStudio.export.delivery")


def artifact_filename(prefix: str, theme_id: str, extension: str) -> str:
    return f"{prefix}-{theme_id}.{extension}"


class ArtifactDelivery(Protocol):
    def deliver(self, filename: str, data: bytes, mime_type: str) -> str: ...


class DirectoryDelivery:
    """Writes artifacts into a directory, overwriting same-named files."""

    def __init__(self, exports_dir: Path):
        self.exports_dir = Path(exports_dir)

    def deliver(self, filename: str, data: bytes, mime_type: str) -> str:
        self.exports_dir.mkdir(parents=True, exist_ok=True)
        path = self.exports_dir / filename
        path.write_bytes(data)
        logger.info(f"Saved {mime_type} artifact to {path} ({len(data)} bytes)")
        return str(path)


class MemoryDelivery:
    """Keeps artifacts in memory, keyed by filename."""

    def __init__(self):
        self.artifacts: dict[str, tuple[bytes, str]] = {}

    def deliver(self, filename: str, data: bytes, mime_type: str) -> str:
        self.artifacts[filename] = (data, mime_type)
        return filename
