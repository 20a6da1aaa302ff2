"""Infrastructure adapters for the scene bounded context."""

from .tileset_adapter import TilesetManifestSource

__all__ = ["TilesetManifestSource"]
