"""Domain Port(s) for scene streaming.

The streamed asset is an external collaborator. Infrastructure adapters
(e.g., the tileset manifest source) implement this Protocol.
"""

from __future__ import annotations

from typing import Protocol

from .value_objects import SceneDescription, TileContent, TileDescriptor


class SceneSource(Protocol):
    """Port for streaming a tiled scene.

    Implementations raise SceneInitFailure from describe() when the asset
    cannot be loaded at all, and TileLoadError from fetch_tile() when a single
    tile fails.
    """

    source_id: str

    async def describe(self) -> SceneDescription:
        """Return the terrain surface (if any) and the tiles to stream."""
        ...

    async def fetch_tile(self, tile: TileDescriptor) -> TileContent:
        """Fetch and decode one tile payload."""
        ...
