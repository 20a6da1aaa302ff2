"""Scene Bounded Context - Error Hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.scene.value_objects import TileState


class SceneError(Exception):
    """Base error for scene operations."""


class SceneInitFailure(SceneError):
    """The streamed asset could not be loaded at all.

    Fatal for the scene instance: no query can run until it is re-initialized.

    Attributes:
        source: Identifier of the asset source (file name or URL)
    """

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Scene {source!r} could not be initialized: {reason}")


class UnknownTileError(SceneError):
    """Tile id is not part of the scene."""

    def __init__(self, tile_id: str) -> None:
        self.tile_id = tile_id
        super().__init__(f"Unknown tile {tile_id!r}")


class InvalidTileTransitionError(SceneError):
    """Tile load state change is not allowed.

    States only move forward, except Loaded -> Unloaded on eviction.
    """

    def __init__(
        self, tile_id: str, current: "TileState", target: "TileState"
    ) -> None:
        self.tile_id = tile_id
        self.current = current
        self.target = target
        super().__init__(
            f"Tile {tile_id!r} cannot move from {current.value} to {target.value}"
        )


class TileLoadError(SceneError):
    """A single tile payload could not be fetched or decoded.

    Non-fatal: the tile is marked Failed and the scene carries on.
    """


class SceneClosedError(SceneError):
    """A query used a scene handle after the engine was shut down."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"Scene {source!r} is closed")
