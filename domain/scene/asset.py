"""Scene Bounded Context - Entities.

SceneAsset owns the terrain surface and the tile collection of one scene.
Tiles are mutated only through load events raised by the streaming
collaborator; queries never see tiles directly but work on an immutable
SceneSnapshot of whatever is loaded at the time the snapshot is taken.

Tile lifecycle:
    Unloaded -> Loading -> Loaded | Failed
    Loaded -> Unloaded (eviction)

A tile counts as pending while it is queued (requested but not yet loading)
or loading. Every transition notifies progress listeners with the new
pending count.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from domain.scene.errors import InvalidTileTransitionError, UnknownTileError
from domain.scene.value_objects import (
    BoundingVolume,
    TileContent,
    TileDescriptor,
    TileState,
)
from domain.terrain.value_objects import TerrainGrid

logger = logging.getLogger(__name__)

ProgressListener = Callable[[int], None]

_ALLOWED_TRANSITIONS: dict[TileState, frozenset[TileState]] = {
    TileState.UNLOADED: frozenset({TileState.LOADING}),
    TileState.LOADING: frozenset({TileState.LOADED, TileState.FAILED}),
    TileState.LOADED: frozenset({TileState.UNLOADED}),
    TileState.FAILED: frozenset(),
}


@dataclass
class Tile:
    """A discrete, independently loadable piece of the scene (Entity)."""

    tile_id: str
    content_uri: str
    bounding_volume: BoundingVolume | None = None
    state: TileState = TileState.UNLOADED
    content: TileContent | None = None
    queued: bool = False
    error: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is TileState.LOADING or (
            self.state is TileState.UNLOADED and self.queued
        )


@dataclass(frozen=True)
class SceneSnapshot:
    """Consistent, read-only view of the loaded geometry at one instant."""

    terrain: TerrainGrid | None
    tiles: tuple[tuple[str, TileContent], ...]

    @property
    def is_empty(self) -> bool:
        return self.terrain is None and not self.tiles


class SceneAsset:
    """Terrain plus a tiled mesh collection with per-tile load state.

    Thread-safe: transitions and snapshots are serialized on an internal lock.
    Listeners are invoked outside the lock, in the thread that caused the
    transition.
    """

    def __init__(
        self,
        tiles: Iterable[TileDescriptor] = (),
        terrain: TerrainGrid | None = None,
        source_id: str = "",
    ) -> None:
        self.source_id = source_id
        self._terrain = terrain
        self._tiles: dict[str, Tile] = {}
        for descriptor in tiles:
            if descriptor.tile_id in self._tiles:
                raise ValueError(f"Duplicate tile id {descriptor.tile_id!r}")
            self._tiles[descriptor.tile_id] = Tile(
                tile_id=descriptor.tile_id,
                content_uri=descriptor.content_uri,
                bounding_volume=(
                    BoundingVolume.from_region(descriptor.region)
                    if descriptor.region is not None
                    else None
                ),
            )
        self._lock = threading.RLock()
        self._listeners: list[ProgressListener] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def terrain(self) -> TerrainGrid | None:
        return self._terrain

    @property
    def tile_ids(self) -> tuple[str, ...]:
        return tuple(self._tiles)

    def tile_state(self, tile_id: str) -> TileState:
        with self._lock:
            return self._get(tile_id).state

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._tiles.values() if t.is_pending)

    @property
    def loaded_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._tiles.values() if t.state is TileState.LOADED)

    @property
    def failed_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._tiles.values() if t.state is TileState.FAILED)

    @property
    def has_geometry(self) -> bool:
        """True if terrain is present or at least one tile is loaded."""
        return self._terrain is not None or self.loaded_count > 0

    def snapshot(self) -> SceneSnapshot:
        """Capture the currently loaded tiles; later transitions do not affect it."""
        with self._lock:
            loaded = tuple(
                (t.tile_id, t.content)
                for t in self._tiles.values()
                if t.state is TileState.LOADED and t.content is not None
            )
        return SceneSnapshot(terrain=self._terrain, tiles=loaded)

    # ------------------------------------------------------------------
    # Progress notifications
    # ------------------------------------------------------------------
    def add_progress_listener(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener for pending-count updates. Returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            pending = sum(1 for t in self._tiles.values() if t.is_pending)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(pending)

    # ------------------------------------------------------------------
    # Load events (raised by the streaming collaborator)
    # ------------------------------------------------------------------
    def request(self, tile_id: str) -> None:
        """Queue an unloaded tile for loading; it now counts as pending."""
        with self._lock:
            tile = self._get(tile_id)
            if tile.state is not TileState.UNLOADED:
                raise InvalidTileTransitionError(tile_id, tile.state, TileState.LOADING)
            tile.queued = True
        self._notify()

    def begin_loading(self, tile_id: str) -> None:
        with self._lock:
            tile = self._transition(tile_id, TileState.LOADING)
            tile.queued = False
        self._notify()

    def complete_load(self, tile_id: str, content: TileContent) -> None:
        with self._lock:
            tile = self._transition(tile_id, TileState.LOADED)
            tile.content = content
            if tile.bounding_volume is None:
                tile.bounding_volume = content.bounds
        logger.debug(
            "Tile %s loaded (%d triangles)", tile_id, content.triangle_count
        )
        self._notify()

    def fail_load(self, tile_id: str, reason: str) -> None:
        with self._lock:
            tile = self._transition(tile_id, TileState.FAILED)
            tile.error = reason
        logger.warning("Tile %s failed to load: %s", tile_id, reason)
        self._notify()

    def evict(self, tile_id: str) -> None:
        """Drop a loaded tile's payload (Loaded -> Unloaded)."""
        with self._lock:
            tile = self._transition(tile_id, TileState.UNLOADED)
            tile.content = None
        logger.debug("Tile %s evicted", tile_id)
        self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _get(self, tile_id: str) -> Tile:
        try:
            return self._tiles[tile_id]
        except KeyError:
            raise UnknownTileError(tile_id) from None

    def _transition(self, tile_id: str, target: TileState) -> Tile:
        tile = self._get(tile_id)
        if target not in _ALLOWED_TRANSITIONS[tile.state]:
            raise InvalidTileTransitionError(tile_id, tile.state, target)
        tile.state = target
        return tile
