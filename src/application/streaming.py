"""Tile streaming driver.

Feeds a SceneAsset from a SceneSource: every tile is requested up front (so
the pending count is right from the start), then payloads are fetched with
bounded concurrency. All asset mutation happens on the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging

from domain.scene.asset import SceneAsset
from domain.scene.repositories import SceneSource
from domain.scene.value_objects import TileDescriptor

logger = logging.getLogger(__name__)

# Warn when more than this share of a scene's tiles fail to load
FAILED_TILE_WARN_RATIO = 0.5


class TileStreamer:
    """Loads every tile of a scene once.

    Args:
        asset: Scene receiving load events
        source: Where payloads come from
        tiles: Descriptors of the tiles to load
        concurrency: Maximum simultaneous fetches
    """

    def __init__(
        self,
        asset: SceneAsset,
        source: SceneSource,
        tiles: tuple[TileDescriptor, ...],
        concurrency: int = 8,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._asset = asset
        self._source = source
        self._tiles = tiles
        self._semaphore = asyncio.Semaphore(concurrency)

    def request_all(self) -> None:
        """Queue every tile; they count as pending until loaded or failed."""
        for tile in self._tiles:
            self._asset.request(tile.tile_id)

    async def run(self) -> None:
        """Fetch all queued tiles. Individual failures mark the tile Failed."""
        await asyncio.gather(*(self._load(tile) for tile in self._tiles))

        failed = self._asset.failed_count
        total = len(self._tiles)
        if total and failed / total > FAILED_TILE_WARN_RATIO:
            logger.warning(
                "%d of %d tiles failed to load for %s", failed, total, self._source.source_id
            )
        else:
            logger.info(
                "Streaming finished for %s: %d loaded, %d failed",
                self._source.source_id,
                self._asset.loaded_count,
                failed,
            )

    async def _load(self, tile: TileDescriptor) -> None:
        async with self._semaphore:
            self._asset.begin_loading(tile.tile_id)
            try:
                content = await self._source.fetch_tile(tile)
            except Exception as e:
                # A broken tile degrades the scene but never fails it
                self._asset.fail_load(tile.tile_id, f"{type(e).__name__}: {e}")
                return
            self._asset.complete_load(tile.tile_id, content)
