"""Builders and fakes shared across test packages.

Imported as ``tests.helpers`` (the project root is on pythonpath).
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Iterable

import numpy as np
import rasterio
from affine import Affine
from numpy.typing import NDArray
from rasterio.crs import CRS

from domain.scene.errors import SceneInitFailure, TileLoadError
from domain.scene.value_objects import (
    FeatureMesh,
    SceneDescription,
    TileContent,
    TileDescriptor,
)
from domain.terrain.value_objects import BoundingBox, TerrainGrid
from shared.demo_scene import box_feature


# ---------------------------------------------------------------------------
# Geometry builders
# ---------------------------------------------------------------------------
def content_from(features: Iterable[dict[str, Any]]) -> TileContent:
    """TileContent from tile-format feature dicts (see shared.demo_scene)."""
    return TileContent.from_features([FeatureMesh.model_validate(f) for f in features])


def tower_content(
    bottom: float = 0.0, top: float = 100.0, half_width_m: float = 20.0, **props: Any
) -> TileContent:
    """One closed box centred on (0, 0)."""
    return content_from([box_feature(0.0, 0.0, half_width_m, bottom, top, props)])


def flat_terrain(
    height: float = 0.0, half_span_deg: float = 0.01, size: int = 21
) -> TerrainGrid:
    """Constant-height terrain grid centred on (0, 0)."""
    res = 2 * half_span_deg / size
    return TerrainGrid(
        data=np.full((size, size), height, dtype=np.float32),
        bounds=BoundingBox(
            min_x=-half_span_deg,
            min_y=-half_span_deg,
            max_x=half_span_deg,
            max_y=half_span_deg,
        ),
        crs="EPSG:4326",
        resolution=(res, res),
    )


# ---------------------------------------------------------------------------
# GeoTIFF writer
# ---------------------------------------------------------------------------
def write_geotiff(
    path: Path,
    data: NDArray[Any],
    transform: Affine,
    crs: CRS | str | None = "EPSG:4326",
    nodata: float | None = None,
) -> Path:
    """Write a GeoTIFF (2D array = one band, 3D array = bands x rows x cols)."""
    count, height, width = (1, *data.shape) if data.ndim == 2 else data.shape
    kwargs: dict[str, Any] = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": count,
        "dtype": str(data.dtype),
        "transform": transform,
    }
    if crs is not None:
        kwargs["crs"] = CRS.from_user_input(crs)
    if nodata is not None:
        kwargs["nodata"] = nodata
    with rasterio.open(path, "w", **kwargs) as dst:
        if data.ndim == 2:
            dst.write(data, 1)
        else:
            dst.write(data)
    return path


# ---------------------------------------------------------------------------
# In-memory scene source
# ---------------------------------------------------------------------------
class InMemorySceneSource:
    """SceneSource fake serving prepared tiles.

    Args:
        tiles: Content per tile id
        terrain: Optional terrain grid
        failing: Tile ids whose fetch raises TileLoadError
        hanging: Tile ids whose fetch never returns
        delay_s: Delay before each fetch returns
        describe_delay_s: Delay before describe() returns
        broken: describe() raises SceneInitFailure
    """

    def __init__(
        self,
        tiles: dict[str, TileContent] | None = None,
        *,
        terrain: TerrainGrid | None = None,
        failing: Iterable[str] = (),
        hanging: Iterable[str] = (),
        delay_s: float = 0.0,
        describe_delay_s: float = 0.0,
        broken: bool = False,
        source_id: str = "memory",
    ) -> None:
        self.source_id = source_id
        self._tiles = dict(tiles or {})
        self._terrain = terrain
        self._failing = set(failing)
        self._hanging = set(hanging)
        self._delay_s = delay_s
        self._describe_delay_s = describe_delay_s
        self._broken = broken
        self.describe_calls = 0
        self.fetch_calls: list[str] = []

    async def describe(self) -> SceneDescription:
        self.describe_calls += 1
        if self._describe_delay_s:
            await asyncio.sleep(self._describe_delay_s)
        if self._broken:
            raise SceneInitFailure(self.source_id, "asset unavailable")
        ids = sorted(set(self._tiles) | self._failing | self._hanging)
        return SceneDescription(
            terrain=self._terrain,
            tiles=tuple(
                TileDescriptor(tile_id=tile_id, content_uri=f"mem://{tile_id}")
                for tile_id in ids
            ),
        )

    async def fetch_tile(self, tile: TileDescriptor) -> TileContent:
        self.fetch_calls.append(tile.tile_id)
        if tile.tile_id in self._hanging:
            await asyncio.Event().wait()
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        if tile.tile_id in self._failing:
            raise TileLoadError(f"Tile {tile.tile_id!r} unavailable")
        return self._tiles[tile.tile_id]
