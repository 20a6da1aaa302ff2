#!/usr/bin/env python3
"""Generate a small demo scene: tileset manifest, tile contents and terrain.

The scene sits on the equator at the prime meridian (see shared/demo_scene.py)
and contains a 100 m tower and a hall with a slab on top, over gently sloping
terrain a few meters above the ellipsoid.

Usage:
    python scripts/gen_demo_scene.py [output_dir]

Output (default demo_scene/):
    tileset.json, tiles/<id>.json, terrain.tif
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import numpy as np
import rasterio
from affine import Affine
from numpy.typing import NDArray
from rasterio.crs import CRS

from shared.demo_scene import DEMO_LAT, DEMO_LON, demo_tiles, feature_region

DEFAULT_OUTPUT_DIR = Path("demo_scene")

# Terrain: 0.04 x 0.04 degrees (~4.5 km) around the demo centre
TERRAIN_HALF_SPAN_DEG = 0.02
TERRAIN_SIZE_PX = 200


def write_raster(
    path: Path,
    data: NDArray[Any],
    transform: Affine,
    crs: CRS | None = None,
    nodata: float | None = None,
) -> None:
    """Write a single-band GeoTIFF."""
    height, width = data.shape
    kwargs: dict[str, Any] = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": 1,
        "dtype": str(data.dtype),
        "transform": transform,
    }
    if crs is not None:
        kwargs["crs"] = crs
    if nodata is not None:
        kwargs["nodata"] = nodata
    with rasterio.open(path, "w", **kwargs) as dst:
        dst.write(data, 1)


def gen_terrain(path: Path) -> None:
    """Plane rising 5 m per km eastward, -10 m at the west edge."""
    west = DEMO_LON - TERRAIN_HALF_SPAN_DEG
    north = DEMO_LAT + TERRAIN_HALF_SPAN_DEG
    res = 2 * TERRAIN_HALF_SPAN_DEG / TERRAIN_SIZE_PX
    cols = np.arange(TERRAIN_SIZE_PX, dtype=np.float32)
    row = -10.0 + cols * np.float32(res * 111.32 * 5.0)
    data = np.tile(row, (TERRAIN_SIZE_PX, 1)).astype(np.float32)
    write_raster(
        path,
        data,
        Affine.translation(west, north) * Affine.scale(res, -res),
        crs=CRS.from_epsg(4326),
    )


def gen_scene(output_dir: Path) -> Path:
    """Write the demo scene and return the manifest path."""
    tiles_dir = output_dir / "tiles"
    tiles_dir.mkdir(parents=True, exist_ok=True)

    entries = []
    for tile_id, features in demo_tiles().items():
        content = tiles_dir / f"{tile_id}.json"
        content.write_text(json.dumps({"features": features}, indent=2), encoding="utf-8")
        entries.append(
            {
                "id": tile_id,
                "content": f"tiles/{tile_id}.json",
                "region": feature_region(features),
            }
        )

    gen_terrain(output_dir / "terrain.tif")
    manifest = output_dir / "tileset.json"
    manifest.write_text(
        json.dumps({"terrain": "terrain.tif", "tiles": entries}, indent=2),
        encoding="utf-8",
    )
    return manifest


def main(argv: list[str]) -> int:
    output_dir = Path(argv[1]) if len(argv) > 1 else DEFAULT_OUTPUT_DIR
    manifest = gen_scene(output_dir)
    print(f"Demo scene written to {manifest}")
    print(f"Run with: CLEARANCE_ASSET_SOURCE={manifest} python -m infrastructure.http.app")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
