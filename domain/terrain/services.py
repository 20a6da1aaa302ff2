"""Terrain Bounded Context - Domain Services.

Pure height sampling over a TerrainGrid. NO I/O operations - loading is
implemented by infrastructure adapters via the TerrainRepository port.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import ArrayLike, NDArray

from domain.terrain.value_objects import TerrainGrid


# ---------------------------------------------------------------------------
# Bilinear Interpolation (scalar)
# ---------------------------------------------------------------------------
def bilinear_interpolate(
    grid: TerrainGrid, longitude: float, latitude: float
) -> tuple[float, bool]:
    """Interpolate elevation at an arbitrary point using the 4 nearest pixels.

    Returns (elevation, is_nodata). If any of the 4 neighbors is NaN,
    returns (NaN, True).

    Boundary behavior:
        Points exactly on grid boundaries use clamped indices, so bilinear
        degrades to linear on edges and nearest on corners.
    """
    # Row 0 = north edge (max_y), so y is inverted
    px = (longitude - grid.bounds.min_x) / grid.resolution[0]
    py = (grid.bounds.max_y - latitude) / grid.resolution[1]

    height, width = grid.data.shape

    x0 = int(math.floor(px))
    y0 = int(math.floor(py))
    x1 = x0 + 1
    y1 = y0 + 1

    x0 = max(0, min(x0, width - 1))
    x1 = max(0, min(x1, width - 1))
    y0 = max(0, min(y0, height - 1))
    y1 = max(0, min(y1, height - 1))

    q11 = float(grid.data[y0, x0])  # top-left
    q21 = float(grid.data[y0, x1])  # top-right
    q12 = float(grid.data[y1, x0])  # bottom-left
    q22 = float(grid.data[y1, x1])  # bottom-right

    if math.isnan(q11) or math.isnan(q21) or math.isnan(q12) or math.isnan(q22):
        return (float("nan"), True)

    fx = px - math.floor(px)
    fy = py - math.floor(py)

    elevation = (
        q11 * (1 - fx) * (1 - fy)
        + q21 * fx * (1 - fy)
        + q12 * (1 - fx) * fy
        + q22 * fx * fy
    )

    return (float(elevation), False)


def terrain_height_at(
    grid: TerrainGrid, longitude: float, latitude: float
) -> float | None:
    """Terrain height under a point, or None outside the grid / over NoData."""
    if not grid.bounds.contains(longitude, latitude):
        return None
    elevation, is_nodata = bilinear_interpolate(grid, longitude, latitude)
    return None if is_nodata else elevation


# ---------------------------------------------------------------------------
# Bilinear Interpolation (vectorised)
# ---------------------------------------------------------------------------
def terrain_heights(
    grid: TerrainGrid, longitudes: ArrayLike, latitudes: ArrayLike
) -> NDArray[np.float64]:
    """Vectorised terrain_height_at. Points outside the grid or over NoData are NaN.

    Same clamping and NaN propagation rules as bilinear_interpolate.
    """
    lon = np.asarray(longitudes, dtype=np.float64)
    lat = np.asarray(latitudes, dtype=np.float64)
    b = grid.bounds

    outside = ~(np.isfinite(lon) & np.isfinite(lat))
    outside |= (lon < b.min_x) | (lon > b.max_x) | (lat < b.min_y) | (lat > b.max_y)

    # Outside points are masked at the end; park them at pixel 0 meanwhile
    px = np.where(outside, 0.0, (lon - b.min_x) / grid.resolution[0])
    py = np.where(outside, 0.0, (b.max_y - lat) / grid.resolution[1])

    height, width = grid.data.shape
    fpx = np.floor(px)
    fpy = np.floor(py)

    x0 = np.clip(fpx, 0, width - 1).astype(np.intp)
    x1 = np.clip(fpx + 1, 0, width - 1).astype(np.intp)
    y0 = np.clip(fpy, 0, height - 1).astype(np.intp)
    y1 = np.clip(fpy + 1, 0, height - 1).astype(np.intp)

    # Gather before widening so only the sampled corners are copied
    data = grid.data
    q11 = data[y0, x0].astype(np.float64)
    q21 = data[y0, x1].astype(np.float64)
    q12 = data[y1, x0].astype(np.float64)
    q22 = data[y1, x1].astype(np.float64)

    fx = px - fpx
    fy = py - fpy
    elevation = (
        q11 * (1 - fx) * (1 - fy)
        + q21 * fx * (1 - fy)
        + q12 * (1 - fx) * fy
        + q22 * fx * fy
    )

    return np.where(outside, np.nan, elevation)
