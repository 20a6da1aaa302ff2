"""Demo scene geometry shared by scripts/gen_demo_scene.py and the tests.

Features are plain dicts in the tile content format
({"properties", "vertices", "faces"}), so this module needs nothing beyond
the standard library.
"""

from __future__ import annotations

import math
from typing import Any

# Meters per degree of latitude (spherical approximation, fine at tile scale)
METERS_PER_DEGREE = 111_320.0

# Demo scene centre: on the equator at the prime meridian, where ECEF +X is
# local up, +Y is east and +Z is north.
DEMO_LON = 0.0
DEMO_LAT = 0.0

# Closed box: bottom ring 0-3 (SW, SE, NE, NW), top ring 4-7
BOX_FACES: list[list[int]] = [
    [0, 2, 1], [0, 3, 2],  # bottom
    [4, 5, 6], [4, 6, 7],  # top
    [0, 1, 5], [0, 5, 4],  # south
    [1, 2, 6], [1, 6, 5],  # east
    [2, 3, 7], [2, 7, 6],  # north
    [3, 0, 4], [3, 4, 7],  # west
]


def meters_to_degrees(east_m: float, north_m: float, latitude: float) -> tuple[float, float]:
    """Convert a small east/north offset in meters to (dlon, dlat) degrees."""
    dlat = north_m / METERS_PER_DEGREE
    dlon = east_m / (METERS_PER_DEGREE * math.cos(math.radians(latitude)))
    return dlon, dlat


def box_feature(
    center_lon: float,
    center_lat: float,
    half_width_m: float,
    bottom: float,
    top: float,
    properties: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Closed square box centred on (center_lon, center_lat).

    Heights are meters above the ellipsoid.
    """
    dlon, dlat = meters_to_degrees(half_width_m, half_width_m, center_lat)
    ring = [
        (center_lon - dlon, center_lat - dlat),
        (center_lon + dlon, center_lat - dlat),
        (center_lon + dlon, center_lat + dlat),
        (center_lon - dlon, center_lat + dlat),
    ]
    vertices = [[lon, lat, bottom] for lon, lat in ring] + [
        [lon, lat, top] for lon, lat in ring
    ]
    return {
        "properties": dict(properties or {}),
        "vertices": vertices,
        "faces": [list(face) for face in BOX_FACES],
    }


def feature_region(features: list[dict[str, Any]]) -> list[float]:
    """[west, south, east, north, min_height, max_height] enclosing features."""
    points = [v for f in features for v in f["vertices"]]
    lons = [p[0] for p in points]
    lats = [p[1] for p in points]
    heights = [p[2] for p in points]
    return [min(lons), min(lats), max(lons), max(lats), min(heights), max(heights)]


def demo_tiles() -> dict[str, list[dict[str, Any]]]:
    """Features per tile id for the demo scene.

    "block-a" holds a 100 m tower on the demo centre; "block-b" holds a low
    hall and a slab 500 m to the east.
    """
    east_lon, _ = meters_to_degrees(500.0, 0.0, DEMO_LAT)
    return {
        "block-a": [
            box_feature(DEMO_LON, DEMO_LAT, 20.0, 0.0, 100.0, {"name": "Tower", "id": 1}),
        ],
        "block-b": [
            box_feature(
                DEMO_LON + east_lon, DEMO_LAT, 40.0, 0.0, 15.0, {"name": "Hall", "id": 2}
            ),
            box_feature(
                DEMO_LON + east_lon, DEMO_LAT, 10.0, 15.0, 60.0, {"name": "Slab", "id": 3}
            ),
        ],
    }
