"""Geodesy Bounded Context - Domain Services.

Geodetic <-> Earth-centered Cartesian transforms on the WGS84 ellipsoid.

pyproj does the heavy lifting: EPSG:4979 (geographic 3D, ellipsoidal height)
to EPSG:4978 (geocentric). Array variants exist for the ray caster and the tile
loader, which convert thousands of points per call.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import ArrayLike, NDArray
from pyproj import Transformer

from domain.geodesy.value_objects import CartesianPosition, GeodeticPosition

# ---------------------------------------------------------------------------
# Transformers (constructed once, reused across calls)
# ---------------------------------------------------------------------------
_to_ecef = Transformer.from_crs("EPSG:4979", "EPSG:4978", always_xy=True)
_to_lla = Transformer.from_crs("EPSG:4978", "EPSG:4979", always_xy=True)


# ---------------------------------------------------------------------------
# Scalar conversions
# ---------------------------------------------------------------------------
def to_cartesian(position: GeodeticPosition) -> CartesianPosition:
    """Convert a geodetic position to ECEF meters.

    The GeodeticPosition has already been validated at construction
    (see GeodeticPosition.of, which raises InvalidInputError).
    """
    x, y, z = _to_ecef.transform(position.longitude, position.latitude, position.height)
    return CartesianPosition(x=float(x), y=float(y), z=float(z))


def to_geodetic(position: CartesianPosition) -> GeodeticPosition:
    """Convert an ECEF position back to geodetic coordinates.

    Round trip with to_cartesian holds within 1e-6 degrees and 1e-3 m.
    """
    lon, lat, h = _to_lla.transform(position.x, position.y, position.z)
    return GeodeticPosition(longitude=float(lon), latitude=float(lat), height=float(h))


# ---------------------------------------------------------------------------
# Array conversions
# ---------------------------------------------------------------------------
def to_cartesian_array(
    lon: ArrayLike, lat: ArrayLike, height: ArrayLike
) -> NDArray[np.float64]:
    """Vectorised geodetic -> ECEF. Returns an (N, 3) float64 array."""
    x, y, z = _to_ecef.transform(
        np.asarray(lon, dtype=np.float64),
        np.asarray(lat, dtype=np.float64),
        np.asarray(height, dtype=np.float64),
    )
    return np.column_stack([np.atleast_1d(x), np.atleast_1d(y), np.atleast_1d(z)])


def to_geodetic_array(
    points: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Vectorised ECEF -> geodetic for an (N, 3) array. Returns (lon, lat, height)."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    lon, lat, h = _to_lla.transform(pts[:, 0], pts[:, 1], pts[:, 2])
    return (np.atleast_1d(lon), np.atleast_1d(lat), np.atleast_1d(h))


# ---------------------------------------------------------------------------
# Local frame
# ---------------------------------------------------------------------------
def local_up(position: GeodeticPosition) -> NDArray[np.float64]:
    """Unit ellipsoid normal (geodetic "up") at the position, in ECEF.

    Every point on the normal line shares the geodetic longitude and latitude,
    so a ray along -local_up() is a true vertical drop.
    """
    phi = math.radians(position.latitude)
    lam = math.radians(position.longitude)
    return np.array(
        [
            math.cos(phi) * math.cos(lam),
            math.cos(phi) * math.sin(lam),
            math.sin(phi),
        ],
        dtype=np.float64,
    )
