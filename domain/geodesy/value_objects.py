"""Geodesy Bounded Context - Value Objects.

Immutable positions on (geodetic) and around (Cartesian, Earth-centered)
the WGS84 ellipsoid. All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.geodesy.errors import InvalidInputError


# ---------------------------------------------------------------------------
# GeodeticPosition
# ---------------------------------------------------------------------------
class GeodeticPosition(BaseModel):
    """Point in WGS84 geodetic coordinates (Value Object).

    Invariants:
        longitude in [-180, 180] degrees
        latitude in [-90, 90] degrees
        height finite (meters above the ellipsoid, may be negative)
    """

    longitude: float = Field(ge=-180, le=180, allow_inf_nan=False)
    latitude: float = Field(ge=-90, le=90, allow_inf_nan=False)
    height: float = Field(allow_inf_nan=False)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, longitude: float, latitude: float, height: float) -> "GeodeticPosition":
        """Construct a position, raising InvalidInputError instead of ValidationError.

        Raises:
            InvalidInputError: If any component is out of range or non-finite
        """
        for name, value in (
            ("longitude", longitude),
            ("latitude", latitude),
            ("height", height),
        ):
            # bool is an int subclass and would be coerced silently
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInputError([(name, "must be a number")])
        try:
            return cls(longitude=longitude, latitude=latitude, height=height)
        except ValidationError as e:
            raise InvalidInputError.from_validation(e) from e

    @classmethod
    def from_mapping(cls, payload: Any) -> "GeodeticPosition":
        """Construct from a decoded JSON object {longitude, latitude, height}.

        Raises:
            InvalidInputError: If the payload is not an object, a field is
                missing, or a value is invalid
        """
        if not isinstance(payload, Mapping):
            raise InvalidInputError([("body", "must be a JSON object")])
        missing = [
            name
            for name in ("longitude", "latitude", "height")
            if payload.get(name) is None
        ]
        if missing:
            raise InvalidInputError([(name, "field required") for name in missing])
        return cls.of(payload["longitude"], payload["latitude"], payload["height"])


# ---------------------------------------------------------------------------
# CartesianPosition
# ---------------------------------------------------------------------------
class CartesianPosition(BaseModel):
    """Earth-centered, Earth-fixed position in meters (EPSG:4978).

    Produced by conversions and ray casts; not meant to be built by hand.
    """

    x: float
    y: float
    z: float

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_array(cls, values: NDArray[np.float64]) -> "CartesianPosition":
        return cls(x=float(values[0]), y=float(values[1]), z=float(values[2]))

    def as_array(self) -> NDArray[np.float64]:
        """Return a new float64 array [x, y, z]."""
        return np.array([self.x, self.y, self.z], dtype=np.float64)
