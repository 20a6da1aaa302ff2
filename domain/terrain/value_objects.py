"""Terrain Bounded Context - Value Objects.

Immutable data structures describing a terrain elevation surface.
All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, model_validator


class BoundingBox(BaseModel):
    """Geographic extent in EPSG:4326 (Value Object).

    Invariants are enforced at construction time - invalid BoundingBox
    cannot be instantiated.
    """

    min_x: float  # Western boundary (longitude)
    min_y: float  # Southern boundary (latitude)
    max_x: float  # Eastern boundary (longitude)
    max_y: float  # Northern boundary (latitude)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_bounds(self) -> "BoundingBox":
        if not (-180 <= self.min_x <= 180):
            raise ValueError(f"min_x longitude out of range: {self.min_x}")
        if not (-180 <= self.max_x <= 180):
            raise ValueError(f"max_x longitude out of range: {self.max_x}")
        if not (-90 <= self.min_y <= 90):
            raise ValueError(f"min_y latitude out of range: {self.min_y}")
        if not (-90 <= self.max_y <= 90):
            raise ValueError(f"max_y latitude out of range: {self.max_y}")
        if not (self.min_x < self.max_x):
            raise ValueError(
                f"Invalid x ordering: min_x={self.min_x} >= max_x={self.max_x}"
            )
        if not (self.min_y < self.max_y):
            raise ValueError(
                f"Invalid y ordering: min_y={self.min_y} >= max_y={self.max_y}"
            )
        return self

    def contains(self, longitude: float, latitude: float) -> bool:
        """Inclusive point-in-box test."""
        return (
            self.min_x <= longitude <= self.max_x
            and self.min_y <= latitude <= self.max_y
        )


class TerrainGrid(BaseModel):
    """Immutable elevation grid with geographic metadata (Value Object).

    Row 0 is the northern edge. Heights are meters above the WGS84 ellipsoid;
    NoData cells are NaN. The data array is made read-only at construction.
    """

    data: NDArray[np.float32]  # 2D float32 array (height x width), read-only
    bounds: BoundingBox  # Geographic extent in EPSG:4326
    crs: str  # Always "EPSG:4326"
    resolution: tuple[float, float]  # (x_res, y_res) absolute values in degrees
    source_crs: str | None = None  # Original CRS before normalization

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_grid(self) -> "TerrainGrid":
        if self.data.ndim != 2:
            raise ValueError(f"Data must be 2D, got {self.data.ndim}D")
        if self.data.shape[0] == 0 or self.data.shape[1] == 0:
            raise ValueError(f"Data cannot be empty: {self.data.shape}")
        if self.data.dtype != np.float32:
            raise ValueError(f"Data must be float32, got {self.data.dtype}")
        if self.crs != "EPSG:4326":
            raise ValueError(f"CRS must be EPSG:4326, got {self.crs}")
        if self.resolution[0] <= 0 or self.resolution[1] <= 0:
            raise ValueError(f"Resolution must be positive: {self.resolution}")
        if np.isnan(self.data).all():
            raise ValueError("Grid contains 100% NoData")

        # Owned, contiguous, read-only copy; caller arrays are never touched.
        immutable = np.array(self.data, dtype=np.float32, copy=True, order="C")
        immutable.flags.writeable = False
        object.__setattr__(self, "data", immutable)

        return self
