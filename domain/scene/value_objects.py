"""Scene Bounded Context - Value Objects.

Immutable data structures for rays, tile payloads and intersection results.
All validation occurs at construction time via Pydantic.

Coordinates are ECEF meters (EPSG:4978) unless a field says otherwise.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator

from domain.geodesy.services import to_cartesian_array
from domain.geodesy.value_objects import CartesianPosition
from domain.terrain.value_objects import TerrainGrid

# ---------------------------------------------------------------------------
# Numeric Constants
# ---------------------------------------------------------------------------
_DIRECTION_MIN_NORM = 1e-12
_SLAB_EPSILON = 1e-12


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class TileState(str, Enum):
    """Load state of a single tile."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class HitKind(str, Enum):
    """What a ray hit."""

    TERRAIN = "terrain"
    TILESET_FEATURE = "tileset_feature"


class CastStrategy(str, Enum):
    """Ray casting strategy. Strategies are never mixed within one verdict."""

    NEAREST_SURFACE = "nearest"
    MULTI_AXIS = "multi_axis"
    DRILL = "drill"


# ---------------------------------------------------------------------------
# Ray
# ---------------------------------------------------------------------------
class Ray(BaseModel):
    """Half-line from an origin along a unit direction (Value Object).

    The direction is normalized at construction; zero vectors are rejected.
    """

    origin: CartesianPosition
    direction: tuple[float, float, float]
    label: str = ""  # e.g. "down", "+X"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def normalize_direction(self) -> "Ray":
        norm = math.sqrt(sum(c * c for c in self.direction))
        if not math.isfinite(norm) or norm < _DIRECTION_MIN_NORM:
            raise ValueError(f"Ray direction must be a non-zero vector: {self.direction}")
        unit = tuple(float(c) / norm for c in self.direction)
        object.__setattr__(self, "direction", unit)
        return self

    def direction_array(self) -> NDArray[np.float64]:
        return np.array(self.direction, dtype=np.float64)


# ---------------------------------------------------------------------------
# Bounding volumes
# ---------------------------------------------------------------------------
class Region(BaseModel):
    """Geodetic extent of a tile: degrees and meters above the ellipsoid."""

    west: float = Field(ge=-180, le=180)
    south: float = Field(ge=-90, le=90)
    east: float = Field(ge=-180, le=180)
    north: float = Field(ge=-90, le=90)
    min_height: float
    max_height: float

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_ordering(self) -> "Region":
        if self.west > self.east:
            raise ValueError(f"west={self.west} > east={self.east}")
        if self.south > self.north:
            raise ValueError(f"south={self.south} > north={self.north}")
        if self.min_height > self.max_height:
            raise ValueError(
                f"min_height={self.min_height} > max_height={self.max_height}"
            )
        return self


class BoundingVolume(BaseModel):
    """Axis-aligned box in ECEF (Value Object)."""

    minimum: tuple[float, float, float]
    maximum: tuple[float, float, float]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_corners(self) -> "BoundingVolume":
        if any(lo > hi for lo, hi in zip(self.minimum, self.maximum)):
            raise ValueError(f"minimum {self.minimum} exceeds maximum {self.maximum}")
        return self

    @classmethod
    def from_points(
        cls, points: NDArray[np.float64], padding: float = 0.0
    ) -> "BoundingVolume":
        lo = points.min(axis=0) - padding
        hi = points.max(axis=0) + padding
        return cls(
            minimum=(float(lo[0]), float(lo[1]), float(lo[2])),
            maximum=(float(hi[0]), float(hi[1]), float(hi[2])),
        )

    @classmethod
    def from_region(cls, region: Region, samples: int = 5) -> "BoundingVolume":
        """Enclose a geodetic region by sampling it on a samples x samples x 2 lattice.

        The lattice misses a little of the ellipsoid bulge between samples;
        one meter of padding covers it for tile-sized regions.
        """
        lons = np.linspace(region.west, region.east, samples)
        lats = np.linspace(region.south, region.north, samples)
        lon, lat, h = np.meshgrid(
            lons, lats, [region.min_height, region.max_height], indexing="ij"
        )
        points = to_cartesian_array(lon.ravel(), lat.ravel(), h.ravel())
        return cls.from_points(points, padding=1.0)

    def intersects_ray(
        self,
        origin: NDArray[np.float64],
        direction: NDArray[np.float64],
        max_distance: float = math.inf,
    ) -> bool:
        """Slab test: does the ray enter the box within max_distance?"""
        t_min = 0.0
        t_max = max_distance
        for axis in range(3):
            o = float(origin[axis])
            d = float(direction[axis])
            lo = self.minimum[axis]
            hi = self.maximum[axis]
            if abs(d) < _SLAB_EPSILON:
                if o < lo or o > hi:
                    return False
                continue
            t1 = (lo - o) / d
            t2 = (hi - o) / d
            if t1 > t2:
                t1, t2 = t2, t1
            t_min = max(t_min, t1)
            t_max = min(t_max, t2)
            if t_min > t_max:
                return False
        return True


# ---------------------------------------------------------------------------
# Tile payloads
# ---------------------------------------------------------------------------
class FeatureMesh(BaseModel):
    """One discrete feature (e.g. a building) as a triangle mesh.

    Vertices are geodetic (longitude, latitude, height). Properties are opaque
    key/value data passed through to results untouched.
    """

    vertices: tuple[tuple[float, float, float], ...]
    faces: tuple[tuple[int, int, int], ...]
    properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_faces(self) -> "FeatureMesh":
        n = len(self.vertices)
        for face in self.faces:
            if any(i < 0 or i >= n for i in face):
                raise ValueError(f"Face {face} references a vertex outside 0..{n - 1}")
        return self


class TileContent(BaseModel):
    """Decoded geometry payload of a tile (Value Object).

    Arrays are owned read-only copies so snapshots can be shared with
    casts running on other threads.

    Fields:
        vertices: (N, 3) float64 ECEF positions
        faces: (M, 3) int64 vertex indices
        face_features: (M,) int64 index into feature_properties
        feature_properties: opaque attributes per feature
        feature_top_heights: max vertex height (m above ellipsoid) per feature
        bounds: AABB of all vertices, None for an empty tile
    """

    vertices: NDArray[np.float64]
    faces: NDArray[np.int64]
    face_features: NDArray[np.int64]
    feature_properties: tuple[dict[str, Any], ...] = ()
    feature_top_heights: tuple[float, ...] = ()
    bounds: BoundingVolume | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_content(self) -> "TileContent":
        vertices = np.array(self.vertices, dtype=np.float64, copy=True).reshape(-1, 3)
        faces = np.array(self.faces, dtype=np.int64, copy=True).reshape(-1, 3)
        face_features = np.array(self.face_features, dtype=np.int64, copy=True).ravel()

        if faces.size and (faces.min() < 0 or faces.max() >= len(vertices)):
            raise ValueError("Face indices out of range")
        if len(face_features) != len(faces):
            raise ValueError(
                f"face_features has {len(face_features)} entries for {len(faces)} faces"
            )
        n_features = len(self.feature_properties)
        if len(self.feature_top_heights) != n_features:
            raise ValueError("feature_top_heights must match feature_properties")
        if face_features.size and (
            face_features.min() < 0 or face_features.max() >= n_features
        ):
            raise ValueError("face_features references an unknown feature")
        if not np.isfinite(vertices).all():
            raise ValueError("Vertices must be finite")

        for arr in (vertices, faces, face_features):
            arr.flags.writeable = False
        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "faces", faces)
        object.__setattr__(self, "face_features", face_features)
        if self.bounds is None and len(vertices):
            object.__setattr__(self, "bounds", BoundingVolume.from_points(vertices))
        return self

    @classmethod
    def from_features(cls, features: Sequence[FeatureMesh]) -> "TileContent":
        """Convert geodetic feature meshes into one ECEF payload."""
        vertex_blocks: list[NDArray[np.float64]] = []
        face_blocks: list[NDArray[np.int64]] = []
        owner_blocks: list[NDArray[np.int64]] = []
        top_heights: list[float] = []
        offset = 0

        for index, feature in enumerate(features):
            geo = np.array(feature.vertices, dtype=np.float64).reshape(-1, 3)
            if len(geo):
                vertex_blocks.append(to_cartesian_array(geo[:, 0], geo[:, 1], geo[:, 2]))
                top_heights.append(float(geo[:, 2].max()))
            else:
                top_heights.append(float("nan"))
            faces = np.array(feature.faces, dtype=np.int64).reshape(-1, 3)
            face_blocks.append(faces + offset)
            owner_blocks.append(np.full(len(faces), index, dtype=np.int64))
            offset += len(geo)

        return cls(
            vertices=np.vstack(vertex_blocks) if vertex_blocks else np.empty((0, 3)),
            faces=(
                np.vstack(face_blocks)
                if face_blocks
                else np.empty((0, 3), dtype=np.int64)
            ),
            face_features=(
                np.concatenate(owner_blocks)
                if owner_blocks
                else np.empty(0, dtype=np.int64)
            ),
            feature_properties=tuple(dict(f.properties) for f in features),
            feature_top_heights=tuple(top_heights),
        )

    @property
    def triangle_count(self) -> int:
        return int(len(self.faces))


class TileDescriptor(BaseModel):
    """A tile announced by a scene source, before its payload is fetched."""

    tile_id: str = Field(min_length=1)
    content_uri: str
    region: Region | None = None

    model_config = ConfigDict(frozen=True)


class SceneDescription(BaseModel):
    """What a scene source serves: optional terrain plus tiles to stream."""

    terrain: TerrainGrid | None = None
    tiles: tuple[TileDescriptor, ...] = ()

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "SceneDescription":
        ids = [t.tile_id for t in self.tiles]
        if len(ids) != len(set(ids)):
            raise ValueError("Tile ids must be unique")
        return self


# ---------------------------------------------------------------------------
# IntersectionOutcome
# ---------------------------------------------------------------------------
class IntersectionOutcome(BaseModel):
    """Result of intersecting one ray with the scene (Value Object).

    Invariants:
        hit == True  -> point, distance and hit_kind are set, distance >= 0
        hit == False -> point, distance and hit_kind are None

    Fields:
        ray_index: Position of the ray in the cast (multi-axis order)
        object_height: Top of the hit feature, or terrain height at the hit
        feature_properties: Opaque attributes of a tileset feature hit
    """

    hit: bool
    point: CartesianPosition | None = None
    distance: float | None = None
    hit_kind: HitKind | None = None
    ray_index: int = 0
    tile_id: str | None = None
    object_height: float | None = None
    feature_properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_hit_consistency(self) -> "IntersectionOutcome":
        fields = (self.point, self.distance, self.hit_kind)
        if self.hit:
            if any(f is None for f in fields):
                raise ValueError("hit=True requires point, distance and hit_kind")
            if self.distance < 0:
                raise ValueError(f"distance must be >= 0, got {self.distance}")
        elif any(f is not None for f in fields):
            raise ValueError("hit=False requires point, distance and hit_kind to be None")
        return self

    @classmethod
    def miss(cls, ray_index: int = 0) -> "IntersectionOutcome":
        return cls(hit=False, ray_index=ray_index)
