"""Scene Bounded Context - Ray casting.

Pure intersection logic over a SceneSnapshot. No I/O, no scene mutation.

Strategies (see CastStrategy):
    nearest     One ray straight down (along -local vertical); the first
                surface hit.
    multi_axis  Six rays along the ECEF axes in the fixed order
                +X, +Y, +Z, -X, -Y, -Z. The first ray that hits anything
                short-circuits; later axes are not cast. This samples six
                directions only and can miss geometry lying off all of them.
    drill       One ray straight down; every surface it passes through, one
                hit per feature (plus terrain), closest first, capped.

Tile meshes are intersected with a vectorised Moller-Trumbore test, both
faces counted. Terrain is intersected by marching along the ray in fixed
steps, comparing geodetic height with the terrain height underneath, and
refining the first crossing by bisection. Ridges thinner than the step can be
stepped over.

A ray that starts inside a feature (odd number of surface crossings, so the
mesh must be closed) or below the terrain reports a hit at distance 0.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict

from domain.geodesy.services import local_up, to_cartesian, to_geodetic_array
from domain.geodesy.value_objects import CartesianPosition, GeodeticPosition
from domain.scene.asset import SceneSnapshot
from domain.scene.value_objects import (
    CastStrategy,
    HitKind,
    IntersectionOutcome,
    Ray,
    TileContent,
)
from domain.terrain.services import terrain_height_at, terrain_heights
from domain.terrain.value_objects import TerrainGrid

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_MAX_HITS = 10
DEFAULT_MAX_DISTANCE_M = 10_000.0
DEFAULT_TERRAIN_STEP_M = 5.0

# Fixed multi-axis evaluation order
AXIS_ORDER: tuple[tuple[str, tuple[float, float, float]], ...] = (
    ("+X", (1.0, 0.0, 0.0)),
    ("+Y", (0.0, 1.0, 0.0)),
    ("+Z", (0.0, 0.0, 1.0)),
    ("-X", (-1.0, 0.0, 0.0)),
    ("-Y", (0.0, -1.0, 0.0)),
    ("-Z", (0.0, 0.0, -1.0)),
)

_PARALLEL_EPS = 1e-12  # |e1 . (d x e2)| below this: ray parallel to triangle
_BARY_EPS = 1e-9  # barycentric slack so shared edges are not missed
_T_EPS = 1e-6  # hits this far behind the origin still count as distance 0
_DEDUPE_TOL_M = 1e-4  # crossings closer than this are the same (shared edges)
_BISECTION_STEPS = 32


# ---------------------------------------------------------------------------
# Cast report
# ---------------------------------------------------------------------------
class CastReport(BaseModel):
    """Everything one cast produced (Value Object).

    outcomes holds one entry per hit, or per ray tried without a hit:
        nearest     at most one hit, or a single miss
        multi_axis  misses for the axes tried first, then the short-circuiting hit
        drill       all hits ordered by distance, or a single miss
    """

    strategy: CastStrategy
    rays: tuple[Ray, ...]
    outcomes: tuple[IntersectionOutcome, ...]

    model_config = ConfigDict(frozen=True)

    @property
    def hits(self) -> tuple[IntersectionOutcome, ...]:
        return tuple(o for o in self.outcomes if o.hit)

    @property
    def governing(self) -> IntersectionOutcome | None:
        """The hit that decides the verdict, None when nothing was hit.

        nearest/multi_axis: the first hit found (multi-axis never compares axes).
        drill: the closest of all hits.
        """
        hits = self.hits
        if not hits:
            return None
        if self.strategy is CastStrategy.DRILL:
            return min(hits, key=lambda o: o.distance)
        return hits[0]


# ---------------------------------------------------------------------------
# Mesh intersection
# ---------------------------------------------------------------------------
def ray_triangle_distances(
    vertices: NDArray[np.float64],
    faces: NDArray[np.int64],
    origin: NDArray[np.float64],
    direction: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Moller-Trumbore for all faces at once.

    Returns an (M,) array of distances along the ray, NaN where a face is not
    hit. Both faces of a triangle count. Vertices are shifted to the ray
    origin first to keep ECEF magnitudes out of the products.
    """
    local = vertices - origin
    v0 = local[faces[:, 0]]
    e1 = local[faces[:, 1]] - v0
    e2 = local[faces[:, 2]] - v0

    h = np.cross(direction, e2)
    a = np.einsum("ij,ij->i", e1, h)
    parallel = np.abs(a) < _PARALLEL_EPS
    f = np.divide(1.0, a, out=np.zeros_like(a), where=~parallel)

    s = -v0
    u = f * np.einsum("ij,ij->i", s, h)
    q = np.cross(s, e1)
    v = f * (q @ direction)
    t = f * np.einsum("ij,ij->i", e2, q)

    ok = (
        ~parallel
        & (u >= -_BARY_EPS)
        & (u <= 1.0 + _BARY_EPS)
        & (v >= -_BARY_EPS)
        & (u + v <= 1.0 + _BARY_EPS)
        & (t >= -_T_EPS)
    )
    return np.where(ok, np.maximum(t, 0.0), np.nan)


def _feature_hits(
    tile_id: str,
    content: TileContent,
    origin: NDArray[np.float64],
    direction: NDArray[np.float64],
    max_distance: float,
    ray_index: int,
) -> list[IntersectionOutcome]:
    """Closest hit per feature of one tile (distance 0 if the origin is inside)."""
    # Origin outside the box means no feature can report a closer crossing
    if content.bounds is None or not content.bounds.intersects_ray(
        origin, direction, max_distance
    ):
        return []

    distances = ray_triangle_distances(content.vertices, content.faces, origin, direction)
    hit_faces = np.flatnonzero(~np.isnan(distances))
    if hit_faces.size == 0:
        return []

    outcomes: list[IntersectionOutcome] = []
    owners = content.face_features[hit_faces]
    for feature in np.unique(owners):
        ts = np.sort(distances[hit_faces[owners == feature]])
        # Shared edges report the same crossing twice
        crossings = ts[np.concatenate(([True], np.diff(ts) > _DEDUPE_TOL_M))]
        inside = len(crossings) % 2 == 1 and crossings[0] > _DEDUPE_TOL_M
        distance = 0.0 if inside else float(crossings[0])
        if distance > max_distance:
            continue
        feature_index = int(feature)
        outcomes.append(
            IntersectionOutcome(
                hit=True,
                point=CartesianPosition.from_array(origin + distance * direction),
                distance=distance,
                hit_kind=HitKind.TILESET_FEATURE,
                ray_index=ray_index,
                tile_id=tile_id,
                object_height=content.feature_top_heights[feature_index],
                feature_properties=dict(content.feature_properties[feature_index]),
            )
        )
    return outcomes


# ---------------------------------------------------------------------------
# Terrain intersection
# ---------------------------------------------------------------------------
def _clearance(terrain: TerrainGrid, point: NDArray[np.float64]) -> float | None:
    """Height of a point above the terrain under it (None off-grid / NoData)."""
    lon, lat, h = to_geodetic_array(point)
    ground = terrain_height_at(terrain, float(lon[0]), float(lat[0]))
    return None if ground is None else float(h[0]) - ground


def _terrain_hit(
    terrain: TerrainGrid,
    origin: NDArray[np.float64],
    direction: NDArray[np.float64],
    max_distance: float,
    step: float,
    ray_index: int,
) -> IntersectionOutcome | None:
    n = max(2, int(math.ceil(max_distance / step)) + 1)
    ts = np.linspace(0.0, max_distance, n)
    lon, lat, h = to_geodetic_array(origin + ts[:, None] * direction)
    clearance = h - terrain_heights(terrain, lon, lat)
    valid = np.isfinite(clearance)

    if valid[0] and clearance[0] <= 0:
        distance = 0.0
    else:
        above_before = np.zeros(n, dtype=bool)
        above_before[1:] = valid[:-1] & (clearance[:-1] > 0)
        crossing = np.flatnonzero(valid & (clearance <= 0) & above_before)
        if crossing.size == 0:
            return None
        i = int(crossing[0])
        lo, hi = float(ts[i - 1]), float(ts[i])
        for _ in range(_BISECTION_STEPS):
            mid = 0.5 * (lo + hi)
            c = _clearance(terrain, origin + mid * direction)
            if c is None or c > 0:
                lo = mid
            else:
                hi = mid
        distance = hi

    point = origin + distance * direction
    hit_lon, hit_lat, _ = to_geodetic_array(point)
    ground = terrain_height_at(terrain, float(hit_lon[0]), float(hit_lat[0]))
    return IntersectionOutcome(
        hit=True,
        point=CartesianPosition.from_array(point),
        distance=distance,
        hit_kind=HitKind.TERRAIN,
        ray_index=ray_index,
        object_height=ground,
    )


# ---------------------------------------------------------------------------
# Whole-scene intersection
# ---------------------------------------------------------------------------
def intersect_ray(
    snapshot: SceneSnapshot,
    ray: Ray,
    *,
    ray_index: int = 0,
    max_distance: float = DEFAULT_MAX_DISTANCE_M,
    terrain_step: float = DEFAULT_TERRAIN_STEP_M,
) -> list[IntersectionOutcome]:
    """Every surface the ray meets within max_distance, closest first.

    One outcome per tileset feature and at most one for terrain. An empty
    snapshot yields an empty list.
    """
    origin = ray.origin.as_array()
    direction = ray.direction_array()

    outcomes: list[IntersectionOutcome] = []
    for tile_id, content in snapshot.tiles:
        outcomes.extend(
            _feature_hits(tile_id, content, origin, direction, max_distance, ray_index)
        )
    if snapshot.terrain is not None:
        terrain = _terrain_hit(
            snapshot.terrain, origin, direction, max_distance, terrain_step, ray_index
        )
        if terrain is not None:
            outcomes.append(terrain)

    outcomes.sort(key=lambda o: o.distance)
    return outcomes


# ---------------------------------------------------------------------------
# RayCaster
# ---------------------------------------------------------------------------
class RayCaster:
    """Builds rays from a query point and intersects them with a snapshot.

    Args:
        strategy: Which CastStrategy this caster applies
        max_hits: Drill cap on reported surfaces
        max_distance_m: Rays stop looking beyond this distance
        terrain_step_m: March step along the ray for terrain crossings
    """

    def __init__(
        self,
        strategy: CastStrategy = CastStrategy.NEAREST_SURFACE,
        *,
        max_hits: int = DEFAULT_MAX_HITS,
        max_distance_m: float = DEFAULT_MAX_DISTANCE_M,
        terrain_step_m: float = DEFAULT_TERRAIN_STEP_M,
    ) -> None:
        if max_hits < 1:
            raise ValueError("max_hits must be >= 1")
        if max_distance_m <= 0:
            raise ValueError("max_distance_m must be positive")
        if terrain_step_m <= 0:
            raise ValueError("terrain_step_m must be positive")
        self.strategy = CastStrategy(strategy)
        self.max_hits = max_hits
        self.max_distance_m = max_distance_m
        self.terrain_step_m = terrain_step_m

    def build_rays(self, position: GeodeticPosition) -> tuple[Ray, ...]:
        origin = to_cartesian(position)
        if self.strategy is CastStrategy.MULTI_AXIS:
            return tuple(
                Ray(origin=origin, direction=axis, label=label)
                for label, axis in AXIS_ORDER
            )
        down = -local_up(position)
        return (Ray(origin=origin, direction=tuple(down), label="down"),)

    def cast(self, snapshot: SceneSnapshot, position: GeodeticPosition) -> CastReport:
        rays = self.build_rays(position)
        if self.strategy is CastStrategy.MULTI_AXIS:
            outcomes = self._cast_multi_axis(snapshot, rays)
        else:
            found = self._intersect(snapshot, rays[0], 0)
            limit = self.max_hits if self.strategy is CastStrategy.DRILL else 1
            outcomes = tuple(found[:limit]) or (IntersectionOutcome.miss(0),)

        logger.debug(
            "Cast %s at (%.6f, %.6f, %.2f): %d hit(s) over %d tile(s)",
            self.strategy.value,
            position.longitude,
            position.latitude,
            position.height,
            sum(1 for o in outcomes if o.hit),
            len(snapshot.tiles),
        )
        return CastReport(strategy=self.strategy, rays=rays, outcomes=outcomes)

    def _cast_multi_axis(
        self, snapshot: SceneSnapshot, rays: tuple[Ray, ...]
    ) -> tuple[IntersectionOutcome, ...]:
        tried: list[IntersectionOutcome] = []
        for index, ray in enumerate(rays):
            found = self._intersect(snapshot, ray, index)
            if found:
                tried.append(found[0])
                break
            tried.append(IntersectionOutcome.miss(index))
        return tuple(tried)

    def _intersect(
        self, snapshot: SceneSnapshot, ray: Ray, ray_index: int
    ) -> list[IntersectionOutcome]:
        return intersect_ray(
            snapshot,
            ray,
            ray_index=ray_index,
            max_distance=self.max_distance_m,
            terrain_step=self.terrain_step_m,
        )
