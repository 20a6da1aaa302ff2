"""Collision Bounded Context - Domain Services.

Pure functions: distance -> verdict, cast report -> result.
"""

from __future__ import annotations

import math

from domain.collision.value_objects import (
    CollisionResult,
    CollisionThresholds,
    CollisionVerdict,
    HitRecord,
    VerdictKind,
)
from domain.geodesy.services import to_geodetic
from domain.geodesy.value_objects import GeodeticPosition
from domain.scene.raycast import CastReport
from domain.scene.value_objects import IntersectionOutcome
from domain.terrain.services import terrain_height_at
from domain.terrain.value_objects import TerrainGrid


def classify(
    distance: float | None, thresholds: CollisionThresholds
) -> CollisionVerdict:
    """Map a hit distance to a verdict.

    None (no hit) is Clear. d < inside is Inside, inside <= d < nearby is
    Nearby, anything further is Clear. Monotone in d: moving the hit
    further away never makes the verdict more severe.
    """
    if distance is None:
        return CollisionVerdict.clear()
    if math.isnan(distance) or distance < 0:
        raise ValueError(f"distance must be a non-negative number, got {distance}")
    if distance < thresholds.inside_m:
        return CollisionVerdict(kind=VerdictKind.INSIDE, distance=distance)
    if distance < thresholds.nearby_m:
        return CollisionVerdict(kind=VerdictKind.NEARBY, distance=distance)
    return CollisionVerdict.clear(distance)


def _hit_record(outcome: IntersectionOutcome) -> HitRecord:
    return HitRecord(
        distance=outcome.distance,
        hit_kind=outcome.hit_kind,
        hit_point_height=to_geodetic(outcome.point).height,
        hit_object_height=outcome.object_height,
        tile_id=outcome.tile_id,
        feature_properties=outcome.feature_properties,
    )


def build_result(
    report: CastReport,
    thresholds: CollisionThresholds,
    *,
    position: GeodeticPosition,
    terrain: TerrainGrid | None = None,
    best_effort: bool = False,
) -> CollisionResult:
    """Classify the governing hit of a cast and assemble the query result."""
    hits = tuple(_hit_record(o) for o in report.hits)
    governing = report.governing
    terrain_height = (
        terrain_height_at(terrain, position.longitude, position.latitude)
        if terrain is not None
        else None
    )

    if governing is None:
        return CollisionResult(
            verdict=VerdictKind.CLEAR,
            terrain_height=terrain_height,
            best_effort=best_effort,
            strategy=report.strategy,
        )

    record = hits[report.hits.index(governing)]
    verdict = classify(record.distance, thresholds)
    return CollisionResult(
        verdict=verdict.kind,
        hit_distance=record.distance,
        hit_point_height=record.hit_point_height,
        hit_object_height=record.hit_object_height,
        terrain_height=terrain_height,
        best_effort=best_effort,
        strategy=report.strategy,
        hit_kind=record.hit_kind,
        feature_properties=record.feature_properties,
        hits=hits,
    )
