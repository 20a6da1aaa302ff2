"""Collision Bounded Context - Value Objects.

Immutable verdicts and results. All validation occurs at construction time
via Pydantic.

Results serialize with camelCase keys (model_dump(by_alias=True)) for the
HTTP boundary; Python code uses the snake_case field names.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from domain.scene.value_objects import CastStrategy, HitKind


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------
class CollisionThresholds(BaseModel):
    """Distance bands for classification, in meters.

    Invariants:
        0 <= inside_m < nearby_m

    Set nearby_m just above inside_m to get a plain collide / clear answer
    (e.g. inside_m=500 with no practical nearby band).
    """

    inside_m: float = Field(default=120.0, ge=0, allow_inf_nan=False)
    nearby_m: float = Field(default=200.0, gt=0, allow_inf_nan=False)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_ordering(self) -> "CollisionThresholds":
        if self.inside_m >= self.nearby_m:
            raise ValueError(
                f"inside_m={self.inside_m} must be < nearby_m={self.nearby_m}"
            )
        return self


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------
class VerdictKind(str, Enum):
    CLEAR = "clear"
    NEARBY = "nearby"
    INSIDE = "inside"


class CollisionVerdict(BaseModel):
    """Clear, Nearby(d) or Inside(d) (Value Object).

    distance is the governing hit distance; None only for Clear without a hit.
    """

    kind: VerdictKind
    distance: float | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_distance(self) -> "CollisionVerdict":
        if self.kind is not VerdictKind.CLEAR and self.distance is None:
            raise ValueError(f"{self.kind.value} verdict requires a distance")
        return self

    @classmethod
    def clear(cls, distance: float | None = None) -> "CollisionVerdict":
        return cls(kind=VerdictKind.CLEAR, distance=distance)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class HitRecord(_CamelModel):
    """One surface reported by a cast."""

    distance: float
    hit_kind: HitKind
    hit_point_height: float
    hit_object_height: float | None = None
    tile_id: str | None = None
    feature_properties: dict[str, Any] = Field(default_factory=dict)


class CollisionResult(_CamelModel):
    """Answer to one collision query.

    Fields:
        verdict: Clear / Nearby / Inside
        hit_distance: Distance to the governing hit (None without a hit)
        hit_point_height: Height above the ellipsoid of the governing hit point
        hit_object_height: Top of the hit feature, or terrain height for terrain hits
        terrain_height: Terrain height under the query point (None in flat mode)
        best_effort: True if readiness timed out before the cast
        strategy: Cast strategy that produced the answer
        hits: Every surface found (drill lists up to the cap)
    """

    verdict: VerdictKind
    hit_distance: float | None = None
    hit_point_height: float | None = None
    hit_object_height: float | None = None
    terrain_height: float | None = None
    best_effort: bool = False
    strategy: CastStrategy = CastStrategy.NEAREST_SURFACE
    hit_kind: HitKind | None = None
    feature_properties: dict[str, Any] = Field(default_factory=dict)
    hits: tuple[HitRecord, ...] = ()

    @property
    def collision(self) -> bool:
        """True iff the verdict is Inside."""
        return self.verdict is VerdictKind.INSIDE

    def to_response(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and the collision flag."""
        body = self.model_dump(mode="json", by_alias=True)
        body["collision"] = self.collision
        return body
