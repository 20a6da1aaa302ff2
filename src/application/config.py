"""Engine configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.collision.value_objects import CollisionThresholds
from domain.scene.raycast import RayCaster
from domain.scene.value_objects import CastStrategy


class IsolationMode(str, Enum):
    """Whether queries share one scene or each open their own."""

    SHARED = "shared"
    ISOLATED = "isolated"


class EngineSettings(BaseSettings):
    """Engine settings loaded from environment variables (prefix CLEARANCE_)."""

    model_config = SettingsConfigDict(
        env_prefix="CLEARANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scene
    asset_source: str = "demo_scene/tileset.json"
    isolation: IsolationMode = IsolationMode.SHARED
    readiness_deadline_s: float = Field(default=20.0, ge=0)
    tile_load_concurrency: int = Field(default=8, ge=1)

    # Casting
    strategy: CastStrategy = CastStrategy.NEAREST_SURFACE
    max_drill_hits: int = Field(default=10, ge=1)
    max_ray_distance_m: float = Field(default=10_000.0, gt=0)
    terrain_step_m: float = Field(default=5.0, gt=0)

    # Classification
    inside_threshold_m: float = Field(default=120.0, ge=0)
    nearby_threshold_m: float = Field(default=200.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # HTTP
    host: str = "127.0.0.1"
    port: int = 3000

    @model_validator(mode="after")
    def validate_thresholds(self) -> "EngineSettings":
        if self.inside_threshold_m >= self.nearby_threshold_m:
            raise ValueError(
                "inside_threshold_m must be smaller than nearby_threshold_m"
            )
        return self

    def thresholds(self) -> CollisionThresholds:
        return CollisionThresholds(
            inside_m=self.inside_threshold_m, nearby_m=self.nearby_threshold_m
        )

    def ray_caster(self) -> RayCaster:
        return RayCaster(
            self.strategy,
            max_hits=self.max_drill_hits,
            max_distance_m=self.max_ray_distance_m,
            terrain_step_m=self.terrain_step_m,
        )
