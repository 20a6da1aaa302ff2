"""Drone Clearance Domain Layer.

This package contains the core business logic organized by bounded contexts:
- geodesy: WGS84 positions and geodetic <-> ECEF conversions
- terrain: Optional terrain surface and height sampling
- scene: Streamed tiles, readiness tracking, ray casting
- collision: Distance thresholds, verdicts and query results
"""

# Imports alphabetized per project style (isort)
from domain import collision, geodesy, scene, terrain

__all__ = ["collision", "geodesy", "scene", "terrain"]
