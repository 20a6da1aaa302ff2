"""Scene Bounded Context.

Responsible for the streamed 3D scene and queries against it:
- Value Objects: Ray, BoundingVolume, TileContent, IntersectionOutcome
- Entities: Tile, SceneAsset
- Services: ReadinessTracker, RayCaster
"""
