"""Application Layer.

Orchestrates domain services for the collision query use case:
- config: EngineSettings (environment driven)
- streaming: tile loading driver feeding SceneAsset load events
- session: one opened scene (asset, readiness tracker, streaming task)
- query_serializer: initialize_scene / check_collision
"""
