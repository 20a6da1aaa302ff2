"""Terrain Bounded Context.

Responsible for the optional terrain surface of a scene:
- Value Objects: BoundingBox, TerrainGrid
- Services: terrain height sampling (bilinear, scalar and vectorised)
"""
