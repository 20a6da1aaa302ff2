"""Infrastructure adapters for the terrain bounded context.

Provides loading of terrain DEMs from GeoTIFF files.
"""

from .geotiff_adapter import GeoTiffTerrainAdapter

__all__ = ["GeoTiffTerrainAdapter"]
