"""Infrastructure Layer.

Adapters for the domain ports and the outer surfaces:
- terrain: GeoTIFF DEM loading (rasterio)
- scene: tileset manifest source (local files or HTTP)
- http: FastAPI application
- logging_setup: entry-point logging configuration
"""
