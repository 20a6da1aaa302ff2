"""GeoTIFF adapter for TerrainRepository.

Loads a single-band DEM with rasterio and returns a TerrainGrid in
EPSG:4326. Elevations are taken as meters above the WGS84 ellipsoid; a DEM
referenced to a geoid must be converted before use.

Steps:
1) Pre-flight checks on the file (extension, symlink, size budget)
2) Open inside rasterio.Env and validate band count, CRS and geotransform
3) Read directly if already EPSG:4326, otherwise reproject (bilinear)
4) NoData -> NaN as float32; reject rasters with no valid pixel
5) Return the grid; GDAL handles are released when the contexts exit

Only file names are logged, never full paths.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

import numpy as np
import rasterio
from affine import Affine
from numpy.typing import NDArray
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.io import DatasetReader
from rasterio.transform import array_bounds
from rasterio.warp import calculate_default_transform, reproject

from domain.terrain.errors import (
    AllNoDataError,
    InsufficientMemoryError,
    InvalidBoundsError,
    InvalidGeotransformError,
    InvalidRasterError,
    MissingCRSError,
)
from domain.terrain.value_objects import BoundingBox, TerrainGrid

logger = logging.getLogger(__name__)

_TARGET_CRS = CRS.from_epsg(4326)
_ALLOWED_SUFFIXES = (".tif", ".tiff")
_NODATA_WARN_PCT = 80.0


class GeoTiffTerrainAdapter:
    """Loads DEM GeoTIFFs as TerrainGrid.

    Args:
        max_bytes: Optional memory budget for the float32 grid
            (height * width * 4). Exceeding it raises InsufficientMemoryError.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes

    def load_dem(self, file_path: Path | str) -> TerrainGrid:
        """Load a DEM and return it normalized to EPSG:4326.

        Raises:
            FileNotFoundError: If the file does not exist
            InvalidRasterError: Wrong extension, symlink, empty, unreadable or
                not single-band
            MissingCRSError: If the raster has no CRS
            InvalidGeotransformError: If the transform is degenerate
            AllNoDataError: If no pixel holds a value
            InsufficientMemoryError: If the grid would exceed max_bytes
        """
        path = Path(file_path)
        self._preflight(path)

        try:
            with rasterio.Env():
                with rasterio.open(path) as src:
                    self._validate(src)
                    if src.crs == _TARGET_CRS:
                        data, transform = self._read_native(src)
                    else:
                        data, transform = self._read_reprojected(src)
                        logger.info(
                            "DEM %s: reprojected from %s to EPSG:4326",
                            path.name,
                            src.crs.to_string(),
                        )
                    source_crs = src.crs.to_string()
        except PermissionError as e:
            raise PermissionError(path.name) from e
        except rasterio.errors.RasterioError as e:
            raise InvalidRasterError(f"Corrupted or invalid raster: {e}") from e
        except MemoryError as e:
            raise InsufficientMemoryError("Insufficient memory to load raster") from e

        return self._to_grid(path, data, transform, source_crs)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _preflight(self, path: Path) -> None:
        if not path.exists():
            raise FileNotFoundError(str(path))
        if path.suffix.lower() not in _ALLOWED_SUFFIXES:
            raise InvalidRasterError(f"Unsupported file extension: {path.suffix}")
        if path.is_symlink():
            raise InvalidRasterError("Symlinks are not permitted")
        try:
            size = path.stat().st_size
        except OSError as e:
            logger.error(
                "Failed to stat %s (errno=%s, strerror=%s)",
                path.name,
                getattr(e, "errno", "unknown"),
                getattr(e, "strerror", "unknown"),
            )
            raise
        if size == 0:
            raise InvalidRasterError("Empty file")
        # A file more than twice the budget cannot fit once decoded
        if self.max_bytes is not None and size > self.max_bytes * 2:
            raise InsufficientMemoryError(
                f"File size {size}B exceeds 2x memory budget {self.max_bytes}B"
            )

    def _validate(self, src: DatasetReader) -> None:
        if src.count != 1:
            raise InvalidRasterError(f"Expected 1 band, got {src.count}")
        if src.crs is None:
            raise MissingCRSError("Raster has no CRS defined")
        transform: Affine = src.transform
        coefficients = (transform.a, transform.b, transform.c, transform.d, transform.e, transform.f)
        if not all(math.isfinite(v) for v in coefficients):
            raise InvalidGeotransformError("Invalid (NaN/Inf) transform values")
        if transform.a == 0 or transform.e == 0:
            raise InvalidGeotransformError("Invalid transform scale (zero)")

    def _check_budget(self, width: int, height: int) -> None:
        if self.max_bytes is None:
            return
        est_bytes = int(width) * int(height) * 4
        if est_bytes > self.max_bytes:
            raise InsufficientMemoryError(
                f"Estimated grid size {est_bytes}B exceeds budget {self.max_bytes}B"
            )

    def _read_native(self, src: DatasetReader) -> tuple[NDArray[np.float32], Affine]:
        self._check_budget(src.width, src.height)
        band = src.read(1, masked=True, out_dtype="float32")
        data = np.ma.filled(band.astype(np.float32), np.float32(np.nan))
        if src.nodata is not None and not np.isnan(src.nodata):
            # GeoTIFF stores nodata exactly, so equality is the right test
            data = np.where(data == np.float32(src.nodata), np.float32(np.nan), data)
        return data.astype(np.float32, copy=False), src.transform

    def _read_reprojected(
        self, src: DatasetReader
    ) -> tuple[NDArray[np.float32], Affine]:
        dst_transform, dst_width, dst_height = calculate_default_transform(
            src.crs, _TARGET_CRS, src.width, src.height, *src.bounds
        )
        self._check_budget(dst_width, dst_height)
        dst = np.full((dst_height, dst_width), np.nan, dtype=np.float32)
        reproject(
            source=rasterio.band(src, 1),
            destination=dst,
            src_transform=src.transform,
            src_crs=src.crs,
            dst_transform=dst_transform,
            dst_crs=_TARGET_CRS,
            resampling=Resampling.bilinear,
            src_nodata=src.nodata,
            dst_nodata=np.nan,
        )
        return dst, dst_transform

    def _to_grid(
        self,
        path: Path,
        data: NDArray[np.float32],
        transform: Affine,
        source_crs: str,
    ) -> TerrainGrid:
        if not np.any(~np.isnan(data)):
            raise AllNoDataError("Raster contains 100% NoData pixels - unusable")

        height, width = data.shape
        minx, miny, maxx, maxy = array_bounds(height, width, transform)
        try:
            bounds = BoundingBox(min_x=minx, min_y=miny, max_x=maxx, max_y=maxy)
        except ValueError as e:
            raise InvalidBoundsError(str(e)) from e

        nodata_pct = float(np.isnan(data).mean() * 100.0)
        if nodata_pct > _NODATA_WARN_PCT:
            logger.warning("DEM %s: %.1f%% NoData pixels detected", path.name, nodata_pct)
        logger.debug("DEM %s: loaded %dx%d grid", path.name, width, height)

        return TerrainGrid(
            data=data,
            bounds=bounds,
            crs="EPSG:4326",
            resolution=(abs(transform.a), abs(transform.e)),
            source_crs=source_crs,
        )
