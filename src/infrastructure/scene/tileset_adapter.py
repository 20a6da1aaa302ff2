"""Tileset manifest adapter for SceneSource.

A scene is described by a JSON manifest, read from a local file or over
HTTP(S):

    {
      "terrain": "terrain.tif",            # optional GeoTIFF DEM, or null
      "tiles": [
        {"id": "a", "content": "tiles/a.json",
         "region": [west, south, east, north, min_height, max_height]}
      ]
    }

Each tile content document lists feature meshes in geodetic coordinates:

    {"features": [{"properties": {...},
                   "vertices": [[lon, lat, h], ...],
                   "faces": [[0, 1, 2], ...]}]}

Relative URIs resolve against the manifest location. Terrain must be a local
file (rasterio reads it from disk).
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from urllib.parse import urljoin, urlparse

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.scene.errors import SceneInitFailure, TileLoadError
from domain.scene.value_objects import (
    FeatureMesh,
    Region,
    SceneDescription,
    TileContent,
    TileDescriptor,
)
from domain.terrain.errors import TerrainError
from domain.terrain.repositories import TerrainRepository
from domain.terrain.value_objects import TerrainGrid

from infrastructure.terrain import GeoTiffTerrainAdapter

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_S = 30.0


# ---------------------------------------------------------------------------
# Document schemas
# ---------------------------------------------------------------------------
class _TileEntry(BaseModel):
    id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    region: tuple[float, float, float, float, float, float] | None = None

    model_config = ConfigDict(frozen=True)


class _Manifest(BaseModel):
    terrain: str | None = None
    tiles: tuple[_TileEntry, ...] = ()

    model_config = ConfigDict(frozen=True)


class _TileDocument(BaseModel):
    features: tuple[FeatureMesh, ...] = ()

    model_config = ConfigDict(frozen=True)


def _is_remote(uri: str) -> bool:
    return urlparse(uri).scheme in ("http", "https")


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------
class TilesetManifestSource:
    """SceneSource backed by a JSON manifest.

    Args:
        manifest_uri: Local path or http(s) URL of the manifest
        terrain_repository: Loader for the terrain DEM (GeoTIFF by default)
        client: Shared httpx client; a short-lived one is used per request
            when omitted
        timeout_s: HTTP timeout per request
    """

    def __init__(
        self,
        manifest_uri: str | Path,
        *,
        terrain_repository: TerrainRepository | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_HTTP_TIMEOUT_S,
    ) -> None:
        self.manifest_uri = str(manifest_uri)
        self._remote = _is_remote(self.manifest_uri)
        self._terrain_repository = terrain_repository or GeoTiffTerrainAdapter()
        self._client = client
        self._timeout_s = timeout_s
        # Local paths are logged by file name only
        self.source_id = (
            self.manifest_uri if self._remote else Path(self.manifest_uri).name
        )

    # ------------------------------------------------------------------
    # SceneSource
    # ------------------------------------------------------------------
    async def describe(self) -> SceneDescription:
        try:
            raw = await self._read_text(self.manifest_uri)
            manifest = _Manifest.model_validate(json.loads(raw))
        except FileNotFoundError as e:
            raise SceneInitFailure(self.source_id, "manifest not found") from e
        except (OSError, httpx.HTTPError) as e:
            raise SceneInitFailure(self.source_id, f"manifest unreadable: {e}") from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise SceneInitFailure(self.source_id, f"malformed manifest: {e}") from e

        try:
            tiles = tuple(
                TileDescriptor(
                    tile_id=entry.id,
                    content_uri=self._resolve(entry.content),
                    region=Region(
                        west=entry.region[0],
                        south=entry.region[1],
                        east=entry.region[2],
                        north=entry.region[3],
                        min_height=entry.region[4],
                        max_height=entry.region[5],
                    )
                    if entry.region is not None
                    else None,
                )
                for entry in manifest.tiles
            )
            terrain = await self._load_terrain(manifest.terrain)
            description = SceneDescription(terrain=terrain, tiles=tiles)
        except ValidationError as e:
            raise SceneInitFailure(self.source_id, f"malformed manifest: {e}") from e

        logger.debug(
            "Manifest %s: %d tiles, terrain=%s",
            self.source_id,
            len(tiles),
            manifest.terrain is not None,
        )
        return description

    async def fetch_tile(self, tile: TileDescriptor) -> TileContent:
        try:
            raw = await self._read_text(tile.content_uri)
            document = _TileDocument.model_validate(json.loads(raw))
            # Geodetic -> ECEF conversion is CPU work; keep it off the loop
            return await asyncio.to_thread(TileContent.from_features, document.features)
        except (OSError, httpx.HTTPError) as e:
            raise TileLoadError(f"Tile {tile.tile_id!r} unreadable: {e}") from e
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            raise TileLoadError(f"Tile {tile.tile_id!r} malformed: {e}") from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _resolve(self, uri: str) -> str:
        if _is_remote(uri):
            return uri
        if self._remote:
            return urljoin(self.manifest_uri, uri)
        candidate = Path(uri)
        if candidate.is_absolute():
            return str(candidate)
        return str(Path(self.manifest_uri).parent / candidate)

    async def _read_text(self, uri: str) -> str:
        if not _is_remote(uri):
            return await asyncio.to_thread(Path(uri).read_text, encoding="utf-8")
        if self._client is not None:
            return await self._get(self._client, uri)
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            return await self._get(client, uri)

    @staticmethod
    async def _get(client: httpx.AsyncClient, uri: str) -> str:
        response = await client.get(uri)
        response.raise_for_status()
        return response.text

    async def _load_terrain(self, terrain_uri: str | None) -> TerrainGrid | None:
        if terrain_uri is None:
            return None
        resolved = self._resolve(terrain_uri)
        if _is_remote(resolved):
            raise SceneInitFailure(self.source_id, "terrain must be a local GeoTIFF")
        try:
            return await asyncio.to_thread(self._terrain_repository.load_dem, resolved)
        except (TerrainError, OSError) as e:
            raise SceneInitFailure(
                self.source_id, f"terrain {Path(resolved).name}: {e}"
            ) from e
