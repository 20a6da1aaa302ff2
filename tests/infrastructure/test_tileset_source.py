"""Tests for the tileset manifest source (local files and HTTP)."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import numpy as np
import pytest
from affine import Affine

from domain.scene.errors import SceneInitFailure, TileLoadError
from domain.scene.value_objects import TileDescriptor
from infrastructure.scene import TilesetManifestSource
from shared.demo_scene import box_feature, demo_tiles, feature_region
from tests.helpers import write_geotiff

pytestmark = pytest.mark.integration


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def write_scene(root: Path, terrain: str | None = None) -> Path:
    """Write the demo tiles under root and return the manifest path."""
    (root / "tiles").mkdir(parents=True, exist_ok=True)
    entries = []
    for tile_id, features in demo_tiles().items():
        (root / "tiles" / f"{tile_id}.json").write_text(json.dumps({"features": features}))
        entries.append(
            {"id": tile_id, "content": f"tiles/{tile_id}.json", "region": feature_region(features)}
        )
    manifest = root / "tileset.json"
    manifest.write_text(json.dumps({"terrain": terrain, "tiles": entries}))
    return manifest


def write_terrain(path: Path) -> Path:
    data = np.full((20, 20), 3.0, dtype=np.float32)
    transform = Affine.translation(-0.01, 0.01) * Affine.scale(0.001, -0.001)
    return write_geotiff(path, data, transform)


# ---------------------------------------------------------------------------
# Local manifests
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_describe_resolves_relative_content(tmp_path):
    source = TilesetManifestSource(write_scene(tmp_path))

    description = await source.describe()

    assert source.source_id == "tileset.json"
    assert [t.tile_id for t in description.tiles] == ["block-a", "block-b"]
    assert description.tiles[0].content_uri == str(tmp_path / "tiles" / "block-a.json")
    assert description.tiles[0].region is not None
    assert description.terrain is None


@pytest.mark.asyncio
async def test_fetch_tile_decodes_features(tmp_path):
    source = TilesetManifestSource(write_scene(tmp_path))
    description = await source.describe()

    content = await source.fetch_tile(description.tiles[1])

    assert content.triangle_count == 24
    assert [p["name"] for p in content.feature_properties] == ["Hall", "Slab"]
    assert content.feature_top_heights == (15.0, 60.0)


@pytest.mark.asyncio
async def test_terrain_is_loaded(tmp_path):
    write_terrain(tmp_path / "terrain.tif")
    source = TilesetManifestSource(write_scene(tmp_path, terrain="terrain.tif"))

    description = await source.describe()

    assert description.terrain is not None
    assert description.terrain.data.shape == (20, 20)


@pytest.mark.asyncio
async def test_bad_terrain_fails_initialization(tmp_path):
    (tmp_path / "terrain.tif").write_bytes(b"")
    source = TilesetManifestSource(write_scene(tmp_path, terrain="terrain.tif"))

    with pytest.raises(SceneInitFailure, match="terrain.tif"):
        await source.describe()


@pytest.mark.asyncio
async def test_missing_manifest_fails_initialization(tmp_path):
    with pytest.raises(SceneInitFailure, match="not found"):
        await TilesetManifestSource(tmp_path / "nope.json").describe()


@pytest.mark.parametrize(
    "body",
    [
        "{not json",
        json.dumps({"tiles": [{"id": "", "content": "a.json"}]}),
        json.dumps({"tiles": [{"id": "a", "content": "a.json", "region": [1, 0, 0, 1, 0, 1]}]}),
        json.dumps({"tiles": [{"id": "a", "content": "a.json"}, {"id": "a", "content": "b.json"}]}),
    ],
)
@pytest.mark.asyncio
async def test_malformed_manifest_fails_initialization(tmp_path, body):
    manifest = tmp_path / "tileset.json"
    manifest.write_text(body)
    with pytest.raises(SceneInitFailure, match="malformed"):
        await TilesetManifestSource(manifest).describe()


@pytest.mark.asyncio
async def test_broken_tile_raises_tile_load_error(tmp_path):
    (tmp_path / "bad.json").write_text(
        json.dumps({"features": [{"vertices": [[0, 0, 0]], "faces": [[0, 1, 2]]}]})
    )
    source = TilesetManifestSource(tmp_path / "tileset.json")

    with pytest.raises(TileLoadError):
        await source.fetch_tile(
            TileDescriptor(tile_id="bad", content_uri=str(tmp_path / "bad.json"))
        )
    with pytest.raises(TileLoadError):
        await source.fetch_tile(
            TileDescriptor(tile_id="gone", content_uri=str(tmp_path / "gone.json"))
        )


# ---------------------------------------------------------------------------
# HTTP manifests
# ---------------------------------------------------------------------------
def http_scene() -> httpx.MockTransport:
    feature = box_feature(0.0, 0.0, 20.0, 0.0, 100.0, {"name": "Tower"})
    documents = {
        "/scene/tileset.json": {"tiles": [{"id": "a", "content": "tiles/a.json"}]},
        "/scene/tiles/a.json": {"features": [feature]},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path in documents:
            return httpx.Response(200, json=documents[request.url.path])
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_http_manifest_and_tiles():
    async with httpx.AsyncClient(transport=http_scene()) as client:
        source = TilesetManifestSource("https://assets.test/scene/tileset.json", client=client)
        description = await source.describe()
        content = await source.fetch_tile(description.tiles[0])

    assert description.tiles[0].content_uri == "https://assets.test/scene/tiles/a.json"
    assert content.triangle_count == 12


@pytest.mark.asyncio
async def test_http_errors_map_to_domain_errors():
    async with httpx.AsyncClient(transport=http_scene()) as client:
        with pytest.raises(SceneInitFailure, match="unreadable"):
            await TilesetManifestSource("https://assets.test/missing.json", client=client).describe()

        source = TilesetManifestSource("https://assets.test/scene/tileset.json", client=client)
        with pytest.raises(TileLoadError):
            await source.fetch_tile(
                TileDescriptor(tile_id="b", content_uri="https://assets.test/scene/tiles/b.json")
            )
