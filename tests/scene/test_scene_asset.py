"""Tests for SceneAsset tile lifecycle and snapshots."""

from __future__ import annotations

import numpy as np
import pytest

from domain.scene.asset import SceneAsset
from domain.scene.errors import InvalidTileTransitionError, UnknownTileError
from domain.scene.value_objects import (
    BoundingVolume,
    Region,
    TileDescriptor,
    TileState,
)
from tests.helpers import flat_terrain, tower_content


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def make_asset(*tile_ids: str, **kwargs) -> SceneAsset:
    return SceneAsset(
        [TileDescriptor(tile_id=t, content_uri=f"mem://{t}") for t in tile_ids],
        **kwargs,
    )


def load(asset: SceneAsset, tile_id: str) -> None:
    asset.request(tile_id)
    asset.begin_loading(tile_id)
    asset.complete_load(tile_id, tower_content())


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def test_full_lifecycle_with_eviction():
    asset = make_asset("a")
    assert asset.tile_state("a") is TileState.UNLOADED

    load(asset, "a")
    assert asset.tile_state("a") is TileState.LOADED

    asset.evict("a")
    assert asset.tile_state("a") is TileState.UNLOADED
    assert asset.snapshot().tiles == ()


def test_failed_is_terminal():
    asset = make_asset("a")
    asset.request("a")
    asset.begin_loading("a")
    asset.fail_load("a", "boom")
    assert asset.tile_state("a") is TileState.FAILED
    assert asset.failed_count == 1
    with pytest.raises(InvalidTileTransitionError):
        asset.begin_loading("a")


@pytest.mark.parametrize(
    "steps",
    [
        ("complete",),  # Unloaded -> Loaded
        ("begin", "begin"),  # Loading -> Loading
        ("evict",),  # Unloaded -> Unloaded
    ],
)
def test_illegal_transitions_rejected(steps):
    asset = make_asset("a")
    actions = {
        "begin": lambda: asset.begin_loading("a"),
        "complete": lambda: asset.complete_load("a", tower_content()),
        "evict": lambda: asset.evict("a"),
    }
    with pytest.raises(InvalidTileTransitionError):
        for step in steps:
            actions[step]()


def test_unknown_tile():
    with pytest.raises(UnknownTileError):
        make_asset("a").begin_loading("b")


def test_duplicate_tile_ids_rejected():
    with pytest.raises(ValueError):
        make_asset("a", "a")


# ---------------------------------------------------------------------------
# Pending count and notifications
# ---------------------------------------------------------------------------
def test_pending_count_tracks_queue_and_loading():
    asset = make_asset("a", "b")
    assert asset.pending_count == 0
    asset.request("a")
    asset.request("b")
    assert asset.pending_count == 2
    asset.begin_loading("a")
    assert asset.pending_count == 2
    asset.complete_load("a", tower_content())
    assert asset.pending_count == 1
    asset.begin_loading("b")
    asset.fail_load("b", "boom")
    assert asset.pending_count == 0


def test_listeners_receive_pending_counts_and_can_unsubscribe():
    asset = make_asset("a")
    seen: list[int] = []
    unsubscribe = asset.add_progress_listener(seen.append)

    asset.request("a")
    asset.begin_loading("a")
    unsubscribe()
    asset.complete_load("a", tower_content())

    assert seen == [1, 1]


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
def test_snapshot_is_unaffected_by_later_transitions():
    asset = make_asset("a", "b")
    load(asset, "a")
    snap = asset.snapshot()
    load(asset, "b")
    asset.evict("a")

    assert [tile_id for tile_id, _ in snap.tiles] == ["a"]
    assert [tile_id for tile_id, _ in asset.snapshot().tiles] == ["b"]


def test_snapshot_arrays_are_read_only():
    asset = make_asset("a")
    load(asset, "a")
    (_, content), = asset.snapshot().tiles
    with pytest.raises(ValueError):
        content.vertices[0, 0] = 0.0


def test_geometry_presence():
    assert not make_asset("a").has_geometry
    assert make_asset("a", terrain=flat_terrain()).has_geometry
    assert make_asset(terrain=flat_terrain()).snapshot().is_empty is False
    assert make_asset().snapshot().is_empty


def test_region_bounding_volume_encloses_content():
    region = Region(
        west=-0.001, south=-0.001, east=0.001, north=0.001, min_height=0.0, max_height=100.0
    )
    volume = BoundingVolume.from_region(region)
    vertices = tower_content().vertices
    assert np.all(vertices >= np.array(volume.minimum))
    assert np.all(vertices <= np.array(volume.maximum))


def test_slab_test_honours_max_distance():
    volume = BoundingVolume(minimum=(10.0, -1.0, -1.0), maximum=(12.0, 1.0, 1.0))
    origin = np.zeros(3)
    toward = np.array([1.0, 0.0, 0.0])

    assert volume.intersects_ray(origin, toward)
    assert volume.intersects_ray(origin, toward, 10.5)
    assert not volume.intersects_ray(origin, toward, 9.0)
    assert not volume.intersects_ray(origin, -toward)
    # Starting inside the box always intersects
    assert volume.intersects_ray(np.array([11.0, 0.0, 0.0]), toward, 0.1)
