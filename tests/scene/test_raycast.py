"""Tests for ray casting strategies.

Scenes sit at longitude 0, latitude 0 where ECEF +X is local up, +Y is east
and +Z is north, which keeps expected distances easy to read.
"""

from __future__ import annotations

import numpy as np
import pytest

from domain.geodesy.value_objects import GeodeticPosition
from domain.scene.asset import SceneSnapshot
from domain.scene import raycast
from domain.scene.raycast import AXIS_ORDER, RayCaster, intersect_ray, ray_triangle_distances
from domain.scene.value_objects import CastStrategy, HitKind, Ray, TileContent
from shared.demo_scene import box_feature, meters_to_degrees
from tests.helpers import content_from, flat_terrain, tower_content

# Query points sit 5 m east of the box centre, away from the diagonal edges
OFFSET_LON, _ = meters_to_degrees(5.0, 0.0, 0.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def snapshot(*tiles: TileContent, terrain=None) -> SceneSnapshot:
    return SceneSnapshot(
        terrain=terrain, tiles=tuple((f"t{i}", c) for i, c in enumerate(tiles))
    )


def at(height: float, lon: float = OFFSET_LON, lat: float = 0.0) -> GeodeticPosition:
    return GeodeticPosition.of(lon, lat, height)


# ---------------------------------------------------------------------------
# Triangle intersection
# ---------------------------------------------------------------------------
def test_triangle_hit_and_miss():
    vertices = np.array([[0.0, -1.0, -1.0], [0.0, 1.0, -1.0], [0.0, 0.0, 1.0]])
    faces = np.array([[0, 1, 2]], dtype=np.int64)
    origin = np.array([5.0, 0.0, 0.0])

    toward = ray_triangle_distances(vertices, faces, origin, np.array([-1.0, 0.0, 0.0]))
    away = ray_triangle_distances(vertices, faces, origin, np.array([1.0, 0.0, 0.0]))
    parallel = ray_triangle_distances(vertices, faces, origin, np.array([0.0, 1.0, 0.0]))

    assert toward[0] == pytest.approx(5.0)
    assert np.isnan(away[0])
    assert np.isnan(parallel[0])


def test_shared_edge_counts_once():
    # Ray straight through the centre lies on the top and bottom diagonals
    content = tower_content()
    outcomes = intersect_ray(
        snapshot(content),
        Ray(origin=RayCaster().build_rays(at(180.0, lon=0.0))[0].origin, direction=(-1, 0, 0)),
    )
    assert len(outcomes) == 1
    assert outcomes[0].distance == pytest.approx(80.0, abs=0.01)


# ---------------------------------------------------------------------------
# Nearest surface
# ---------------------------------------------------------------------------
def test_nearest_surface_above_box():
    report = RayCaster().cast(snapshot(tower_content(name="Tower")), at(180.0))

    hit = report.governing
    assert hit is not None
    assert hit.distance == pytest.approx(80.0, abs=0.01)
    assert hit.hit_kind is HitKind.TILESET_FEATURE
    assert hit.feature_properties == {"name": "Tower"}
    assert hit.object_height == pytest.approx(100.0)
    assert hit.tile_id == "t0"


def test_start_inside_geometry_reports_zero_distance():
    report = RayCaster().cast(snapshot(tower_content()), at(50.0))
    assert report.governing is not None
    assert report.governing.distance == 0.0


def test_empty_scene_is_clean_miss():
    report = RayCaster().cast(snapshot(), at(100.0))
    assert report.governing is None
    assert len(report.outcomes) == 1
    assert report.outcomes[0].hit is False


def test_beside_the_box_misses():
    lon, _ = meters_to_degrees(60.0, 0.0, 0.0)
    report = RayCaster().cast(snapshot(tower_content()), at(50.0, lon=lon))
    assert report.governing is None


def test_max_distance_limits_hits():
    caster = RayCaster(max_distance_m=50.0)
    assert caster.cast(snapshot(tower_content()), at(180.0)).governing is None


def test_tiles_beyond_max_distance_skip_triangle_tests(monkeypatch):
    calls = []
    real = raycast.ray_triangle_distances

    def counting(*args):
        calls.append(args)
        return real(*args)

    monkeypatch.setattr(raycast, "ray_triangle_distances", counting)

    assert RayCaster(max_distance_m=50.0).cast(snapshot(tower_content()), at(180.0)).governing is None
    assert calls == []

    # Inside detection still sees the whole tile when the origin is within it
    report = RayCaster(max_distance_m=1.0).cast(snapshot(tower_content()), at(50.0))
    assert report.governing is not None
    assert report.governing.distance == 0.0
    assert len(calls) == 1


def test_terrain_hit_distance_and_height():
    report = RayCaster(terrain_step_m=5.0).cast(
        snapshot(terrain=flat_terrain(height=10.0)), at(110.0)
    )
    hit = report.governing
    assert hit is not None
    assert hit.hit_kind is HitKind.TERRAIN
    assert hit.distance == pytest.approx(100.0, abs=0.01)
    assert hit.object_height == pytest.approx(10.0)


def test_below_terrain_is_inside():
    report = RayCaster().cast(snapshot(terrain=flat_terrain(height=10.0)), at(-20.0))
    assert report.governing is not None
    assert report.governing.distance == 0.0


def test_feature_above_terrain_wins():
    report = RayCaster().cast(
        snapshot(tower_content(), terrain=flat_terrain(height=-5.0)), at(180.0)
    )
    assert report.governing.hit_kind is HitKind.TILESET_FEATURE
    assert report.governing.distance == pytest.approx(80.0, abs=0.01)


# ---------------------------------------------------------------------------
# Multi-axis
# ---------------------------------------------------------------------------
def test_axis_order_is_fixed():
    assert [label for label, _ in AXIS_ORDER] == ["+X", "+Y", "+Z", "-X", "-Y", "-Z"]
    rays = RayCaster(CastStrategy.MULTI_AXIS).build_rays(at(0.0))
    assert [r.label for r in rays] == ["+X", "+Y", "+Z", "-X", "-Y", "-Z"]


def test_multi_axis_first_hit_short_circuits():
    # A wall 150 m east (+Y) and a closer roof 50 m below (-X): +Y is tried first
    east_lon, _ = meters_to_degrees(170.0, 0.0, 0.0)
    wall = content_from([box_feature(east_lon, 0.0, 20.0, 0.0, 300.0, {"name": "Wall"})])
    roof = tower_content(top=130.0, name="Roof")

    report = RayCaster(CastStrategy.MULTI_AXIS).cast(snapshot(wall, roof), at(180.0, lon=0.0))

    assert [o.hit for o in report.outcomes] == [False, True]
    assert report.governing.ray_index == 1
    assert report.governing.feature_properties == {"name": "Wall"}
    assert report.governing.distance == pytest.approx(150.0, abs=0.05)


def test_multi_axis_finds_geometry_below():
    report = RayCaster(CastStrategy.MULTI_AXIS).cast(snapshot(tower_content()), at(180.0))
    assert report.governing.ray_index == 3  # -X
    assert report.governing.distance == pytest.approx(80.0, abs=0.01)


def test_multi_axis_misses_off_axis_geometry():
    # Box diagonally north-east: no axis ray reaches it
    lon, lat = meters_to_degrees(300.0, 300.0, 0.0)
    box = content_from([box_feature(lon, lat, 20.0, 0.0, 300.0)])
    report = RayCaster(CastStrategy.MULTI_AXIS).cast(snapshot(box), at(150.0, lon=0.0))
    assert report.governing is None
    assert len(report.outcomes) == 6


# ---------------------------------------------------------------------------
# Drill
# ---------------------------------------------------------------------------
def stacked_scene(terrain=None) -> SceneSnapshot:
    slab = tower_content(bottom=120.0, top=140.0, name="Slab")
    tower = tower_content(top=100.0, name="Tower")
    return snapshot(tower, slab, terrain=terrain)


def test_drill_orders_hits_by_distance():
    report = RayCaster(CastStrategy.DRILL).cast(stacked_scene(), at(200.0))
    distances = [h.distance for h in report.hits]
    assert distances == pytest.approx([60.0, 100.0], abs=0.01)
    assert [h.feature_properties["name"] for h in report.hits] == ["Slab", "Tower"]
    assert report.governing.feature_properties == {"name": "Slab"}


def test_drill_includes_terrain_below_features():
    report = RayCaster(CastStrategy.DRILL).cast(
        stacked_scene(terrain=flat_terrain(height=-5.0)), at(200.0)
    )
    assert [h.hit_kind for h in report.hits] == [
        HitKind.TILESET_FEATURE,
        HitKind.TILESET_FEATURE,
        HitKind.TERRAIN,
    ]
    assert report.hits[-1].distance == pytest.approx(205.0, abs=0.01)


def test_drill_respects_cap():
    report = RayCaster(CastStrategy.DRILL, max_hits=1).cast(stacked_scene(), at(200.0))
    assert len(report.hits) == 1
    assert report.hits[0].feature_properties == {"name": "Slab"}


def test_cast_is_deterministic():
    caster = RayCaster(CastStrategy.DRILL)
    scene = stacked_scene(terrain=flat_terrain(height=-5.0))
    assert caster.cast(scene, at(200.0)) == caster.cast(scene, at(200.0))


def test_invalid_caster_configuration():
    with pytest.raises(ValueError):
        RayCaster(max_hits=0)
    with pytest.raises(ValueError):
        RayCaster(terrain_step_m=0.0)
