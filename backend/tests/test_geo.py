import random

import pytest

from trajgen.services.geo import (
    LatLng, haversine_distance, bearing, random_offset, path_length, sample_at_distance, polygon_centroid,
)
from fakes import TOKYO_STATION, SHIBUYA


def test_haversine_tokyo_station_to_shibuya():
    d = haversine_distance(TOKYO_STATION, SHIBUYA)
    assert 6000 < d < 7000
    assert haversine_distance(SHIBUYA, TOKYO_STATION) == pytest.approx(d)
    assert haversine_distance(SHIBUYA, SHIBUYA) == 0


def test_bearing_cardinal_directions():
    origin = LatLng(35.0, 139.0)
    assert bearing(origin, LatLng(35.1, 139.0)) == pytest.approx(0, abs=1e-6)
    assert bearing(origin, LatLng(35.0, 139.1)) == pytest.approx(90, abs=0.1)
    assert bearing(origin, LatLng(34.9, 139.0)) == pytest.approx(180, abs=1e-6)
    assert bearing(origin, LatLng(35.0, 138.9)) == pytest.approx(270, abs=0.1)
    assert bearing(origin, origin) == 0


@pytest.mark.parametrize("radius", [0, 10, 50, 2000])
def test_random_offset_stays_within_radius(radius):
    rng = random.Random(42)
    for _ in range(200):
        moved = random_offset(TOKYO_STATION, radius, rng)
        assert haversine_distance(TOKYO_STATION, moved) <= radius + 1e-6


def test_sample_before_start_returns_first_vertex():
    path = [TOKYO_STATION, SHIBUYA]
    assert sample_at_distance(path, 0) == TOKYO_STATION
    assert sample_at_distance(path, -25) == TOKYO_STATION


def test_sample_past_end_returns_last_vertex():
    path = [TOKYO_STATION, SHIBUYA]
    length = path_length(path)
    end = sample_at_distance(path, length + 1000)
    assert end == SHIBUYA
    at_length = sample_at_distance(path, length)
    assert at_length.lat == pytest.approx(SHIBUYA.lat)
    assert at_length.lng == pytest.approx(SHIBUYA.lng)


def test_sample_is_monotonic_along_straight_path():
    path = [TOKYO_STATION, SHIBUYA]
    length = path_length(path)
    previous = -1.0
    for i in range(21):
        point = sample_at_distance(path, length * i / 20)
        travelled = haversine_distance(TOKYO_STATION, point)
        assert travelled >= previous
        previous = travelled


def test_sample_single_vertex_path():
    assert sample_at_distance([SHIBUYA], 500) == SHIBUYA


def test_sample_skips_zero_length_segments():
    path = [TOKYO_STATION, TOKYO_STATION, SHIBUYA]
    length = path_length(path)
    mid = sample_at_distance(path, length / 2)
    assert haversine_distance(TOKYO_STATION, mid) == pytest.approx(length / 2, rel=1e-3)


def test_polygon_centroid_is_vertex_mean():
    ring = [[139.0, 35.0], [139.2, 35.0], [139.2, 35.2], [139.0, 35.2]]
    center = polygon_centroid(ring)
    assert center.lat == pytest.approx(35.1)
    assert center.lng == pytest.approx(139.1)
