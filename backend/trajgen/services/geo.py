"""Geometric primitives and arc-length sampling along a route polyline."""

import math
import random
from dataclasses import dataclass
from typing import Sequence

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE = 111320.0  # flat-earth conversion used for small offsets


@dataclass(frozen=True)
class LatLng:
    """WGS84 position in decimal degrees."""
    lat: float
    lng: float


def haversine_distance(a: LatLng, b: LatLng) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)

    h = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def interpolate(a: LatLng, b: LatLng, fraction: float) -> LatLng:
    """Linear interpolation of lat and lng independently."""
    return LatLng(
        lat=a.lat + (b.lat - a.lat) * fraction,
        lng=a.lng + (b.lng - a.lng) * fraction,
    )


def bearing(origin: LatLng, target: LatLng) -> float:
    """Initial compass bearing in degrees [0, 360); 0 for identical points."""
    if origin == target:
        return 0.0
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(target.lat)
    d_lng = math.radians(target.lng - origin.lng)

    x = math.sin(d_lng) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lng)
    return (math.degrees(math.atan2(x, y)) + 360) % 360


def random_offset(point: LatLng, max_meters: float, rng: random.Random) -> LatLng:
    """Displace a point by a uniform random bearing and a uniform [0, max] magnitude.

    Uniform (not Gaussian) magnitude keeps the worst case bounded by ``max_meters``.
    """
    angle = rng.random() * 2 * math.pi
    dist = rng.random() * max_meters

    lat_offset = (dist * math.cos(angle)) / METERS_PER_DEGREE
    lng_offset = (dist * math.sin(angle)) / (METERS_PER_DEGREE * math.cos(math.radians(point.lat)))
    return LatLng(lat=point.lat + lat_offset, lng=point.lng + lng_offset)


def path_length(path: Sequence[LatLng]) -> float:
    return sum(haversine_distance(path[i], path[i + 1]) for i in range(len(path) - 1))


def sample_at_distance(path: Sequence[LatLng], target_distance: float) -> LatLng:
    """Point at ``target_distance`` meters along ``path``.

    Distances at or below zero give the first vertex, distances past the end
    are clamped to the last vertex. A single-vertex path always returns it.
    """
    if target_distance <= 0 or len(path) == 1:
        return path[0]

    accumulated = 0.0
    for i in range(len(path) - 1):
        segment = haversine_distance(path[i], path[i + 1])
        if segment > 0 and accumulated + segment >= target_distance:
            return interpolate(path[i], path[i + 1], (target_distance - accumulated) / segment)
        accumulated += segment

    return path[-1]


def polygon_centroid(ring: Sequence[Sequence[float]]) -> LatLng:
    """Arithmetic mean of GeoJSON ring vertices ([lng, lat] pairs)."""
    lat = sum(c[1] for c in ring) / len(ring)
    lng = sum(c[0] for c in ring) / len(ring)
    return LatLng(lat=lat, lng=lng)
