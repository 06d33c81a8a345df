"""Test doubles and builders shared by the test modules."""

import random
from datetime import datetime

from trajgen.core.errors import RoutingFailure
from trajgen.models.database import Trip
from trajgen.services.geo import LatLng, interpolate, path_length, haversine_distance
from trajgen.services.point_synth import DeviceInfo, PointSynthesizer
from trajgen.services.routing import Route
from trajgen.services.trip_assembler import GenerationConfig
from trajgen.services.trip_store import TripStore

TOKYO_STATION = LatLng(35.6812, 139.7671)
SHIBUYA = LatLng(35.6580, 139.7016)

DEVICE = DeviceInfo(imei=123456789012345, fw_version="1.4.2", serial_no="DEV-001")


def straight_route(origin: LatLng, destination: LatLng, vertices: int = 5) -> Route:
    path = [interpolate(origin, destination, i / (vertices - 1)) for i in range(vertices)]
    return Route(path=path, distance_meters=path_length(path))


class FakeRouter:
    """Straight-line router; records every request."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def route(self, origin: LatLng, destination: LatLng) -> Route:
        self.calls.append((origin, destination))
        if self.fail:
            raise RoutingFailure("Route calculation failed")
        return straight_route(origin, destination)


async def add_trip(
    session,
    origin: LatLng,
    destination: LatLng,
    start: datetime,
    end: datetime,
    vehicle_id: int = 1,
    origin_name: str = "Origin",
    destination_name: str = "Destination",
) -> Trip:
    """Store a trip with one fix at each end."""
    synth = PointSynthesizer(random.Random(0))
    points = [
        synth.stationary_point(origin, start, 0, 5, DEVICE),
        synth.stationary_point(destination, end, 0, 5, DEVICE),
    ]
    trip = Trip(
        vehicle_id=vehicle_id,
        imei=DEVICE.imei,
        serial_no=DEVICE.serial_no,
        origin_lat=origin.lat,
        origin_lng=origin.lng,
        origin_name=origin_name,
        destination_lat=destination.lat,
        destination_lng=destination.lng,
        destination_name=destination_name,
        distance_meters=haversine_distance(origin, destination),
        start_time=start,
        end_time=end,
        point_count=len(points),
        generation_settings=GenerationConfig().as_settings(),
        is_connecting_trip=False,
    )
    return await TripStore(session).add_trip(trip, points)


def at(hour: int, minute: int = 0, day: int = 3) -> datetime:
    return datetime(2024, 6, day, hour, minute)
