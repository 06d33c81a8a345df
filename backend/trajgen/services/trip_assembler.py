"""Trip assembly: route + average speed -> timestamped point sequence."""

import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from trajgen.core.config import settings
from trajgen.core.errors import GenerationFailure
from trajgen.models.database import Trip
from trajgen.services.geo import LatLng, sample_at_distance
from trajgen.services.point_synth import DeviceInfo, GeneratedPoint, PointSynthesizer
from trajgen.services.routing import Route


@dataclass
class GenerationConfig:
    interval_sec: int = 10
    avg_speed_kmh: float = 40.0
    break_minutes: int = 0
    min_accuracy: float = 3.0
    max_accuracy: float = 20.0
    outlier_rate: float = 0.0  # percent

    def validate(self):
        if self.interval_sec <= 0:
            raise GenerationFailure(f"Interval must be positive, got {self.interval_sec}")
        if self.avg_speed_kmh <= 0:
            raise GenerationFailure(f"Average speed must be positive, got {self.avg_speed_kmh}")
        if self.break_minutes < 0:
            raise GenerationFailure(f"Break time cannot be negative, got {self.break_minutes}")
        if self.min_accuracy < 0 or self.min_accuracy > self.max_accuracy:
            raise GenerationFailure(
                f"Invalid accuracy range {self.min_accuracy}-{self.max_accuracy} m"
            )
        if not 0 <= self.outlier_rate <= 100:
            raise GenerationFailure(f"Outlier rate must be within 0-100%, got {self.outlier_rate}")

    def as_settings(self) -> dict:
        """Shape stored in Trip.generation_settings."""
        return {
            "interval": self.interval_sec,
            "avg_speed": self.avg_speed_kmh,
            "break_time": self.break_minutes,
            "min_accuracy": self.min_accuracy,
            "max_accuracy": self.max_accuracy,
            "outlier_rate": self.outlier_rate,
        }


@dataclass
class AssembledTrip:
    """Trip summary plus its generated points, not yet persisted."""
    origin: LatLng
    destination: LatLng
    distance_meters: float
    config: GenerationConfig
    device: DeviceInfo
    points: List[GeneratedPoint] = field(default_factory=list)

    @property
    def start_time(self) -> datetime:
        return self.points[0].positioning_timestamp

    @property
    def end_time(self) -> datetime:
        return self.points[-1].positioning_timestamp

    @property
    def point_count(self) -> int:
        return len(self.points)

    def to_trip(
        self,
        vehicle_id: int,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
        is_connecting_trip: bool = False,
    ) -> Trip:
        return Trip(
            vehicle_id=vehicle_id,
            imei=self.device.imei,
            serial_no=self.device.serial_no,
            origin_lat=self.origin.lat,
            origin_lng=self.origin.lng,
            origin_name=origin_name,
            destination_lat=self.destination.lat,
            destination_lng=self.destination.lng,
            destination_name=destination_name,
            distance_meters=self.distance_meters,
            start_time=self.start_time,
            end_time=self.end_time,
            point_count=self.point_count,
            generation_settings=self.config.as_settings(),
            is_connecting_trip=is_connecting_trip,
            created_at=datetime.utcnow(),
        )


class TripAssembler:
    """Walks a route at a target speed and emits noisy fixes.

    Algorithm:
    1. travel time = distance / avg speed; samples = ceil(travel / interval).
    2. For i in 0..samples: true position at (i / samples) of the route
       distance, one fix per interval.
    3. With a break configured, after one random fix in [5, samples - 10)
       insert a stationary cluster (60 s spacing, 10 m radius).
    4. Append an arrival stay of 15-60 minutes at the destination.
    """

    def __init__(self, rng: Optional[random.Random] = None, synthesizer: Optional[PointSynthesizer] = None):
        self.rng = rng or random.Random()
        self.synthesizer = synthesizer or PointSynthesizer(self.rng)

    def assemble(
        self,
        route: Route,
        start_time: datetime,
        config: GenerationConfig,
        device: DeviceInfo,
        origin: Optional[LatLng] = None,
        destination: Optional[LatLng] = None,
    ) -> AssembledTrip:
        config.validate()
        if len(route.path) < 2:
            raise GenerationFailure("Route needs at least two vertices")
        if route.distance_meters <= 0:
            raise GenerationFailure(f"Route distance must be positive, got {route.distance_meters}")

        travel_seconds = (route.distance_meters / 1000) / config.avg_speed_kmh * 3600
        total_samples = math.ceil(travel_seconds / config.interval_sec)
        break_index = self._pick_break_index(total_samples, config.break_minutes)

        synth = self.synthesizer
        points: List[GeneratedPoint] = []
        current_time = start_time
        interval = timedelta(seconds=config.interval_sec)

        for i in range(total_samples + 1):
            position = sample_at_distance(route.path, (i / total_samples) * route.distance_meters)
            point = synth.moving_point(
                position,
                current_time,
                config.min_accuracy,
                config.max_accuracy,
                config.outlier_rate,
                config.avg_speed_kmh,
                previous=points[-1] if points else None,
                device=device,
            )
            points.append(point)
            current_time += interval

            if i == break_index:
                current_time = self._add_break(points, point, current_time, config.break_minutes, device)

        destination = destination or route.path[-1]
        self._add_arrival_stay(points, destination, current_time, config, device)

        return AssembledTrip(
            origin=origin or route.path[0],
            destination=destination,
            distance_meters=route.distance_meters,
            config=config,
            device=device,
            points=points,
        )

    def _pick_break_index(self, total_samples: int, break_minutes: int) -> Optional[int]:
        if break_minutes <= 0:
            return None
        low, high = 5, total_samples - 10
        if high <= low:
            return None
        return self.rng.randrange(low, high)

    def _add_break(self, points, anchor: GeneratedPoint, current_time, break_minutes, device) -> datetime:
        step = timedelta(seconds=settings.CLUSTER_INTERVAL_SEC)
        count = math.ceil(break_minutes * 60 / settings.CLUSTER_INTERVAL_SEC)
        center = anchor.position
        accuracy = anchor.hdop * 5

        for _ in range(count):
            points.append(
                self.synthesizer.stationary_point(
                    center, current_time, settings.CLUSTER_RADIUS_M, accuracy, device, is_break=True
                )
            )
            current_time += step
        return current_time

    def _add_arrival_stay(self, points, destination: LatLng, current_time, config: GenerationConfig, device):
        stay_minutes = self.rng.randint(settings.ARRIVAL_STAY_MIN_MIN, settings.ARRIVAL_STAY_MAX_MIN)
        step = timedelta(seconds=settings.CLUSTER_INTERVAL_SEC)
        count = math.ceil(stay_minutes * 60 / settings.CLUSTER_INTERVAL_SEC)

        for _ in range(count):
            accuracy = self.synthesizer.draw_accuracy(config.min_accuracy, config.max_accuracy)
            points.append(
                self.synthesizer.stationary_point(
                    destination,
                    current_time,
                    settings.CLUSTER_RADIUS_M,
                    accuracy,
                    device,
                    direction=self.rng.random() * 360,
                    is_arrival_stay=True,
                )
            )
            current_time += step
        return current_time
