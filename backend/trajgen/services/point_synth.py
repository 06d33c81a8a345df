"""Single GNSS fix synthesis.

Every generation path (single trip, batch, connecting trip) builds its points
through ``PointSynthesizer`` so they share one noise policy:

* accuracy ~ U(min, max) meters; with probability ``outlier_rate``% it is
  replaced by U(100, 2000) and the fix is marked LOW_ACCURACY,
* the reported position is the true position offset by up to ``accuracy``,
* ``hdop = accuracy / 5``, ``altitude = 10 + U(0, 50)``,
* speed is 0 on the first fix, otherwise ``avg_speed ± 5`` km/h,
* direction is 0 on the first fix, otherwise the bearing from the previous fix,
* ``received_timestamp`` trails the device time by up to one second.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from trajgen.core.config import settings
from trajgen.core.timeutils import epoch_seconds
from trajgen.services.geo import LatLng, bearing, random_offset


class GpsStatus(str, Enum):
    VALID = "VALID"
    LOW_ACCURACY = "LOW_ACCURACY"


@dataclass(frozen=True)
class DeviceInfo:
    """Identity fields copied onto every point."""
    imei: int = 0
    fw_version: Optional[str] = None
    serial_no: str = ""


@dataclass
class GeneratedPoint:
    device_timestamp: datetime
    received_timestamp: datetime
    positioning_timestamp: datetime
    imei: int
    gps_status: GpsStatus
    latitude: float
    longitude: float
    altitude: float
    speed: float
    direction: float
    hdop: float
    fw_version: Optional[str] = None
    # Generation-only classification, never persisted
    is_outlier: bool = field(default=False, compare=False)
    is_break: bool = field(default=False, compare=False)
    is_arrival_stay: bool = field(default=False, compare=False)

    @property
    def position(self) -> LatLng:
        return LatLng(self.latitude, self.longitude)

    @property
    def gps_time(self) -> float:
        return epoch_seconds(self.positioning_timestamp)

    def to_record(self) -> dict:
        """Column values for a stored GnssPoint (transient flags stripped)."""
        return {
            "device_timestamp": self.device_timestamp,
            "received_timestamp": self.received_timestamp,
            "positioning_timestamp": self.positioning_timestamp,
            "imei": self.imei,
            "gps_status": self.gps_status.value,
            "gps_time": self.gps_time,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude": self.altitude,
            "speed": self.speed,
            "direction": self.direction,
            "hdop": self.hdop,
            "fw_version": self.fw_version,
            "delete_flag": False,
        }


class PointSynthesizer:
    """Produces noisy fixes around true positions using an injected RNG."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def draw_accuracy(self, min_accuracy: float, max_accuracy: float) -> float:
        return self.rng.uniform(min_accuracy, max_accuracy)

    def moving_point(
        self,
        center: LatLng,
        timestamp: datetime,
        min_accuracy: float,
        max_accuracy: float,
        outlier_rate: float,
        avg_speed: float,
        previous: Optional[GeneratedPoint],
        device: DeviceInfo,
    ) -> GeneratedPoint:
        accuracy = self.draw_accuracy(min_accuracy, max_accuracy)
        is_outlier = False
        if outlier_rate > 0 and self.rng.random() * 100 < outlier_rate:
            accuracy = self.rng.uniform(settings.OUTLIER_MIN_M, settings.OUTLIER_MAX_M)
            is_outlier = True

        position = random_offset(center, accuracy, self.rng)

        if previous is None:
            speed = 0.0
            direction = 0.0
        else:
            speed = avg_speed + self.rng.uniform(-5, 5)
            direction = bearing(previous.position, position)

        return self._point(
            position,
            timestamp,
            device,
            speed=speed,
            direction=direction,
            hdop=accuracy / 5,
            status=GpsStatus.LOW_ACCURACY if is_outlier else GpsStatus.VALID,
            is_outlier=is_outlier,
        )

    def stationary_point(
        self,
        center: LatLng,
        timestamp: datetime,
        radius: float,
        accuracy: float,
        device: DeviceInfo,
        direction: float = 0.0,
        is_break: bool = False,
        is_arrival_stay: bool = False,
    ) -> GeneratedPoint:
        """Parked fix scattered within ``radius`` of ``center``; speed is always 0."""
        position = random_offset(center, radius, self.rng)
        return self._point(
            position,
            timestamp,
            device,
            speed=0.0,
            direction=direction,
            hdop=accuracy / 5,
            status=GpsStatus.VALID,
            is_break=is_break,
            is_arrival_stay=is_arrival_stay,
        )

    def _point(self, position, timestamp, device, speed, direction, hdop, status, **flags) -> GeneratedPoint:
        return GeneratedPoint(
            device_timestamp=timestamp,
            received_timestamp=timestamp + timedelta(seconds=self.rng.random()),
            positioning_timestamp=timestamp,
            imei=device.imei,
            gps_status=status,
            latitude=position.lat,
            longitude=position.lng,
            altitude=10 + self.rng.random() * 50,
            speed=speed,
            direction=direction,
            hdop=hdop,
            fw_version=device.fw_version,
            **flags,
        )
