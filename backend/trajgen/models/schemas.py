"""Pydantic schemas for API requests/responses."""

from datetime import datetime, date
from typing import Optional, List
from pydantic import BaseModel, Field, model_validator


class LatLngIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# Master data schemas
class VehicleOut(BaseModel):
    vehicle_id: int
    vehicle_name: Optional[str]
    vehicle_number: Optional[str]
    imei: int
    serial_no: str
    fw_version: Optional[str]


class GeofenceOut(BaseModel):
    id: int
    name: str
    center_lat: float
    center_lng: float


# Generation schemas
class GenerationSettingsIn(BaseModel):
    interval: int = Field(10, gt=0, description="seconds between fixes")
    avg_speed: float = Field(40, gt=0, description="km/h")
    break_time: int = Field(0, ge=0, description="minutes")
    min_accuracy: float = Field(3, ge=0, description="meters")
    max_accuracy: float = Field(20, ge=0, description="meters")
    outlier_rate: float = Field(0, ge=0, le=100, description="percent")

    @model_validator(mode="after")
    def check_accuracy_range(self):
        if self.min_accuracy > self.max_accuracy:
            raise ValueError("min_accuracy must be <= max_accuracy")
        return self


class EndpointIn(BaseModel):
    """Route endpoint: a geofence (its centroid) or free coordinates."""
    geofence_id: Optional[int] = None
    position: Optional[LatLngIn] = None

    @model_validator(mode="after")
    def check_one_of(self):
        if (self.geofence_id is None) == (self.position is None):
            raise ValueError("Provide exactly one of geofence_id or position")
        return self


class GenerateTripRequest(BaseModel):
    vehicle_id: int
    origin: EndpointIn
    destination: EndpointIn
    start_time: datetime
    settings: GenerationSettingsIn = GenerationSettingsIn()
    seed: Optional[int] = None
    persist: bool = True


class GnssPointOut(BaseModel):
    id: Optional[int] = None
    trip_id: Optional[int] = None
    device_timestamp: datetime
    received_timestamp: datetime
    positioning_timestamp: datetime
    imei: int
    gps_status: str
    gps_time: float
    latitude: float
    longitude: float
    altitude: Optional[float]
    speed: Optional[float]
    direction: Optional[float]
    hdop: Optional[float]
    fw_version: Optional[str] = None
    # only present on points that were generated but not saved
    is_outlier: Optional[bool] = None
    is_break: Optional[bool] = None
    is_arrival_stay: Optional[bool] = None

    class Config:
        from_attributes = True


class TripOut(BaseModel):
    id: Optional[int] = None
    vehicle_id: int
    imei: int
    serial_no: Optional[str]
    origin_lat: float
    origin_lng: float
    origin_name: Optional[str]
    destination_lat: float
    destination_lng: float
    destination_name: Optional[str]
    distance_meters: float
    start_time: datetime
    end_time: datetime
    point_count: int
    generation_settings: Optional[dict] = None
    is_connecting_trip: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GeneratedTripOut(BaseModel):
    trip: TripOut
    points: List[GnssPointOut]


class DeleteTripOut(BaseModel):
    trip_id: int
    points_deleted: int


# Batch schemas
class BatchRequest(BaseModel):
    vehicle_id: int
    date_from: date
    date_to: date
    trips_per_day: int = Field(3, ge=1, le=20)
    seed: Optional[int] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.date_from > self.date_to:
            raise ValueError("date_from must be <= date_to")
        return self


class BatchStatsOut(BaseModel):
    days: int
    trips: int
    points: int
    errors: int
    slots_done: int
    slots_total: int


class BatchJobOut(BaseModel):
    job_id: int
    vehicle_id: int
    state: str
    error: Optional[str] = None
    stats: BatchStatsOut


# Consistency schemas
class ConsistencyIssueOut(BaseModel):
    type: str
    from_trip_id: int
    to_trip_id: int
    metric: float  # seconds for time_overlap, meters for location_gap
    message: str


class ConsistencyReport(BaseModel):
    vehicle_id: int
    trip_count: int
    issues: List[ConsistencyIssueOut]


class RepairOut(BaseModel):
    vehicle_id: int
    connecting_trips_created: int
    trips_shifted: int
    trips_deleted: int
    deleted_trip_ids: List[int]
    remaining_issues: List[ConsistencyIssueOut]


# WebSocket schemas
class WebSocketMessage(BaseModel):
    """Generic WS message."""
    type: str  # "batch_progress", "batch_finished"
    data: dict
