"""Database models for trajectory generation."""

import json
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, String, Float, DateTime, Boolean, ForeignKey, Text, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Device(Base):
    """GNSS tracker device (master data, read-only to the engine)."""
    __tablename__ = "devices"

    serial_no = Column(String(64), primary_key=True)
    imei = Column(String(32), index=True)
    device_model = Column(String(255))
    fw_version = Column(String(64))
    status = Column(String(32), default="active")

    def __repr__(self):
        return f"<Device(serial_no={self.serial_no}, imei={self.imei})>"


class Vehicle(Base):
    """Vehicle that carries a deployed device."""
    __tablename__ = "vehicles"

    vehicle_id = Column(Integer, primary_key=True)
    vehicle_name = Column(String(255))
    vehicle_number = Column(String(64))
    vehicle_type = Column(String(64))

    def __repr__(self):
        return f"<Vehicle(vehicle_id={self.vehicle_id}, name={self.vehicle_name})>"


class Deployment(Base):
    """Device installed in a vehicle."""
    __tablename__ = "deployments"

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.vehicle_id"), nullable=False, index=True)
    serial_no = Column(String(64), ForeignKey("devices.serial_no"), nullable=False)
    deploy_date = Column(DateTime)
    delete_flag = Column(Boolean, default=False)

    def __repr__(self):
        return f"<Deployment(id={self.id}, vehicle={self.vehicle_id}, serial_no={self.serial_no})>"


class Geofence(Base):
    """Named polygonal area; its centroid is the routing endpoint."""
    __tablename__ = "geofences"

    id = Column(Integer, primary_key=True)
    geofence_name = Column(String(255), nullable=False)
    geofence = Column(Text, nullable=False)  # GeoJSON Polygon, [lng, lat] pairs
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def ring(self):
        geo = json.loads(self.geofence) if isinstance(self.geofence, str) else self.geofence
        return geo["coordinates"][0]

    def __repr__(self):
        return f"<Geofence(id={self.id}, name={self.geofence_name})>"


class Trip(Base):
    """Generated vehicle journey; owns its GNSS points."""
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, nullable=False, index=True)
    imei = Column(BigInteger, default=0)
    serial_no = Column(String(64), default="")

    # Origin
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    origin_name = Column(String(255))

    # Destination
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_name = Column(String(255))

    distance_meters = Column(Float, default=0)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    point_count = Column(Integer, default=0)

    # interval, avg_speed, break_time, min_accuracy, max_accuracy, outlier_rate
    generation_settings = Column(JSON)
    is_connecting_trip = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_trips_vehicle_time", "vehicle_id", "start_time"),
    )

    def __repr__(self):
        return f"<Trip(id={self.id}, vehicle={self.vehicle_id}, start={self.start_time}, end={self.end_time})>"


class GnssPoint(Base):
    """One simulated device fix."""
    __tablename__ = "gnss_points"

    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), index=True)

    device_timestamp = Column(DateTime, nullable=False)
    received_timestamp = Column(DateTime, nullable=False)
    positioning_timestamp = Column(DateTime, nullable=False, index=True)
    imei = Column(BigInteger, index=True)
    gps_status = Column(String(16), nullable=False)  # VALID / LOW_ACCURACY
    gps_time = Column(Float)  # epoch seconds of positioning_timestamp

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    altitude = Column(Float)
    speed = Column(Float)  # km/h
    direction = Column(Float)  # degrees 0-360
    hdop = Column(Float)

    # Telemetry that is not simulated; always NULL
    authentication_status = Column(String(32))
    base_info = Column(Text)
    lte_rssi = Column(Float)
    mmri_score = Column(Float)
    mmri_base = Column(Float)
    mmri_presence = Column(Float)
    mmri_synergy = Column(Float)
    mmri_auth_boost = Column(Float)
    cellular_latitude = Column(Float)
    cellular_longitude = Column(Float)
    cellular_accuracy = Column(Float)
    cellular_mcc = Column(Integer)
    cellular_mnc = Column(Integer)
    cellular_lac_tac = Column(Integer)
    cellular_cell_id = Column(BigInteger)
    gnss_vs_cellular_distance = Column(Float)
    ekf_latitude = Column(Float)
    ekf_longitude = Column(Float)
    gnss_vs_ekf_distance = Column(Float)
    pdop = Column(Float)
    vdop = Column(Float)
    tracking_satellites = Column(Integer)
    used_satellites = Column(Integer)
    authenticated_satellites = Column(Integer)
    uptime = Column(BigInteger)
    free_heap = Column(BigInteger)
    nmea_checksum_error_count = Column(Integer)
    modem_error_count = Column(Integer)
    modem_reconnect_count = Column(Integer)
    imu_error_count = Column(Integer)
    last_reset_reason = Column(String(64))

    fw_version = Column(String(64))
    delete_flag = Column(Boolean, default=False)

    __table_args__ = (
        Index("ix_gnss_points_trip_time", "trip_id", "positioning_timestamp"),
    )

    def __repr__(self):
        return f"<GnssPoint(id={self.id}, trip={self.trip_id}, lat={self.latitude}, lng={self.longitude})>"
