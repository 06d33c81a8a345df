"""Read-only lookups over vehicles, deployments, devices and geofences."""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.core.errors import InsufficientInputFailure, NotFoundError
from trajgen.models.database import Device, Vehicle, Deployment, Geofence
from trajgen.services.geo import LatLng, polygon_centroid
from trajgen.services.point_synth import DeviceInfo


@dataclass(frozen=True)
class VehicleContext:
    """A vehicle together with the identity of its deployed device."""
    vehicle_id: int
    vehicle_name: Optional[str]
    vehicle_number: Optional[str]
    device: DeviceInfo


@dataclass(frozen=True)
class GeofenceSite:
    id: int
    name: str
    center: LatLng


def _device_info(device: Optional[Device], serial_no: str) -> DeviceInfo:
    if device is None:
        return DeviceInfo(imei=0, fw_version=None, serial_no=serial_no or "")
    try:
        imei = int(device.imei) if device.imei else 0
    except ValueError:
        imei = 0
    return DeviceInfo(imei=imei, fw_version=device.fw_version, serial_no=device.serial_no)


async def _active_deployment(session: AsyncSession, vehicle_id: int) -> Optional[Deployment]:
    result = await session.execute(
        select(Deployment)
        .where(
            Deployment.vehicle_id == vehicle_id,
            or_(Deployment.delete_flag.is_(False), Deployment.delete_flag.is_(None)),
        )
        .order_by(Deployment.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_vehicle(session: AsyncSession, vehicle_id: int) -> VehicleContext:
    """Vehicle plus device identity; requires an active deployment."""
    vehicle = (await session.execute(
        select(Vehicle).where(Vehicle.vehicle_id == vehicle_id)
    )).scalar_one_or_none()
    if vehicle is None:
        raise NotFoundError(f"Vehicle {vehicle_id} not found")

    deployment = await _active_deployment(session, vehicle_id)
    if deployment is None:
        raise InsufficientInputFailure(f"Vehicle {vehicle_id} has no device deployment")

    device = (await session.execute(
        select(Device).where(Device.serial_no == deployment.serial_no)
    )).scalar_one_or_none()

    return VehicleContext(
        vehicle_id=vehicle.vehicle_id,
        vehicle_name=vehicle.vehicle_name,
        vehicle_number=vehicle.vehicle_number,
        device=_device_info(device, deployment.serial_no),
    )


async def list_deployed_vehicles(session: AsyncSession) -> List[VehicleContext]:
    """Vehicles that can be used for generation."""
    vehicles = (await session.execute(select(Vehicle).order_by(Vehicle.vehicle_id))).scalars().all()
    contexts = []
    for vehicle in vehicles:
        try:
            contexts.append(await resolve_vehicle(session, vehicle.vehicle_id))
        except InsufficientInputFailure:
            continue
    return contexts


def to_site(geofence: Geofence) -> GeofenceSite:
    return GeofenceSite(
        id=geofence.id,
        name=geofence.geofence_name,
        center=polygon_centroid(geofence.ring),
    )


async def list_geofences(session: AsyncSession) -> List[GeofenceSite]:
    result = await session.execute(select(Geofence).order_by(Geofence.id))
    return [to_site(g) for g in result.scalars().all()]


async def get_geofence(session: AsyncSession, geofence_id: int) -> GeofenceSite:
    geofence = (await session.execute(
        select(Geofence).where(Geofence.id == geofence_id)
    )).scalar_one_or_none()
    if geofence is None:
        raise NotFoundError(f"Geofence {geofence_id} not found")
    return to_site(geofence)


def require_geofences(sites: List[GeofenceSite]):
    if len(sites) < 2:
        raise InsufficientInputFailure("At least 2 geofences are required")


async def device_for_trip(session: AsyncSession, trip) -> DeviceInfo:
    """Device identity recorded on a trip, with firmware from the device table."""
    device = None
    if trip.serial_no:
        device = (await session.execute(
            select(Device).where(Device.serial_no == trip.serial_no)
        )).scalar_one_or_none()
    return DeviceInfo(
        imei=trip.imei or 0,
        fw_version=device.fw_version if device else None,
        serial_no=trip.serial_no or "",
    )
