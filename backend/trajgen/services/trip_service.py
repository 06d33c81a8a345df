"""Single-trip generation and trip management service."""

import logging
import random
from datetime import datetime
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.core.errors import NotFoundError
from trajgen.models.database import Trip, GnssPoint
from trajgen.services.geo import LatLng
from trajgen.services.master_data import resolve_vehicle
from trajgen.services.point_synth import DeviceInfo
from trajgen.services.routing import Route, Router
from trajgen.services.trip_assembler import AssembledTrip, GenerationConfig, TripAssembler
from trajgen.services.trip_store import TripStore

logger = logging.getLogger(__name__)


class TripService:
    """Service for generating, saving and deleting trips."""

    @staticmethod
    def generate_single_trip(
        route: Route,
        start_time: datetime,
        config: GenerationConfig,
        device: DeviceInfo,
        origin: Optional[LatLng] = None,
        destination: Optional[LatLng] = None,
        rng: Optional[random.Random] = None,
    ) -> AssembledTrip:
        """Assemble one trip; raises GenerationFailure without side effects."""
        return TripAssembler(rng).assemble(route, start_time, config, device, origin, destination)

    @staticmethod
    async def save_generated_trip(
        session: AsyncSession,
        assembled: AssembledTrip,
        vehicle_id: int,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
        is_connecting_trip: bool = False,
    ) -> Trip:
        trip = assembled.to_trip(vehicle_id, origin_name, destination_name, is_connecting_trip)
        await TripStore(session).add_trip(trip, assembled.points)
        logger.info(
            "Saved trip #%s for vehicle %s: %s points, %s -> %s",
            trip.id, vehicle_id, trip.point_count, trip.start_time, trip.end_time,
        )
        return trip

    @staticmethod
    async def generate_trip(
        session: AsyncSession,
        router: Router,
        vehicle_id: int,
        origin: LatLng,
        destination: LatLng,
        start_time: datetime,
        config: GenerationConfig,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
        rng: Optional[random.Random] = None,
        persist: bool = True,
    ):
        """Route, assemble and (optionally) persist one trip for a deployed vehicle.

        Returns ``(assembled, trip)``; ``trip`` is None when not persisted.
        """
        vehicle = await resolve_vehicle(session, vehicle_id)
        route = await router.route(origin, destination)
        assembled = TripService.generate_single_trip(
            route, start_time, config, vehicle.device, origin, destination, rng
        )

        trip = None
        if persist:
            trip = await TripService.save_generated_trip(
                session, assembled, vehicle_id, origin_name, destination_name
            )
        return assembled, trip

    @staticmethod
    async def get_trips(session: AsyncSession, vehicle_id: Optional[int] = None, limit: int = 100) -> List[Trip]:
        return await TripStore(session).list_trips(vehicle_id, limit)

    @staticmethod
    async def get_trip(session: AsyncSession, trip_id: int) -> Trip:
        trip = await TripStore(session).get_trip(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {trip_id} not found")
        return trip

    @staticmethod
    async def get_trip_points(session: AsyncSession, trip_id: int) -> List[GnssPoint]:
        await TripService.get_trip(session, trip_id)
        return await TripStore(session).points_for_trip(trip_id)

    @staticmethod
    async def delete_trip(session: AsyncSession, trip_id: int) -> int:
        """Delete a trip together with its points."""
        await TripService.get_trip(session, trip_id)
        deleted = await TripStore(session).delete_trip(trip_id)
        logger.info("Deleted trip #%s (%s points)", trip_id, deleted)
        return deleted
