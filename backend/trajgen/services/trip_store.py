"""Trip / GNSS point persistence."""

import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from sqlalchemy import select, desc, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.core.errors import PersistenceFailure
from trajgen.core.timeutils import epoch_seconds
from trajgen.models.database import Trip, GnssPoint
from trajgen.services.point_synth import GeneratedPoint

logger = logging.getLogger(__name__)


class TripStore:
    """Keyed store for trips and the points they own.

    A trip and its points are always written together and deleted together.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_trip(self, trip: Trip, points: Sequence[GeneratedPoint]) -> Trip:
        """Insert a trip and its points in one commit."""
        try:
            self.session.add(trip)
            await self.session.flush()  # assigns trip.id
            self.session.add_all(
                GnssPoint(trip_id=trip.id, **p.to_record()) for p in points
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Failed to save trip: {e}") from e
        return trip

    async def get_trip(self, trip_id: int) -> Optional[Trip]:
        result = await self.session.execute(select(Trip).where(Trip.id == trip_id))
        return result.scalar_one_or_none()

    async def list_trips(self, vehicle_id: Optional[int] = None, limit: int = 100) -> List[Trip]:
        """Trips newest first, optionally for one vehicle."""
        query = select(Trip)
        if vehicle_id:
            query = query.where(Trip.vehicle_id == vehicle_id)
        query = query.order_by(desc(Trip.start_time)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def trips_for_vehicle(self, vehicle_id: int) -> List[Trip]:
        """All trips of a vehicle in chronological order."""
        result = await self.session.execute(
            select(Trip)
            .where(Trip.vehicle_id == vehicle_id)
            .order_by(Trip.start_time, Trip.id)
        )
        return list(result.scalars().all())

    async def points_for_trip(self, trip_id: int) -> List[GnssPoint]:
        result = await self.session.execute(
            select(GnssPoint)
            .where(GnssPoint.trip_id == trip_id)
            .order_by(GnssPoint.positioning_timestamp, GnssPoint.id)
        )
        return list(result.scalars().all())

    async def shift_trip(self, trip: Trip, delta: timedelta) -> int:
        """Move a trip and every owned point by ``delta``. Returns points updated."""
        try:
            trip.start_time = trip.start_time + delta
            trip.end_time = trip.end_time + delta

            points = await self.points_for_trip(trip.id)
            for point in points:
                point.device_timestamp = point.device_timestamp + delta
                point.received_timestamp = point.received_timestamp + delta
                point.positioning_timestamp = point.positioning_timestamp + delta
                point.gps_time = epoch_seconds(point.positioning_timestamp)

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Failed to shift trip #{trip.id}: {e}") from e
        return len(points)

    async def delete_trip(self, trip_id: int) -> int:
        """Delete a trip's points, then the trip. Returns points deleted."""
        try:
            result = await self.session.execute(
                delete(GnssPoint).where(GnssPoint.trip_id == trip_id)
            )
            await self.session.execute(delete(Trip).where(Trip.id == trip_id))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Failed to delete trip #{trip_id}: {e}") from e
        logger.debug("Deleted trip #%s with %s points", trip_id, result.rowcount)
        return result.rowcount
