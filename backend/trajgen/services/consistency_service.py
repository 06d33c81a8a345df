"""Consistency check and repair for one vehicle's chronological trip sequence.

Analysis looks at consecutive trip pairs for two independent problems:
the earlier trip ending after the next one starts (time overlap), and the
earlier trip's destination being far from the next trip's origin (location gap).

Repair runs two passes, gaps first:

* gap pass: route from the earlier destination to the next origin and insert
  a connecting trip starting when the earlier trip ends (plus the shift carried
  from the previous connecting trip). If it would cross midnight or still end
  after the next trip starts, the earlier trip is deleted instead.
* overlap pass: walk the refreshed trip list accumulating a shift; each
  overlapping trip is pushed back by overlap + 30 min buffer. A trip the shift
  would move to another calendar day is deleted and the shift resets.

One repair does not guarantee a clean result; callers re-run analysis and may
repair again.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.core.config import settings
from trajgen.core.errors import RoutingFailure
from trajgen.core.timeutils import same_day
from trajgen.models.database import Trip
from trajgen.services.geo import LatLng, haversine_distance
from trajgen.services.master_data import device_for_trip
from trajgen.services.routing import Router
from trajgen.services.trip_assembler import GenerationConfig, TripAssembler
from trajgen.services.trip_store import TripStore

logger = logging.getLogger(__name__)


class IssueType(str, Enum):
    TIME_OVERLAP = "time_overlap"
    LOCATION_GAP = "location_gap"


@dataclass
class ConsistencyIssue:
    type: IssueType
    from_trip: Trip
    to_trip: Trip
    metric: float  # overlap seconds or gap meters
    message: str

    @property
    def from_location(self) -> LatLng:
        return LatLng(self.from_trip.destination_lat, self.from_trip.destination_lng)

    @property
    def to_location(self) -> LatLng:
        return LatLng(self.to_trip.origin_lat, self.to_trip.origin_lng)


class TripState(str, Enum):
    PENDING = "pending"
    REPAIRED = "repaired"
    DELETED = "deleted"


@dataclass
class RepairResult:
    connecting_trips_created: int = 0
    trips_shifted: int = 0
    trips_deleted: int = 0
    deleted_trip_ids: List[int] = field(default_factory=list)
    remaining_issues: List[ConsistencyIssue] = field(default_factory=list)


def connecting_trip_config() -> GenerationConfig:
    return GenerationConfig(
        interval_sec=settings.CONNECT_INTERVAL_SEC,
        avg_speed_kmh=settings.CONNECT_AVG_SPEED_KMH,
        break_minutes=0,
        min_accuracy=settings.CONNECT_MIN_ACCURACY_M,
        max_accuracy=settings.CONNECT_MAX_ACCURACY_M,
        outlier_rate=0,
    )


def analyze_trips(trips: Sequence[Trip], gap_threshold_m: Optional[float] = None) -> List[ConsistencyIssue]:
    """Issues between consecutive trips, in chronological order."""
    threshold = settings.CONSISTENCY_GAP_THRESHOLD_M if gap_threshold_m is None else gap_threshold_m
    ordered = sorted(trips, key=lambda t: (t.start_time, t.id or 0))

    issues: List[ConsistencyIssue] = []
    for current, nxt in zip(ordered, ordered[1:]):
        if current.end_time > nxt.start_time:
            overlap = (current.end_time - nxt.start_time).total_seconds()
            issues.append(ConsistencyIssue(
                type=IssueType.TIME_OVERLAP,
                from_trip=current,
                to_trip=nxt,
                metric=overlap,
                message=f"Trip #{current.id} ends after Trip #{nxt.id} starts",
            ))

        gap = haversine_distance(
            LatLng(current.destination_lat, current.destination_lng),
            LatLng(nxt.origin_lat, nxt.origin_lng),
        )
        if gap > threshold:
            issues.append(ConsistencyIssue(
                type=IssueType.LOCATION_GAP,
                from_trip=current,
                to_trip=nxt,
                metric=gap,
                message=f"Gap of {gap / 1000:.2f}km between trips #{current.id} → #{nxt.id}",
            ))

    return issues


class ConsistencyService:
    """Analyze and repair one vehicle's trips. Callers serialize per vehicle."""

    def __init__(self, session: AsyncSession, router: Optional[Router] = None, rng: Optional[random.Random] = None):
        self.session = session
        self.store = TripStore(session)
        self.router = router
        self.assembler = TripAssembler(rng)

    async def analyze(self, vehicle_id: int) -> List[ConsistencyIssue]:
        trips = await self.store.trips_for_vehicle(vehicle_id)
        return analyze_trips(trips)

    async def repair(self, vehicle_id: int) -> RepairResult:
        """Run the gap pass then the overlap pass, and re-analyze.

        A failure inside a pass propagates; steps already committed stay.
        """
        if self.router is None:
            raise RoutingFailure("Repair needs a router")

        trips = await self.store.trips_for_vehicle(vehicle_id)
        issues = analyze_trips(trips)
        states: Dict[int, TripState] = {t.id: TripState.PENDING for t in trips}
        result = RepairResult()

        gaps = [i for i in issues if i.type is IssueType.LOCATION_GAP]
        if gaps:
            await self._repair_gaps(gaps, states, result)
        await self._repair_overlaps(vehicle_id, states, result)

        result.remaining_issues = await self.analyze(vehicle_id)
        logger.info(
            "Repair for vehicle %s: %d connecting, %d shifted, %d deleted, %d issues remaining",
            vehicle_id, result.connecting_trips_created, result.trips_shifted,
            result.trips_deleted, len(result.remaining_issues),
        )
        return result

    async def _delete(self, trip: Trip, states: Dict[int, TripState], result: RepairResult, reason: str):
        await self.store.delete_trip(trip.id)
        states[trip.id] = TripState.DELETED
        result.trips_deleted += 1
        result.deleted_trip_ids.append(trip.id)
        logger.info("Deleted trip #%s (%s)", trip.id, reason)

    async def _repair_gaps(self, gaps: List[ConsistencyIssue], states: Dict[int, TripState], result: RepairResult):
        config = connecting_trip_config()
        cumulative_shift = timedelta(0)

        for issue in gaps:
            current, nxt = issue.from_trip, issue.to_trip
            if states.get(current.id) is TripState.DELETED or states.get(nxt.id) is TripState.DELETED:
                continue

            route = await self.router.route(issue.from_location, issue.to_location)
            start_time = current.end_time + cumulative_shift
            device = await device_for_trip(self.session, current)
            assembled = self.assembler.assemble(
                route, start_time, config, device, issue.from_location, issue.to_location
            )

            if not same_day(start_time, assembled.end_time) or assembled.end_time > nxt.start_time:
                await self._delete(current, states, result, "connecting trip does not fit before next trip")
                continue

            trip = assembled.to_trip(
                current.vehicle_id,
                origin_name=current.destination_name or "Auto-generated",
                destination_name=nxt.origin_name or "Auto-generated",
                is_connecting_trip=True,
            )
            await self.store.add_trip(trip, assembled.points)
            states[current.id] = TripState.REPAIRED
            states[trip.id] = TripState.REPAIRED
            result.connecting_trips_created += 1
            cumulative_shift = assembled.end_time - nxt.start_time
            logger.info(
                "Connecting trip #%s: #%s → #%s, %d points, %s - %s",
                trip.id, current.id, nxt.id, trip.point_count, trip.start_time, trip.end_time,
            )

    async def _repair_overlaps(self, vehicle_id: int, states: Dict[int, TripState], result: RepairResult):
        trips = await self.store.trips_for_vehicle(vehicle_id)
        buffer = timedelta(minutes=settings.OVERLAP_BUFFER_MIN)
        day_shift = timedelta(0)

        for current, nxt in zip(trips, trips[1:]):
            if states.get(current.id) is TripState.DELETED or states.get(nxt.id) is TripState.DELETED:
                continue

            original_start = nxt.start_time
            if current.end_time <= original_start + day_shift:
                continue

            day_shift += current.end_time - (original_start + day_shift) + buffer
            if not same_day(original_start, original_start + day_shift):
                await self._delete(nxt, states, result, "shift would cross midnight")
                day_shift = timedelta(0)
                continue

            await self.store.shift_trip(nxt, day_shift)
            states[nxt.id] = TripState.REPAIRED
            result.trips_shifted += 1
            logger.info("Shifted trip #%s by %s", nxt.id, day_shift)
