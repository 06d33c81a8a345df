"""Batch trajectory generation across a date range for one vehicle."""

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.core.config import settings
from trajgen.core.errors import GenerationFailure, TrajgenError
from trajgen.core.timeutils import at_time
from trajgen.services.master_data import GeofenceSite, VehicleContext, require_geofences
from trajgen.services.routing import Router
from trajgen.services.trip_assembler import GenerationConfig, TripAssembler
from trajgen.services.trip_service import TripService

logger = logging.getLogger(__name__)

BREAK_CHOICES = (0, 10, 20, 30)


@dataclass
class BatchStats:
    days: int = 0
    trips: int = 0
    points: int = 0
    errors: int = 0
    slots_done: int = 0
    slots_total: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class BatchSession:
    """Context of one batch run: running totals and the cooperative stop flag.

    Stop requests are honoured between trip slots only; trips already saved stay.
    """

    def __init__(self):
        self.stats = BatchStats()
        self.state = "pending"  # pending, running, stopped, completed, failed
        self.error: Optional[str] = None
        self._stop_requested = False

    def request_stop(self):
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested


@dataclass(frozen=True)
class BatchPreset:
    """Fixed generation settings for batch runs."""
    interval_sec: int = settings.BATCH_INTERVAL_SEC
    min_accuracy: float = settings.BATCH_MIN_ACCURACY_M
    max_accuracy: float = settings.BATCH_MAX_ACCURACY_M
    outlier_rate: float = settings.BATCH_OUTLIER_RATE
    first_start_hour: int = settings.BATCH_FIRST_START_HOUR
    last_start_hour: int = settings.BATCH_LAST_START_HOUR
    day_cutoff_hour: int = settings.BATCH_DAY_CUTOFF_HOUR
    min_gap_min: int = settings.BATCH_MIN_GAP_MIN
    max_gap_min: int = settings.BATCH_MAX_GAP_MIN
    min_speed_kmh: int = settings.BATCH_MIN_SPEED_KMH
    max_speed_kmh: int = settings.BATCH_MAX_SPEED_KMH
    trip_delay_sec: float = settings.BATCH_TRIP_DELAY_SEC


ProgressCallback = Callable[[BatchStats], object]


class BatchScheduler:
    """Generates ``trips_per_day`` trips per calendar day without same-day overlap.

    Per slot:
    - origin/destination are two distinct random geofences,
    - the first trip starts in the morning window, later trips start
      30-120 minutes after the previous trip actually ended,
    - a start at or after the cutoff hour (or on the next day) ends the day,
    - break time and average speed are randomised per trip,
    - a failed trip counts as an error and the run continues.
    """

    def __init__(
        self,
        router: Router,
        rng: Optional[random.Random] = None,
        preset: Optional[BatchPreset] = None,
    ):
        self.router = router
        self.rng = rng or random.Random()
        self.preset = preset or BatchPreset()
        self.assembler = TripAssembler(self.rng)

    async def run(
        self,
        session: AsyncSession,
        vehicle: VehicleContext,
        date_from: date,
        date_to: date,
        trips_per_day: int,
        geofences: List[GeofenceSite],
        batch: Optional[BatchSession] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchStats:
        batch = batch or BatchSession()
        require_geofences(geofences)
        if date_from > date_to:
            raise GenerationFailure("Start date must be before end date")
        if trips_per_day < 1:
            raise GenerationFailure("Trips per day must be at least 1")

        stats = batch.stats
        total_days = (date_to - date_from).days + 1
        stats.slots_total = total_days * trips_per_day
        batch.state = "running"
        logger.info(
            "Starting batch generation: %d days, %d trips/day = %d trips",
            total_days, trips_per_day, stats.slots_total,
        )

        day = date_from
        while day <= date_to and not batch.stop_requested:
            stats.days += 1
            logger.info("Processing %s...", day.isoformat())
            await self._run_day(session, vehicle, day, trips_per_day, geofences, batch, on_progress)
            day += timedelta(days=1)

        if batch.stop_requested:
            batch.state = "stopped"
            logger.info("Generation stopped by user")
        else:
            batch.state = "completed"
            logger.info("Completed! %d trips, %d points generated", stats.trips, stats.points)
        return stats

    async def _run_day(self, session, vehicle, day, trips_per_day, geofences, batch, on_progress):
        stats = batch.stats
        last_end: Optional[datetime] = None

        for t in range(trips_per_day):
            if batch.stop_requested:
                return

            start_time = self._start_time(day, last_end)
            if start_time is None:
                logger.info("    Skipping remaining trips (too late in the day)")
                stats.slots_done += trips_per_day - t
                await _notify(on_progress, stats)
                return

            origin, destination = self._pick_pair(geofences)
            config = GenerationConfig(
                interval_sec=self.preset.interval_sec,
                avg_speed_kmh=self.rng.randint(self.preset.min_speed_kmh, self.preset.max_speed_kmh),
                break_minutes=self.rng.choice(BREAK_CHOICES),
                min_accuracy=self.preset.min_accuracy,
                max_accuracy=self.preset.max_accuracy,
                outlier_rate=self.preset.outlier_rate,
            )
            logger.info(
                "  Trip %d (%s): %s → %s", t + 1, start_time.strftime("%H:%M"), origin.name, destination.name
            )

            try:
                route = await self.router.route(origin.center, destination.center)
                assembled = self.assembler.assemble(
                    route, start_time, config, vehicle.device, origin.center, destination.center
                )
                await TripService.save_generated_trip(
                    session, assembled, vehicle.vehicle_id, origin.name, destination.name
                )
            except TrajgenError as e:
                stats.errors += 1
                logger.warning("    ✗ %s", e)
            else:
                stats.trips += 1
                stats.points += assembled.point_count
                last_end = assembled.end_time
                logger.info(
                    "    ✓ Generated %d points (ended %s)", assembled.point_count, last_end.strftime("%H:%M")
                )

            stats.slots_done += 1
            await _notify(on_progress, stats)
            # checkpoint: yields to the loop so progress and stop requests get through
            await asyncio.sleep(self.preset.trip_delay_sec)

    def _start_time(self, day: date, last_end: Optional[datetime]) -> Optional[datetime]:
        """Slot start, or None when the day has no room left."""
        if last_end is None:
            hour = self.rng.randrange(self.preset.first_start_hour, self.preset.last_start_hour)
            return at_time(day, hour, self.rng.randrange(60))

        gap = self.rng.randint(self.preset.min_gap_min, self.preset.max_gap_min)
        start = last_end + timedelta(minutes=gap)
        if start.date() != day or start.hour >= self.preset.day_cutoff_hour:
            return None
        return start

    def _pick_pair(self, geofences: List[GeofenceSite]) -> Tuple[GeofenceSite, GeofenceSite]:
        origin_idx = self.rng.randrange(len(geofences))
        dest_idx = self.rng.randrange(len(geofences))
        while dest_idx == origin_idx and len(geofences) > 1:
            dest_idx = self.rng.randrange(len(geofences))
        return geofences[origin_idx], geofences[dest_idx]


async def _notify(callback: Optional[ProgressCallback], stats: BatchStats):
    if callback is None:
        return
    result = callback(stats)
    if inspect.isawaitable(result):
        await result
