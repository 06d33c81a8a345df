"""Background batch jobs and per-vehicle serialization."""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Optional

from trajgen.api.websocket import ws_manager
from trajgen.core.config import settings
from trajgen.core.errors import TrajgenError
from trajgen.services.batch_service import BatchScheduler, BatchSession, BatchPreset
from trajgen.services.master_data import resolve_vehicle, list_geofences
from trajgen.services.routing import Router

logger = logging.getLogger(__name__)

FINISHED_STATES = ("completed", "stopped", "failed")


@dataclass
class BatchJob:
    job_id: int
    vehicle_id: int
    session: BatchSession = field(default_factory=BatchSession)
    task: Optional[asyncio.Task] = None


class BatchJobRegistry:
    """Tracks batch jobs of this process and holds one lock per vehicle.

    Generation and repair for the same vehicle never run at the same time.
    """

    def __init__(self, preset: Optional[BatchPreset] = None, retain_finished: Optional[int] = None):
        self.preset = preset
        self.retain_finished = settings.BATCH_JOBS_RETAINED if retain_finished is None else retain_finished
        self._jobs: Dict[int, BatchJob] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._next_id = 1

    def vehicle_lock(self, vehicle_id: int) -> asyncio.Lock:
        if vehicle_id not in self._locks:
            self._locks[vehicle_id] = asyncio.Lock()
        return self._locks[vehicle_id]

    def is_busy(self, vehicle_id: int) -> bool:
        if self.vehicle_lock(vehicle_id).locked():
            return True
        return any(
            job.vehicle_id == vehicle_id and job.session.state in ("pending", "running")
            for job in self._jobs.values()
        )

    def get(self, job_id: int) -> Optional[BatchJob]:
        return self._jobs.get(job_id)

    def start(self, session_factory, router: Router, request) -> BatchJob:
        """Create a job for ``request`` (a BatchRequest) and run it in the background."""
        self._prune()
        job = BatchJob(job_id=self._next_id, vehicle_id=request.vehicle_id)
        self._next_id += 1
        self._jobs[job.job_id] = job
        job.task = asyncio.create_task(self._run(job, session_factory, router, request))
        return job

    def _prune(self):
        """Forget the oldest finished jobs beyond the retention count."""
        finished = [job_id for job_id, job in self._jobs.items() if job.session.state in FINISHED_STATES]
        for job_id in sorted(finished)[: max(len(finished) - self.retain_finished, 0)]:
            del self._jobs[job_id]

    async def _run(self, job: BatchJob, session_factory, router: Router, request):
        batch = job.session
        rng = random.Random(request.seed) if request.seed is not None else random.Random()

        async def on_progress(stats):
            await ws_manager.broadcast_progress(job.job_id, stats.as_dict())

        async with self.vehicle_lock(job.vehicle_id):
            async with session_factory() as db:
                try:
                    vehicle = await resolve_vehicle(db, job.vehicle_id)
                    geofences = await list_geofences(db)
                    await BatchScheduler(router, rng, self.preset).run(
                        db,
                        vehicle,
                        request.date_from,
                        request.date_to,
                        request.trips_per_day,
                        geofences,
                        batch=batch,
                        on_progress=on_progress,
                    )
                except TrajgenError as e:
                    batch.state = "failed"
                    batch.error = str(e)
                    logger.warning("Batch job %s failed: %s", job.job_id, e)
                except Exception as e:
                    batch.state = "failed"
                    batch.error = str(e)
                    logger.exception("Batch job %s crashed", job.job_id)

        await ws_manager.broadcast_finished(job.job_id, batch.state, batch.stats.as_dict(), batch.error)
