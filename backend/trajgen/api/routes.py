"""API routes for trip generation, batch runs and consistency repair."""

import random
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.api.jobs import BatchJob, BatchJobRegistry
from trajgen.core.database import get_db, get_session_factory
from trajgen.core.timeutils import to_naive_local
from trajgen.models.schemas import (
    VehicleOut, GeofenceOut, GenerateTripRequest, GeneratedTripOut, TripOut, GnssPointOut, DeleteTripOut,
    BatchRequest, BatchJobOut, BatchStatsOut, ConsistencyIssueOut, ConsistencyReport, RepairOut, EndpointIn,
)
from trajgen.services.consistency_service import ConsistencyService, ConsistencyIssue
from trajgen.services.geo import LatLng
from trajgen.services.master_data import list_deployed_vehicles, list_geofences, get_geofence
from trajgen.services.routing import OpenRouteServiceRouter, Router
from trajgen.services.trip_assembler import GenerationConfig
from trajgen.services.trip_service import TripService
from trajgen.services.trip_store import TripStore

router = APIRouter(prefix="/api", tags=["trajectories"])


def get_router() -> Router:
    """Dependency: routing collaborator."""
    return OpenRouteServiceRouter()


def get_job_registry(request: Request) -> BatchJobRegistry:
    return request.app.state.batch_jobs


def issue_out(issue: ConsistencyIssue) -> ConsistencyIssueOut:
    return ConsistencyIssueOut(
        type=issue.type.value,
        from_trip_id=issue.from_trip.id,
        to_trip_id=issue.to_trip.id,
        metric=issue.metric,
        message=issue.message,
    )


def job_out(job: BatchJob) -> BatchJobOut:
    return BatchJobOut(
        job_id=job.job_id,
        vehicle_id=job.vehicle_id,
        state=job.session.state,
        error=job.session.error,
        stats=BatchStatsOut(**job.session.stats.as_dict()),
    )


async def resolve_endpoint(session: AsyncSession, endpoint: EndpointIn):
    """(position, name) for a geofence id or free coordinates."""
    if endpoint.geofence_id is not None:
        site = await get_geofence(session, endpoint.geofence_id)
        return site.center, site.name
    return LatLng(endpoint.position.lat, endpoint.position.lng), "Custom"


# ==================== Master data ====================

@router.get("/vehicles", response_model=List[VehicleOut])
async def list_vehicles(session: AsyncSession = Depends(get_db)):
    """Vehicles with an active device deployment."""
    vehicles = await list_deployed_vehicles(session)
    return [
        VehicleOut(
            vehicle_id=v.vehicle_id,
            vehicle_name=v.vehicle_name,
            vehicle_number=v.vehicle_number,
            imei=v.device.imei,
            serial_no=v.device.serial_no,
            fw_version=v.device.fw_version,
        )
        for v in vehicles
    ]


@router.get("/geofences", response_model=List[GeofenceOut])
async def get_geofences(session: AsyncSession = Depends(get_db)):
    sites = await list_geofences(session)
    return [GeofenceOut(id=s.id, name=s.name, center_lat=s.center.lat, center_lng=s.center.lng) for s in sites]


# ==================== Trips ====================

@router.post("/trips/generate", response_model=GeneratedTripOut)
async def generate_trip(
    params: GenerateTripRequest,
    session: AsyncSession = Depends(get_db),
    routing: Router = Depends(get_router),
):
    """Generate one trip between two endpoints.

    Saved trips return stored points; unsaved previews keep the
    outlier/break/arrival-stay flags for display.
    """
    origin, origin_name = await resolve_endpoint(session, params.origin)
    destination, destination_name = await resolve_endpoint(session, params.destination)
    s = params.settings
    config = GenerationConfig(
        interval_sec=s.interval,
        avg_speed_kmh=s.avg_speed,
        break_minutes=s.break_time,
        min_accuracy=s.min_accuracy,
        max_accuracy=s.max_accuracy,
        outlier_rate=s.outlier_rate,
    )
    rng = random.Random(params.seed) if params.seed is not None else None

    assembled, trip = await TripService.generate_trip(
        session,
        routing,
        params.vehicle_id,
        origin,
        destination,
        to_naive_local(params.start_time),
        config,
        origin_name=origin_name,
        destination_name=destination_name,
        rng=rng,
        persist=params.persist,
    )

    if trip is not None:
        points = await TripStore(session).points_for_trip(trip.id)
        return GeneratedTripOut(
            trip=TripOut.model_validate(trip),
            points=[GnssPointOut.model_validate(p) for p in points],
        )

    preview = assembled.to_trip(params.vehicle_id, origin_name, destination_name)
    return GeneratedTripOut(
        trip=TripOut.model_validate(preview),
        points=[
            GnssPointOut(
                **p.to_record(),
                is_outlier=p.is_outlier,
                is_break=p.is_break,
                is_arrival_stay=p.is_arrival_stay,
            )
            for p in assembled.points
        ],
    )


@router.get("/trips", response_model=List[TripOut])
async def list_trips(
    vehicle_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=10000),
    session: AsyncSession = Depends(get_db),
):
    """Trips, newest first."""
    return await TripService.get_trips(session, vehicle_id, limit)


@router.get("/trips/{trip_id}", response_model=TripOut)
async def get_trip(trip_id: int, session: AsyncSession = Depends(get_db)):
    return await TripService.get_trip(session, trip_id)


@router.get("/trips/{trip_id}/points", response_model=List[GnssPointOut])
async def get_trip_points(trip_id: int, session: AsyncSession = Depends(get_db)):
    """Points of a trip in chronological order."""
    return await TripService.get_trip_points(session, trip_id)


@router.delete("/trips/{trip_id}", response_model=DeleteTripOut)
async def delete_trip(trip_id: int, session: AsyncSession = Depends(get_db)):
    """Delete a trip and all of its GNSS points."""
    deleted = await TripService.delete_trip(session, trip_id)
    return DeleteTripOut(trip_id=trip_id, points_deleted=deleted)


# ==================== Batch ====================

@router.post("/batch", response_model=BatchJobOut, status_code=202)
async def start_batch(
    params: BatchRequest,
    registry: BatchJobRegistry = Depends(get_job_registry),
    session_factory=Depends(get_session_factory),
    routing: Router = Depends(get_router),
):
    """Start batch generation in the background; follow it via /ws/batch."""
    if registry.is_busy(params.vehicle_id):
        raise HTTPException(status_code=409, detail="Vehicle is busy with another batch or repair")
    job = registry.start(session_factory, routing, params)
    return job_out(job)


@router.get("/batch/{job_id}", response_model=BatchJobOut)
async def get_batch(job_id: int, registry: BatchJobRegistry = Depends(get_job_registry)):
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Batch job not found")
    return job_out(job)


@router.post("/batch/{job_id}/stop", response_model=BatchJobOut)
async def stop_batch(job_id: int, registry: BatchJobRegistry = Depends(get_job_registry)):
    """Ask a running batch to stop after the current trip."""
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Batch job not found")
    job.session.request_stop()
    return job_out(job)


# ==================== Consistency ====================

@router.get("/vehicles/{vehicle_id}/consistency", response_model=ConsistencyReport)
async def analyze_consistency(vehicle_id: int, session: AsyncSession = Depends(get_db)):
    """Time overlaps and location gaps between consecutive trips."""
    trips = await TripStore(session).trips_for_vehicle(vehicle_id)
    service = ConsistencyService(session)
    issues = await service.analyze(vehicle_id)
    return ConsistencyReport(
        vehicle_id=vehicle_id,
        trip_count=len(trips),
        issues=[issue_out(i) for i in issues],
    )


@router.post("/vehicles/{vehicle_id}/consistency/repair", response_model=RepairOut)
async def repair_consistency(
    vehicle_id: int,
    seed: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_db),
    registry: BatchJobRegistry = Depends(get_job_registry),
    routing: Router = Depends(get_router),
):
    """One repair run (gaps, then overlaps). Check remaining_issues and re-run if needed."""
    if registry.is_busy(vehicle_id):
        raise HTTPException(status_code=409, detail="Vehicle is busy with another batch or repair")

    rng = random.Random(seed) if seed is not None else None
    async with registry.vehicle_lock(vehicle_id):
        result = await ConsistencyService(session, routing, rng).repair(vehicle_id)

    return RepairOut(
        vehicle_id=vehicle_id,
        connecting_trips_created=result.connecting_trips_created,
        trips_shifted=result.trips_shifted,
        trips_deleted=result.trips_deleted,
        deleted_trip_ids=result.deleted_trip_ids,
        remaining_issues=[issue_out(i) for i in result.remaining_issues],
    )
