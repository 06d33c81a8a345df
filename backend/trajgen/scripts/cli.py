#!/usr/bin/env python
"""Command-line access to trajectory generation and consistency repair.

Usage examples:
  Seed demo master data (Tokyo geofences, one vehicle with a device):
    python -m trajgen.scripts.cli seed

  Generate a week of trips:
    python -m trajgen.scripts.cli batch --vehicle-id 1 --date-from 2024-06-01 --date-to 2024-06-07

  Check and repair:
    python -m trajgen.scripts.cli analyze --vehicle-id 1
    python -m trajgen.scripts.cli repair --vehicle-id 1

Database connection is read from env DATABASE_URL, routing key from ORS_API_KEY.
"""

import argparse
import asyncio
import random
from datetime import date, datetime
from typing import Optional

from trajgen.core.database import AsyncSessionLocal, init_db
from trajgen.core.errors import TrajgenError
from trajgen.core.logging_config import setup_logging
from trajgen.scripts.seed_data import seed_master_data
from trajgen.services.batch_service import BatchScheduler, BatchSession
from trajgen.services.consistency_service import ConsistencyService
from trajgen.services.master_data import resolve_vehicle, list_geofences, get_geofence
from trajgen.services.routing import OpenRouteServiceRouter, Router
from trajgen.services.trip_assembler import GenerationConfig
from trajgen.services.trip_service import TripService


def make_rng(seed: Optional[int]) -> random.Random:
    return random.Random(seed) if seed is not None else random.Random()


async def cmd_seed(session_factory=AsyncSessionLocal, bind=None):
    await init_db(bind)
    async with session_factory() as session:
        counts = await seed_master_data(session)
    print(f"✅ Seeded {counts['vehicles']} vehicles, {counts['devices']} devices, {counts['geofences']} geofences")


async def cmd_generate(args, router: Router, session_factory=AsyncSessionLocal):
    async with session_factory() as session:
        origin = await get_geofence(session, args.origin)
        destination = await get_geofence(session, args.destination)
        config = GenerationConfig(
            interval_sec=args.interval,
            avg_speed_kmh=args.avg_speed,
            break_minutes=args.break_time,
            min_accuracy=args.min_accuracy,
            max_accuracy=args.max_accuracy,
            outlier_rate=args.outlier_rate,
        )
        _, trip = await TripService.generate_trip(
            session,
            router,
            args.vehicle_id,
            origin.center,
            destination.center,
            args.start,
            config,
            origin_name=origin.name,
            destination_name=destination.name,
            rng=make_rng(args.seed),
        )
    print(f"✅ Trip #{trip.id}: {trip.point_count} points, {trip.start_time} → {trip.end_time}")
    return trip


async def cmd_batch(args, router: Router, session_factory=AsyncSessionLocal, preset=None):
    batch = BatchSession()

    def on_progress(stats):
        print(f"  [{stats.slots_done}/{stats.slots_total}] trips={stats.trips} points={stats.points} errors={stats.errors}")

    async with session_factory() as session:
        vehicle = await resolve_vehicle(session, args.vehicle_id)
        geofences = await list_geofences(session)
        scheduler = BatchScheduler(router, make_rng(args.seed), preset)
        stats = await scheduler.run(
            session, vehicle, args.date_from, args.date_to, args.trips_per_day, geofences,
            batch=batch, on_progress=on_progress,
        )
    print(f"✅ {batch.state}: {stats.days} days, {stats.trips} trips, {stats.points} points, {stats.errors} errors")
    return stats


async def cmd_analyze(args, session_factory=AsyncSessionLocal):
    async with session_factory() as session:
        issues = await ConsistencyService(session).analyze(args.vehicle_id)
    if not issues:
        print("✅ No consistency issues found")
    for issue in issues:
        print(f"  {issue.type.value:<13} {issue.message}")
    return issues


async def cmd_repair(args, router: Router, session_factory=AsyncSessionLocal):
    async with session_factory() as session:
        result = await ConsistencyService(session, router, make_rng(args.seed)).repair(args.vehicle_id)
    print(
        f"Connecting trips: {result.connecting_trips_created}, shifted: {result.trips_shifted}, "
        f"deleted: {result.trips_deleted}"
    )
    if result.remaining_issues:
        print(f"ℹ️  {len(result.remaining_issues)} issues remaining. Run repair again if needed.")
    else:
        print("✅ All consistency issues resolved!")
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GNSS trajectory generator")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("seed", help="Create tables and demo master data")

    pgen = sub.add_parser("generate", help="Generate one trip between two geofences")
    pgen.add_argument("--vehicle-id", type=int, required=True)
    pgen.add_argument("--origin", type=int, required=True, help="Origin geofence id")
    pgen.add_argument("--destination", type=int, required=True, help="Destination geofence id")
    pgen.add_argument("--start", type=datetime.fromisoformat, required=True, help="Local start, e.g. 2024-06-01T08:00")
    pgen.add_argument("--interval", type=int, default=10)
    pgen.add_argument("--avg-speed", type=float, default=40)
    pgen.add_argument("--break-time", type=int, default=0)
    pgen.add_argument("--min-accuracy", type=float, default=3)
    pgen.add_argument("--max-accuracy", type=float, default=20)
    pgen.add_argument("--outlier-rate", type=float, default=0)
    pgen.add_argument("--seed", type=int)

    pbat = sub.add_parser("batch", help="Generate trips for every day in a range")
    pbat.add_argument("--vehicle-id", type=int, required=True)
    pbat.add_argument("--date-from", type=date.fromisoformat, required=True)
    pbat.add_argument("--date-to", type=date.fromisoformat, required=True)
    pbat.add_argument("--trips-per-day", type=int, default=3)
    pbat.add_argument("--seed", type=int)

    pana = sub.add_parser("analyze", help="Report time overlaps and location gaps")
    pana.add_argument("--vehicle-id", type=int, required=True)

    prep = sub.add_parser("repair", help="Insert connecting trips and shift overlapping trips")
    prep.add_argument("--vehicle-id", type=int, required=True)
    prep.add_argument("--seed", type=int)

    return parser


async def run(args):
    router = OpenRouteServiceRouter()
    if args.cmd == "seed":
        await cmd_seed()
    elif args.cmd == "generate":
        await cmd_generate(args, router)
    elif args.cmd == "batch":
        await cmd_batch(args, router)
    elif args.cmd == "analyze":
        await cmd_analyze(args)
    elif args.cmd == "repair":
        await cmd_repair(args, router)


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        asyncio.run(run(args))
    except TrajgenError as e:
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⏹️  Stopped.")
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
