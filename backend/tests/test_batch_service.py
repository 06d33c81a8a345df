import random
from datetime import date, timedelta

import pytest

from trajgen.core.errors import GenerationFailure, InsufficientInputFailure
from trajgen.services.batch_service import BatchPreset, BatchScheduler, BatchSession
from trajgen.services.trip_store import TripStore
from fakes import FakeRouter

DAY = date(2024, 6, 3)


def scheduler(router=None, seed=1, **preset):
    preset.setdefault("trip_delay_sec", 0)
    return BatchScheduler(router or FakeRouter(), random.Random(seed), BatchPreset(**preset))


async def test_batch_generates_trips_without_same_day_overlap(seeded, vehicle, geofences):
    progress = []
    stats = await scheduler().run(
        seeded, vehicle, DAY, DAY + timedelta(days=1), 2, geofences,
        on_progress=lambda s: progress.append(s.slots_done),
    )

    assert stats.days == 2
    assert stats.slots_total == 4
    assert stats.trips == 4
    assert stats.errors == 0
    assert progress == [1, 2, 3, 4]

    trips = await TripStore(seeded).trips_for_vehicle(1)
    assert len(trips) == 4
    assert sum(t.point_count for t in trips) == stats.points
    for day in (DAY, DAY + timedelta(days=1)):
        day_trips = [t for t in trips if t.start_time.date() == day]
        assert len(day_trips) == 2
        assert 6 <= day_trips[0].start_time.hour < 9
        first, second = day_trips
        assert second.start_time - first.end_time >= timedelta(minutes=30)
        assert second.start_time - first.end_time <= timedelta(minutes=120)
        assert first.origin_name != first.destination_name
        assert first.generation_settings["interval"] == 10


async def test_late_start_skips_remaining_slots(seeded, vehicle, geofences):
    batch = BatchSession()
    progress = []
    stats = await scheduler(first_start_hour=19, last_start_hour=20, min_gap_min=60, max_gap_min=60).run(
        seeded, vehicle, DAY, DAY, 3, geofences, batch=batch,
        on_progress=lambda s: progress.append(s.slots_done),
    )

    assert batch.state == "completed"
    assert stats.trips == 1
    assert stats.errors == 0
    assert stats.slots_done == stats.slots_total == 3
    assert progress == [1, 3]


async def test_routing_failures_are_counted(seeded, vehicle, geofences):
    batch = BatchSession()
    stats = await scheduler(router=FakeRouter(fail=True)).run(
        seeded, vehicle, DAY, DAY + timedelta(days=2), 2, geofences, batch=batch
    )

    assert batch.state == "completed"
    assert stats.trips == 0
    assert stats.errors == 6
    assert await TripStore(seeded).trips_for_vehicle(1) == []


async def test_stop_request_is_honoured_between_slots(seeded, vehicle, geofences):
    batch = BatchSession()

    async def on_progress(stats):
        batch.request_stop()

    stats = await scheduler().run(
        seeded, vehicle, DAY, DAY + timedelta(days=5), 3, geofences, batch=batch, on_progress=on_progress
    )

    assert batch.state == "stopped"
    assert stats.days == 1
    assert stats.slots_done == 1
    assert stats.trips == 1


async def test_needs_two_geofences(seeded, vehicle, geofences):
    with pytest.raises(InsufficientInputFailure):
        await scheduler().run(seeded, vehicle, DAY, DAY, 1, geofences[:1])


async def test_rejects_reversed_dates(seeded, vehicle, geofences):
    with pytest.raises(GenerationFailure):
        await scheduler().run(seeded, vehicle, DAY, DAY - timedelta(days=1), 1, geofences)
