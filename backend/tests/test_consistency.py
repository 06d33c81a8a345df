import random

import pytest

from trajgen.core.errors import RoutingFailure
from trajgen.core.timeutils import epoch_seconds
from trajgen.services.consistency_service import ConsistencyService, IssueType, analyze_trips
from trajgen.services.trip_store import TripStore
from fakes import FakeRouter, TOKYO_STATION, SHIBUYA, add_trip, at


def service(session, router=None, seed=1):
    return ConsistencyService(session, router or FakeRouter(), random.Random(seed))


def summary(issues):
    return [(i.type, i.from_trip.id, i.to_trip.id, i.metric) for i in issues]


async def test_location_gap_reported(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(9), at(9, 45))
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10), at(10, 30))

    issues = await service(seeded).analyze(1)

    assert len(issues) == 1
    assert issues[0].type is IssueType.LOCATION_GAP
    assert issues[0].metric > 500
    assert "km between trips" in issues[0].message


async def test_time_overlap_reported(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10), at(11))
    await add_trip(seeded, TOKYO_STATION, SHIBUYA, at(10, 30), at(11, 15))

    issues = await service(seeded).analyze(1)

    assert len(issues) == 1
    assert issues[0].type is IssueType.TIME_OVERLAP
    assert issues[0].metric == 30 * 60


async def test_clean_sequence_has_no_issues(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(8), at(9))
    await add_trip(seeded, TOKYO_STATION, SHIBUYA, at(10), at(11))
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(13), at(14))

    assert await service(seeded).analyze(1) == []


async def test_analysis_is_idempotent(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10), at(11))
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10, 30), at(12))
    await add_trip(seeded, TOKYO_STATION, SHIBUYA, at(14), at(15))

    first = await service(seeded).analyze(1)
    second = await service(seeded).analyze(1)

    assert summary(first) == summary(second)
    assert {i.type for i in first} == {IssueType.TIME_OVERLAP, IssueType.LOCATION_GAP}


async def test_analyze_trips_orders_by_start_time(seeded):
    late = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(12), at(13))
    early = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(8), at(9))

    issues = analyze_trips([late, early])

    assert summary(issues)[0][1:3] == (early.id, late.id)


async def test_repair_inserts_connecting_trip(seeded):
    a = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(8), at(8, 30), destination_name="Tokyo Station")
    b = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(12), at(12, 40), origin_name="Shibuya")
    router = FakeRouter()

    result = await service(seeded, router).repair(1)

    assert result.connecting_trips_created == 1
    assert result.trips_deleted == 0
    assert result.remaining_issues == []
    assert router.calls == [(TOKYO_STATION, SHIBUYA)]

    trips = await TripStore(seeded).trips_for_vehicle(1)
    assert [t.id for t in trips][0] == a.id
    assert [t.id for t in trips][-1] == b.id
    connecting = trips[1]
    assert connecting.is_connecting_trip
    assert connecting.start_time == a.end_time
    assert connecting.end_time <= b.start_time
    assert connecting.origin_name == "Tokyo Station"
    assert connecting.destination_name == "Shibuya"
    assert connecting.imei == a.imei
    assert connecting.serial_no == "DEV-001"

    points = await TripStore(seeded).points_for_trip(connecting.id)
    assert len(points) == connecting.point_count
    assert points[0].fw_version == "1.4.2"


async def test_repair_deletes_trip_when_connection_crosses_midnight(seeded):
    a = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(23), at(23, 50))
    b = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(9, day=4), at(10, day=4))

    result = await service(seeded).repair(1)

    assert result.connecting_trips_created == 0
    assert result.trips_deleted == 1
    assert result.deleted_trip_ids == [a.id]
    assert await TripStore(seeded).get_trip(a.id) is None
    assert await TripStore(seeded).points_for_trip(a.id) == []
    assert [t.id for t in await TripStore(seeded).trips_for_vehicle(1)] == [b.id]


async def test_repair_deletes_trip_when_connection_ends_too_late(seeded):
    a = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(9), at(9, 45))
    b = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10), at(10, 30))

    result = await service(seeded).repair(1)

    assert result.deleted_trip_ids == [a.id]
    assert result.connecting_trips_created == 0
    assert [t.id for t in await TripStore(seeded).trips_for_vehicle(1)] == [b.id]


async def test_repair_shifts_overlapping_trip(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10), at(11))
    b = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(10, 30), at(11, 15))
    c = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(13), at(13, 30))

    result = await service(seeded).repair(1)

    assert result.trips_shifted == 1
    assert result.trips_deleted == 0
    assert result.remaining_issues == []

    store = TripStore(seeded)
    shifted = await store.get_trip(b.id)
    assert shifted.start_time == at(11, 30)
    assert shifted.end_time == at(12, 15)
    points = await store.points_for_trip(b.id)
    assert points[0].positioning_timestamp == at(11, 30)
    assert points[0].device_timestamp == at(11, 30)
    assert points[-1].positioning_timestamp == at(12, 15)
    assert points[-1].gps_time == epoch_seconds(at(12, 15))
    assert (await store.get_trip(c.id)).start_time == at(13)


async def test_repair_shift_accumulates_across_overlaps(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(10), at(11))
    b = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(10, 30), at(11, 15))
    c = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(11), at(11, 40))

    result = await service(seeded).repair(1)

    assert result.trips_shifted == 2
    assert result.remaining_issues == []

    store = TripStore(seeded)
    assert (await store.get_trip(b.id)).start_time == at(11, 30)
    shifted = await store.get_trip(c.id)
    assert shifted.start_time == at(12, 45)
    assert shifted.end_time == at(13, 25)


async def test_repair_shift_resets_after_midnight_deletion(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(22), at(23, 50))
    b = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(23), at(23, 10))
    c = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(23, 5), at(23, 20))

    result = await service(seeded).repair(1)

    assert result.deleted_trip_ids == [b.id]
    assert result.trips_shifted == 0
    kept = await TripStore(seeded).get_trip(c.id)
    assert kept.start_time == at(23, 5)
    assert kept.end_time == at(23, 20)
    assert [i.type for i in result.remaining_issues] == [IssueType.TIME_OVERLAP]


async def test_repair_carries_shift_into_next_connecting_trip(seeded):
    a = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(8), at(8, 30), destination_name="Tokyo Station")
    b = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(12), at(12, 40))
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(18), at(18, 30))
    router = FakeRouter()

    result = await service(seeded, router).repair(1)

    assert result.connecting_trips_created == 2
    assert result.trips_deleted == 0
    assert len(router.calls) == 2

    trips = await TripStore(seeded).trips_for_vehicle(1)
    first, second = [t for t in trips if t.is_connecting_trip]
    assert first.start_time == a.end_time
    assert second.start_time == b.end_time + (first.end_time - b.start_time)


async def test_repair_deletes_trip_pushed_past_midnight(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(22), at(23, 50))
    b = await add_trip(seeded, TOKYO_STATION, TOKYO_STATION, at(23), at(23, 40))

    result = await service(seeded).repair(1)

    assert result.trips_shifted == 0
    assert result.deleted_trip_ids == [b.id]
    assert await TripStore(seeded).get_trip(b.id) is None


async def test_repair_without_issues_changes_nothing(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(8), at(9))
    await add_trip(seeded, TOKYO_STATION, SHIBUYA, at(10), at(11))
    router = FakeRouter()

    result = await service(seeded, router).repair(1)

    assert (result.connecting_trips_created, result.trips_shifted, result.trips_deleted) == (0, 0, 0)
    assert router.calls == []


async def test_routing_failure_during_repair_propagates(seeded):
    a = await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(8), at(8, 30))
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(12), at(12, 40))

    with pytest.raises(RoutingFailure):
        await service(seeded, FakeRouter(fail=True)).repair(1)

    assert await TripStore(seeded).get_trip(a.id) is not None


async def test_repair_without_router_raises_routing_failure(seeded):
    await add_trip(seeded, SHIBUYA, TOKYO_STATION, at(8), at(8, 30))

    with pytest.raises(RoutingFailure):
        await ConsistencyService(seeded).repair(1)
