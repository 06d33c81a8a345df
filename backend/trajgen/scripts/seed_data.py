#!/usr/bin/env python
"""Seed demo master data: Tokyo geofences and a vehicle with a deployed device."""

import asyncio
import json
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trajgen.core.database import AsyncSessionLocal, init_db
from trajgen.models.database import Device, Vehicle, Deployment, Geofence

# name, center lat, center lng
TOKYO_SITES = [
    ("Tokyo Station", 35.6812, 139.7671),
    ("Shibuya", 35.6580, 139.7016),
    ("Shinjuku", 35.6896, 139.7006),
    ("Ueno", 35.7138, 139.7773),
    ("Shinagawa", 35.6285, 139.7387),
]

DEVICES = [
    ("DEV-001", "123456789012345", "GT-100", "1.4.2"),
    ("DEV-002", "123456789012346", "GT-100", "1.4.2"),
]

VEHICLES = [
    (1, "Delivery Van 1", "品川 400 あ 12-34", "van", "DEV-001"),
    (2, "Delivery Van 2", "品川 400 あ 56-78", "van", "DEV-002"),
]


def square_polygon(lat: float, lng: float, half_side_deg: float = 0.001) -> str:
    """GeoJSON polygon around a point; its vertex mean equals the point."""
    ring = [
        [lng - half_side_deg, lat - half_side_deg],
        [lng + half_side_deg, lat - half_side_deg],
        [lng + half_side_deg, lat + half_side_deg],
        [lng - half_side_deg, lat + half_side_deg],
    ]
    return json.dumps({"type": "Polygon", "coordinates": [ring]})


async def seed_master_data(session: AsyncSession) -> dict:
    """Insert demo rows that are not there yet. Returns counts of rows added."""
    counts = {"devices": 0, "vehicles": 0, "geofences": 0}

    for serial_no, imei, model, fw in DEVICES:
        if await session.get(Device, serial_no) is None:
            session.add(Device(serial_no=serial_no, imei=imei, device_model=model, fw_version=fw))
            counts["devices"] += 1
    await session.flush()

    for vehicle_id, name, number, vehicle_type, serial_no in VEHICLES:
        if await session.get(Vehicle, vehicle_id) is None:
            session.add(Vehicle(
                vehicle_id=vehicle_id, vehicle_name=name, vehicle_number=number, vehicle_type=vehicle_type
            ))
            await session.flush()
            session.add(Deployment(
                vehicle_id=vehicle_id, serial_no=serial_no, deploy_date=datetime(2024, 1, 1), delete_flag=False
            ))
            counts["vehicles"] += 1

    existing = set((await session.execute(select(Geofence.geofence_name))).scalars().all())
    for name, lat, lng in TOKYO_SITES:
        if name not in existing:
            session.add(Geofence(geofence_name=name, geofence=square_polygon(lat, lng)))
            counts["geofences"] += 1

    await session.commit()
    return counts


async def main():
    await init_db()
    async with AsyncSessionLocal() as session:
        counts = await seed_master_data(session)
    print("✅ Demo data seeded successfully!")
    print(f"   - {counts['devices']} devices created")
    print(f"   - {counts['vehicles']} vehicles created")
    print(f"   - {counts['geofences']} geofences created")


if __name__ == "__main__":
    asyncio.run(main())
