import asyncio

import pytest

from app.capacity import CapacityLedger
from app.engine import ParkingEngine
from app.errors import InvalidClass
from app.models import VehicleClass


def test_default_capacities():
    ledger = CapacityLedger()
    assert ledger.capacity(VehicleClass.MOTORCYCLE) == 6
    assert ledger.capacity(VehicleClass.LIGHT_VEHICLE) == 5


def test_unknown_class_has_no_capacity():
    with pytest.raises(InvalidClass):
        CapacityLedger().capacity("bus")


async def test_counts_only_active_sessions(engine, session_factory):
    first = await engine.admit("ABC123", VehicleClass.LIGHT_VEHICLE, False, 1)
    await engine.admit("DEF456", VehicleClass.LIGHT_VEHICLE, False, 2)
    await engine.admit("MOTO1", VehicleClass.MOTORCYCLE, False, 1)
    await engine.close_day()
    await engine.admit("GHI789", VehicleClass.LIGHT_VEHICLE, False, 1)

    async with session_factory() as db:
        assert await engine.ledger.count_active(db, VehicleClass.LIGHT_VEHICLE) == 1
        assert await engine.ledger.count_active(db, VehicleClass.LIGHT_VEHICLE, 1) == 1
        assert await engine.ledger.count_active(db, VehicleClass.LIGHT_VEHICLE, 2) == 0
        assert await engine.ledger.count_active(db, VehicleClass.MOTORCYCLE) == 0
    assert first.id is not None


async def test_occupied_spot_has_no_capacity(engine, session_factory):
    await engine.admit("ABC123", VehicleClass.MOTORCYCLE, False, 3)

    async with session_factory() as db:
        assert not await engine.ledger.has_capacity(db, VehicleClass.MOTORCYCLE, 3)
        assert await engine.ledger.has_capacity(db, VehicleClass.MOTORCYCLE, 4)
        assert await engine.ledger.has_capacity(db, VehicleClass.LIGHT_VEHICLE, 3)


async def test_full_class_has_no_capacity(session_factory, sink, clock):
    engine = ParkingEngine(
        session_factory,
        sink,
        ledger=CapacityLedger({VehicleClass.MOTORCYCLE: 2, VehicleClass.LIGHT_VEHICLE: 1}),
        clock=clock
    )
    await engine.admit("M1", VehicleClass.MOTORCYCLE, False, 1)
    await engine.admit("M2", VehicleClass.MOTORCYCLE, False, 2)

    async with session_factory() as db:
        assert not await engine.ledger.has_capacity(db, VehicleClass.MOTORCYCLE, 3)
        assert await engine.ledger.has_capacity(db, VehicleClass.LIGHT_VEHICLE, 1)


def test_locks_are_created_on_first_use():
    ledger = CapacityLedger()

    async def hold_motorcycle_lock():
        async with ledger.lock(VehicleClass.MOTORCYCLE):
            return (
                ledger.lock("motorcycle").locked(),
                ledger.lock(VehicleClass.LIGHT_VEHICLE).locked()
            )

    assert asyncio.run(hold_motorcycle_lock()) == (True, False)
