import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import LIGHT_VEHICLE_CAPACITY, MOTORCYCLE_CAPACITY
from app.crud import count_active_sessions
from app.errors import InvalidClass
from app.models import VehicleClass

DEFAULT_CAPACITY = {
    VehicleClass.MOTORCYCLE: MOTORCYCLE_CAPACITY,
    VehicleClass.LIGHT_VEHICLE: LIGHT_VEHICLE_CAPACITY,
}


class CapacityLedger:
    """Admission control over the active sessions of each vehicle class.

    A spot holds at most one active session of a class, and a class holds at
    most ``capacity(vehicle_class)`` active sessions. ``lock`` serializes the
    check-then-create sequence of admissions of one class inside this
    process; the partial unique index on ``vehicle_sessions`` rejects spot
    collisions coming from other processes.
    """

    def __init__(self, capacity=None):
        self._capacity = dict(capacity or DEFAULT_CAPACITY)
        self._locks = {}

    def capacity(self, vehicle_class: VehicleClass) -> int:
        try:
            return self._capacity[VehicleClass(vehicle_class)]
        except (KeyError, ValueError):
            raise InvalidClass(f"Unknown vehicle class: {vehicle_class!r}")

    def lock(self, vehicle_class: VehicleClass) -> asyncio.Lock:
        # Created on first use so the lock belongs to the running loop
        vehicle_class = VehicleClass(vehicle_class)
        if vehicle_class not in self._locks:
            self._locks[vehicle_class] = asyncio.Lock()
        return self._locks[vehicle_class]

    async def count_active(self, db: AsyncSession, vehicle_class: VehicleClass, spot: int = None) -> int:
        return await count_active_sessions(db, vehicle_class, spot)

    async def has_capacity(self, db: AsyncSession, vehicle_class: VehicleClass, spot: int) -> bool:
        if await self.count_active(db, vehicle_class, spot) > 0:
            return False
        return await self.count_active(db, vehicle_class) < self.capacity(vehicle_class)
