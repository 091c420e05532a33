"""Parking fees.

A session is charged its class rate once on entry. On settlement the entry
cost is used as the hourly rate and multiplied by the hours parked, rounded
up to the next whole hour with a minimum of one hour.
"""
import math
from datetime import datetime

from app.errors import InvalidClass
from app.models import VehicleClass

BASE_RATES = {
    VehicleClass.MOTORCYCLE: 62,
    VehicleClass.LIGHT_VEHICLE: 120,
}

ELECTRIC_OR_HYBRID_DISCOUNT = 0.75
SECONDS_PER_HOUR = 3600


def base_rate(vehicle_class: VehicleClass) -> float:
    try:
        return BASE_RATES[VehicleClass(vehicle_class)]
    except (KeyError, ValueError):
        raise InvalidClass(f"Unknown vehicle class: {vehicle_class!r}")


def entry_cost(vehicle_class: VehicleClass, is_electric_or_hybrid: bool = False) -> float:
    multiplier = ELECTRIC_OR_HYBRID_DISCOUNT if is_electric_or_hybrid else 1.0
    return base_rate(vehicle_class) * multiplier


def billable_hours(entry_timestamp: datetime, exit_timestamp: datetime) -> int:
    elapsed = (exit_timestamp - entry_timestamp).total_seconds()
    if elapsed < 0:
        raise ValueError("exit timestamp precedes entry timestamp")
    return max(1, math.ceil(elapsed / SECONDS_PER_HOUR))


def settlement_cost(entry_cost: float, entry_timestamp: datetime, exit_timestamp: datetime) -> float:
    if entry_cost < 0:
        raise ValueError("entry cost cannot be negative")
    return entry_cost * billable_hours(entry_timestamp, exit_timestamp)
