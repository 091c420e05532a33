from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.errors import NotFound
from app.models import VehicleClass, VehicleSession


async def get_vehicle_session(db: AsyncSession, session_id: int):
    vehicle_session = await db.get(VehicleSession, session_id)
    if not vehicle_session:
        raise NotFound(f"Vehicle session {session_id} not found")
    return vehicle_session


async def list_vehicle_sessions(db: AsyncSession):
    result = await db.execute(select(VehicleSession).order_by(VehicleSession.id))
    return result.scalars().all()


async def list_active_sessions(db: AsyncSession):
    result = await db.execute(
        select(VehicleSession)
        .where(VehicleSession.exit_timestamp.is_(None))
        .order_by(VehicleSession.id)
    )
    return result.scalars().all()


async def count_active_sessions(db: AsyncSession, vehicle_class: VehicleClass, spot: int = None):
    query = select(func.count(VehicleSession.id)).where(
        VehicleSession.vehicle_class == vehicle_class,
        VehicleSession.exit_timestamp.is_(None)
    )
    if spot is not None:
        query = query.where(VehicleSession.assigned_spot == spot)
    result = await db.execute(query)
    return result.scalar_one()


async def create_vehicle_session(db: AsyncSession, **fields):
    new_session = VehicleSession(**fields)
    db.add(new_session)
    await db.flush()
    await db.refresh(new_session)
    return new_session


async def update_vehicle_session(db: AsyncSession, session_id: int, changes: dict):
    vehicle_session = await get_vehicle_session(db, session_id)
    for field, value in changes.items():
        setattr(vehicle_session, field, value)
    await db.flush()
    await db.refresh(vehicle_session)
    return vehicle_session


async def delete_vehicle_session(db: AsyncSession, session_id: int):
    vehicle_session = await get_vehicle_session(db, session_id)
    await db.delete(vehicle_session)
    await db.flush()
