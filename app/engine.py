import asyncio
import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from app.capacity import CapacityLedger
from app.config import MQTT_VEHICLE_TOPIC
from app.crud import (
    create_vehicle_session,
    delete_vehicle_session,
    get_vehicle_session,
    list_active_sessions,
    list_vehicle_sessions,
    update_vehicle_session
)
from app.errors import CapacityExceeded, InvalidExitTime, PublishError, StoreError
from app.events import VEHICLE_ADMITTED, VEHICLE_EXITED, VEHICLE_REMOVED, VEHICLE_UPDATED
from app.models import VehicleClass, VehicleSession, utcnow
from app.schemas import VehicleSessionPatch
from app.tariff import entry_cost, settlement_cost

SETTLE_ATTEMPTS = 2


@dataclass
class CloseDayResult:
    total_revenue: float = 0.0
    settled: int = 0
    failed_ids: List[int] = field(default_factory=list)


class ParkingEngine:
    """Admission, administration and end-of-day settlement of vehicle sessions.

    Every operation runs in its own transaction opened from ``session_factory``.
    Events are published in background tasks; a failed publish is logged and
    never affects the operation that produced it.
    """

    def __init__(self, session_factory, event_sink, ledger=None, clock=utcnow, topic=MQTT_VEHICLE_TOPIC):
        self.session_factory = session_factory
        self.event_sink = event_sink
        self.ledger = ledger or CapacityLedger()
        self.clock = clock
        self.topic = topic
        self._pending = set()

    async def start(self):
        await self.event_sink.connect()

    async def shutdown(self):
        await self.drain_events()
        await self.event_sink.disconnect()

    async def admit(self, plate: str, vehicle_class: VehicleClass, is_electric_or_hybrid: bool, assigned_spot: int):
        cost = entry_cost(vehicle_class, is_electric_or_hybrid)
        vehicle_class = VehicleClass(vehicle_class)

        async with self.ledger.lock(vehicle_class):
            async with self.session_factory() as db:
                try:
                    if not await self.ledger.has_capacity(db, vehicle_class, assigned_spot):
                        raise CapacityExceeded(
                            f"No spot available for {vehicle_class.value} at spot {assigned_spot}"
                        )
                    new_session = await create_vehicle_session(
                        db,
                        plate=plate,
                        vehicle_class=vehicle_class,
                        is_electric_or_hybrid=is_electric_or_hybrid,
                        assigned_spot=assigned_spot,
                        entry_timestamp=self.clock(),
                        exit_timestamp=None,
                        cost=cost
                    )
                    await db.commit()
                except IntegrityError as e:
                    raise CapacityExceeded(
                        f"Spot {assigned_spot} is already taken for {vehicle_class.value}"
                    ) from e
                except SQLAlchemyError as e:
                    raise StoreError(f"Failed to admit vehicle {plate}: {e}") from e

        logging.info(f"Admitted {plate} ({vehicle_class.value}) at spot {assigned_spot}, cost {cost}")
        self._emit({
            "event": VEHICLE_ADMITTED,
            "plate": plate,
            "vehicle_class": vehicle_class.value,
            "assigned_spot": assigned_spot
        })
        return new_session

    async def list_all(self):
        async with self.session_factory() as db:
            try:
                return await list_vehicle_sessions(db)
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to list vehicle sessions: {e}") from e

    async def get(self, session_id: int):
        async with self.session_factory() as db:
            try:
                return await get_vehicle_session(db, session_id)
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to load vehicle session {session_id}: {e}") from e

    async def update(self, session_id: int, patch: VehicleSessionPatch):
        """Overwrite the fields set in ``patch``.

        Setting ``exit_timestamp`` here closes the session without computing
        its settlement cost; only ``close_day`` settles. A new
        ``assigned_spot`` is not checked against the class capacity, though
        the store still refuses a spot held by another active session.
        """
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)

        async with self.session_factory() as db:
            try:
                vehicle_session = await get_vehicle_session(db, session_id)
                self._validate_update(vehicle_session, changes)
                vehicle_session = await update_vehicle_session(db, session_id, changes)
                await db.commit()
            except IntegrityError as e:
                raise CapacityExceeded(
                    f"Spot {changes.get('assigned_spot')} is already taken"
                ) from e
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to update vehicle session {session_id}: {e}") from e

        logging.info(f"Updated vehicle session {session_id}: {sorted(changes)}")
        self._emit({
            "event": VEHICLE_UPDATED,
            "id": session_id,
            "patch": patch.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        })
        return vehicle_session

    def _validate_update(self, vehicle_session: VehicleSession, changes: dict):
        exit_timestamp = changes.get("exit_timestamp")
        if exit_timestamp is not None and exit_timestamp < vehicle_session.entry_timestamp:
            raise InvalidExitTime(
                f"Exit timestamp {exit_timestamp.isoformat()} precedes entry "
                f"{vehicle_session.entry_timestamp.isoformat()}"
            )

    async def remove(self, session_id: int):
        async with self.session_factory() as db:
            try:
                await delete_vehicle_session(db, session_id)
                await db.commit()
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to remove vehicle session {session_id}: {e}") from e

        logging.info(f"Removed vehicle session {session_id}")
        self._emit({"event": VEHICLE_REMOVED, "id": session_id})

    async def close_day(self):
        now = self.clock()
        async with self.session_factory() as db:
            try:
                active_ids = [s.id for s in await list_active_sessions(db)]
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to list active sessions: {e}") from e

        result = CloseDayResult()
        for session_id in active_ids:
            try:
                settled = await self._settle(session_id, now)
            except SQLAlchemyError as e:
                logging.error(f"Settlement of vehicle session {session_id} failed: {e}")
                result.failed_ids.append(session_id)
                continue

            if settled is None:
                continue

            result.total_revenue += settled.cost
            result.settled += 1
            self._emit({
                "event": VEHICLE_EXITED,
                "plate": settled.plate,
                "total_cost": settled.cost
            })

        logging.info(
            f"Day closed: {result.settled} sessions settled, revenue {result.total_revenue}, "
            f"{len(result.failed_ids)} failures"
        )
        return result

    async def _settle(self, session_id: int, now):
        """Settle one session in its own transaction.

        Returns None when the session is gone, already settled, or entered
        after ``now``.
        """
        for attempt in range(1, SETTLE_ATTEMPTS + 1):
            async with self.session_factory() as db:
                vehicle_session = await db.get(VehicleSession, session_id)
                if vehicle_session is None or not vehicle_session.is_active:
                    return None
                if vehicle_session.entry_timestamp > now:
                    return None

                vehicle_session.cost = settlement_cost(
                    vehicle_session.cost, vehicle_session.entry_timestamp, now
                )
                vehicle_session.exit_timestamp = now
                try:
                    await db.commit()
                except StaleDataError:
                    if attempt == SETTLE_ATTEMPTS:
                        raise
                    logging.warning(f"Vehicle session {session_id} changed during settlement, retrying")
                    continue
                return vehicle_session

    def _emit(self, payload: dict):
        task = asyncio.create_task(self._publish(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, payload: dict):
        try:
            await self.event_sink.publish(self.topic, payload)
        except PublishError as e:
            logging.error(f"Event publish failed: {e}")
        except Exception as e:
            logging.error(f"Event sink error on '{self.topic}': {e!r}")

    async def drain_events(self):
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
