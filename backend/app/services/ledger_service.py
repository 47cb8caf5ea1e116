"""
Database-backed capacity ledger.

CONCURRENCY STRATEGY: Conditional Atomic Update
================================================

Problem:
  Two users confirm the last slot of a track simultaneously.
  Both read occupancy=9/10, both write 10, both succeed.
  Result: Oversold track.

Solution:
  The check and the increment are one statement:

  UPDATE capacity_counters SET occupancy = occupancy + :n
  WHERE unit_id = :unit AND (capacity IS NULL OR occupancy + :n <= capacity)

  rows_affected == 0 means the unit is full. PostgreSQL re-evaluates the
  WHERE clause after acquiring the row lock, so the loser of a race sees
  the winner's increment and is rejected. There is no read-then-write in
  application code and nothing to retry.

  Each reservation also writes a (unit, holder) row in the same
  transaction. A retried reservation by the same holder is a no-op, and a
  release only decrements when it actually deleted the holder's row, so
  retries and compensations never double count.

  DB CHECK constraints (0 <= occupancy <= capacity) are the final safety net.
"""

from typing import Optional

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.db.session import persistence_guard
from app.models.capacity import CapacityCounter, CapacityReservation
from app.services.interfaces.ledger import CapacityLedger, Occupancy, ReservationResult

logger = get_logger(__name__)


def add_counter(session: AsyncSession, unit_id: str, unit_type: str, capacity: Optional[int]) -> CapacityCounter:
    """Stage a counter in the caller's transaction (used when the unit row itself is created)."""
    counter = CapacityCounter(unit_id=unit_id, unit_type=unit_type, capacity=capacity, occupancy=0)
    session.add(counter)
    return counter


async def apply_capacity(session: AsyncSession, unit_id: str, capacity: Optional[int]) -> bool:
    """
    Change a unit's capacity in the caller's transaction.
    Refused (False) when the new capacity is below current occupancy.
    """
    stmt = update(CapacityCounter).where(CapacityCounter.unit_id == unit_id)
    if capacity is not None:
        stmt = stmt.where(CapacityCounter.occupancy <= capacity)
    result = await session.execute(stmt.values(capacity=capacity).execution_options(synchronize_session=False))
    if result.rowcount == 0:
        counter = await SqlCapacityLedger._get_counter(session, unit_id)
        logger.warning(
            "capacity_change_refused",
            unit_id=unit_id,
            capacity=capacity,
            occupancy=counter.occupancy,
        )
        return False

    logger.info("capacity_changed", unit_id=unit_id, capacity=capacity)
    return True


class SqlCapacityLedger(CapacityLedger):
    """
    Capacity ledger over the `capacity_counters` table.

    Every call runs in its own short transaction so a reservation is
    durable independently of the RSVP write that follows it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def register(self, unit_id: str, unit_type: str, capacity: Optional[int]) -> None:
        try:
            with persistence_guard("ledger.register"):
                async with self.session_factory() as session, session.begin():
                    if await session.get(CapacityCounter, unit_id) is None:
                        add_counter(session, unit_id, unit_type, capacity)
        except IntegrityError:
            # Registered concurrently
            pass

    async def set_capacity(self, unit_id: str, capacity: Optional[int]) -> bool:
        with persistence_guard("ledger.set_capacity"):
            async with self.session_factory() as session, session.begin():
                return await apply_capacity(session, unit_id, capacity)

    async def try_reserve(self, unit_id: str, holder: str, amount: int = 1) -> ReservationResult:
        if amount < 1:
            raise ValueError("amount must be positive")

        try:
            with persistence_guard("ledger.try_reserve"):
                async with self.session_factory() as session, session.begin():
                    held = await session.execute(
                        select(CapacityReservation.id).where(
                            CapacityReservation.unit_id == unit_id,
                            CapacityReservation.holder == holder,
                        )
                    )
                    if held.scalar_one_or_none() is not None:
                        logger.debug("capacity_already_reserved", unit_id=unit_id, holder=holder)
                        return ReservationResult.RESERVED

                    result = await session.execute(
                        update(CapacityCounter)
                        .where(
                            CapacityCounter.unit_id == unit_id,
                            or_(
                                CapacityCounter.capacity.is_(None),
                                CapacityCounter.occupancy + amount <= CapacityCounter.capacity,
                            ),
                        )
                        .values(occupancy=CapacityCounter.occupancy + amount)
                        .execution_options(synchronize_session=False)
                    )

                    if result.rowcount == 0:
                        counter = await self._get_counter(session, unit_id)
                        logger.info(
                            "capacity_rejected",
                            unit_id=unit_id,
                            holder=holder,
                            occupancy=counter.occupancy,
                            capacity=counter.capacity,
                        )
                        return ReservationResult.AT_CAPACITY

                    session.add(CapacityReservation(unit_id=unit_id, holder=holder, amount=amount))
        except IntegrityError:
            # Same holder won a concurrent reservation; ours was rolled back whole
            logger.debug("capacity_reserve_raced", unit_id=unit_id, holder=holder)
            return ReservationResult.RESERVED

        logger.info("capacity_reserved", unit_id=unit_id, holder=holder, amount=amount)
        return ReservationResult.RESERVED

    async def release(self, unit_id: str, holder: str) -> None:
        with persistence_guard("ledger.release"):
            async with self.session_factory() as session, session.begin():
                row = await session.execute(
                    select(CapacityReservation.id, CapacityReservation.amount).where(
                        CapacityReservation.unit_id == unit_id,
                        CapacityReservation.holder == holder,
                    )
                )
                reservation = row.first()
                if reservation is None:
                    return

                deleted = await session.execute(
                    delete(CapacityReservation)
                    .where(CapacityReservation.id == reservation.id)
                    .execution_options(synchronize_session=False)
                )
                if deleted.rowcount == 0:
                    # Released concurrently
                    return

                await session.execute(
                    update(CapacityCounter)
                    .where(CapacityCounter.unit_id == unit_id)
                    .values(
                        occupancy=case(
                            (CapacityCounter.occupancy > reservation.amount,
                             CapacityCounter.occupancy - reservation.amount),
                            else_=0,
                        )
                    )
                    .execution_options(synchronize_session=False)
                )

        logger.info("capacity_released", unit_id=unit_id, holder=holder, amount=reservation.amount)

    async def occupancy_of(self, unit_id: str) -> Occupancy:
        with persistence_guard("ledger.occupancy_of"):
            async with self.session_factory() as session:
                counter = await self._get_counter(session, unit_id)
                return Occupancy(unit_id=unit_id, current=counter.occupancy, max=counter.capacity)

    async def recount(self, unit_id: str) -> Occupancy:
        """Set occupancy to the sum of live reservations (reconciliation)."""
        with persistence_guard("ledger.recount"):
            async with self.session_factory() as session, session.begin():
                counter = await self._get_counter(session, unit_id)
                total = await session.execute(
                    select(func.coalesce(func.sum(CapacityReservation.amount), 0)).where(
                        CapacityReservation.unit_id == unit_id
                    )
                )
                live = int(total.scalar_one())
                if live != counter.occupancy:
                    logger.warning(
                        "capacity_recounted",
                        unit_id=unit_id,
                        recorded=counter.occupancy,
                        actual=live,
                    )
                counter.occupancy = live
                return Occupancy(unit_id=unit_id, current=live, max=counter.capacity)

    async def units_held_by(self, holder: str) -> list[tuple[str, str]]:
        with persistence_guard("ledger.units_held_by"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(CapacityReservation.unit_id, CapacityCounter.unit_type)
                    .join(CapacityCounter, CapacityCounter.unit_id == CapacityReservation.unit_id)
                    .where(CapacityReservation.holder == holder)
                    .order_by(CapacityReservation.created_at.asc())
                )
                return [(row.unit_id, row.unit_type) for row in result]

    @staticmethod
    async def _get_counter(session: AsyncSession, unit_id: str) -> CapacityCounter:
        result = await session.execute(
            select(CapacityCounter).where(CapacityCounter.unit_id == unit_id)
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            raise NotFoundError("Admission unit", unit_id)
        return counter
