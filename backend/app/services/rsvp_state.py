"""
RSVP state machine.

One RSVP row per (user, event). Every status change goes through
check_transition, so illegal moves (e.g. waitlist -> pending) are rejected
in one place instead of being silently accepted by an upsert.

    NONE ──request──> PENDING ──confirm──> ATTENDING ──change track──> ATTENDING
      │                  │  └─full/waitlist─> WAITLIST ──confirm──> ATTENDING
      ├──direct (no tracks)─────────────────> ATTENDING
      └──> MAYBE                    any non-terminal ──cancel──> NOT_ATTENDING

This module only persists RSVP rows. Capacity is the orchestrator's job; the
state machine only checks that a reservation it is told about still exists.
"""

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.core.logging import get_logger
from app.db.session import persistence_guard
from app.models.capacity import CapacityReservation
from app.models.rsvp import EventRSVP, RSVPStatus, RSVPTrackSelection

logger = get_logger(__name__)

S = RSVPStatus

# Every status is a key; None is "no RSVP yet". Re-requesting the current
# status is allowed so repeated calls are idempotent.
ALLOWED_TRANSITIONS: dict[Optional[RSVPStatus], frozenset[RSVPStatus]] = {
    None: frozenset({S.PENDING, S.ATTENDING, S.WAITLIST, S.MAYBE, S.NOT_ATTENDING}),
    S.PENDING: frozenset({S.PENDING, S.ATTENDING, S.WAITLIST, S.MAYBE, S.NOT_ATTENDING}),
    S.WAITLIST: frozenset({S.WAITLIST, S.ATTENDING, S.NOT_ATTENDING}),
    S.MAYBE: frozenset({S.MAYBE, S.PENDING, S.ATTENDING, S.WAITLIST, S.NOT_ATTENDING}),
    S.ATTENDING: frozenset({S.ATTENDING, S.NOT_ATTENDING}),
    S.NOT_ATTENDING: frozenset({S.NOT_ATTENDING, S.PENDING, S.ATTENDING, S.WAITLIST, S.MAYBE}),
}

# Statuses from which `cancel` releases capacity and moves to NOT_ATTENDING
CANCELLABLE = frozenset({S.PENDING, S.ATTENDING, S.WAITLIST, S.MAYBE})


def can_transition(current: Optional[RSVPStatus], target: RSVPStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(current: Optional[RSVPStatus], target: RSVPStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value if current else None, target.value)


class RSVPStateMachine:
    """Persists RSVP transitions; each method is one short transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, user_id: str, event_id: str) -> Optional[EventRSVP]:
        with persistence_guard("rsvp.get"):
            async with self.session_factory() as session:
                return await self._load(session, user_id, event_id)

    async def upsert_status(
        self,
        user_id: str,
        event_id: str,
        target: RSVPStatus,
        guest_count: Optional[int] = None,
        track_id: Optional[str] = None,
        notes: Optional[str] = None,
        holder: Optional[str] = None,
        held_units: Iterable[str] = (),
    ) -> EventRSVP:
        """
        Create or move the (user, event) RSVP to `target`.

        With `holder`, every unit in `held_units` must still carry the
        holder's reservation when the row is written, else the move is
        rejected with InvalidTransitionError.
        """
        held_units = list(held_units)
        for attempt in (1, 2):
            try:
                with persistence_guard("rsvp.upsert_status"):
                    async with self.session_factory() as session, session.begin():
                        rsvp = await self._load(session, user_id, event_id, for_update=True)
                        current = rsvp.status if rsvp else None
                        check_transition(current, target)
                        await self._ensure_held(session, holder, held_units, current, target)

                        if rsvp is None:
                            rsvp = EventRSVP(
                                user_id=user_id,
                                event_id=event_id,
                                status=target,
                                guest_count=guest_count or 1,
                                track_id=track_id,
                                notes=notes,
                            )
                            session.add(rsvp)
                        else:
                            rsvp.status = target
                            if guest_count is not None:
                                rsvp.guest_count = guest_count
                            if track_id is not None:
                                rsvp.track_id = track_id
                            if notes is not None:
                                rsvp.notes = notes
                        await session.flush()
                        await session.refresh(rsvp, attribute_names=["selections"])
            except IntegrityError:
                # Another request created the row first; apply ours as an update
                if attempt == 2:
                    raise
                logger.info("rsvp_upsert_retry", user_id=user_id, event_id=event_id)
                continue

            logger.info(
                "rsvp_status_changed",
                rsvp_id=rsvp.id,
                user_id=user_id,
                event_id=event_id,
                from_status=current.value if current else None,
                to_status=target.value,
            )
            return rsvp

        raise AssertionError("unreachable")

    async def admit_to_track(
        self,
        user_id: str,
        event_id: str,
        track_id: str,
        exclusive_group_id: Optional[str],
        replace_track_id: Optional[str] = None,
        holder: Optional[str] = None,
        held_units: Iterable[str] = (),
    ) -> EventRSVP:
        """
        Move to ATTENDING holding `track_id`, optionally dropping `replace_track_id`.

        Raises IntegrityError when the user already holds another track of the
        same exclusive group (concurrent confirmation lost the race), and
        InvalidTransitionError when a unit in `held_units` lost the holder's
        reservation (a concurrent cancel released it).
        """
        held_units = list(held_units)
        with persistence_guard("rsvp.admit_to_track"):
            async with self.session_factory() as session, session.begin():
                rsvp = await self._require(session, user_id, event_id)
                current = rsvp.status
                check_transition(current, S.ATTENDING)
                await self._ensure_held(session, holder, held_units, current, S.ATTENDING)

                if replace_track_id is not None:
                    for selection in list(rsvp.selections):
                        if selection.track_id == replace_track_id:
                            rsvp.selections.remove(selection)
                    # Deletes must reach the database before the insert that may reuse the group slot
                    await session.flush()

                if track_id not in rsvp.track_ids:
                    rsvp.selections.append(
                        RSVPTrackSelection(track_id=track_id, exclusive_group_id=exclusive_group_id)
                    )
                rsvp.track_id = track_id
                rsvp.status = S.ATTENDING
                await session.flush()

        logger.info(
            "rsvp_track_admitted",
            rsvp_id=rsvp.id,
            user_id=user_id,
            event_id=event_id,
            track_id=track_id,
            replaced_track_id=replace_track_id,
            from_status=current.value,
        )
        return rsvp

    async def swap_track(
        self,
        user_id: str,
        event_id: str,
        old_track_id: str,
        new_track_id: str,
        exclusive_group_id: Optional[str],
        holder: Optional[str] = None,
        held_units: Iterable[str] = (),
    ) -> EventRSVP:
        return await self.admit_to_track(
            user_id,
            event_id,
            new_track_id,
            exclusive_group_id,
            replace_track_id=old_track_id,
            holder=holder,
            held_units=held_units,
        )

    async def move_to_waitlist(self, user_id: str, event_id: str, track_id: Optional[str] = None) -> EventRSVP:
        """WAITLIST holds no reservation; `track_id` records the track being waited for."""
        return await self.upsert_status(user_id, event_id, S.WAITLIST, track_id=track_id)

    async def mark_not_attending(self, user_id: str, event_id: str) -> Optional[EventRSVP]:
        """Soft cancel: status not_attending, selections cleared. Rows are never deleted."""
        with persistence_guard("rsvp.mark_not_attending"):
            async with self.session_factory() as session, session.begin():
                rsvp = await self._load(session, user_id, event_id, for_update=True)
                if rsvp is None:
                    return None
                current = rsvp.status
                check_transition(current, S.NOT_ATTENDING)

                rsvp.selections.clear()
                rsvp.track_id = None
                rsvp.status = S.NOT_ATTENDING
                await session.flush()

        logger.info(
            "rsvp_cancelled",
            rsvp_id=rsvp.id,
            user_id=user_id,
            event_id=event_id,
            from_status=current.value,
        )
        return rsvp

    @staticmethod
    async def _load(
        session: AsyncSession,
        user_id: str,
        event_id: str,
        for_update: bool = False,
    ) -> Optional[EventRSVP]:
        query = select(EventRSVP).where(
            EventRSVP.user_id == user_id,
            EventRSVP.event_id == event_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def _ensure_held(
        session: AsyncSession,
        holder: Optional[str],
        unit_ids: list[str],
        current: Optional[RSVPStatus],
        target: RSVPStatus,
    ) -> None:
        """
        Reject the write when the holder no longer has a reservation on
        every unit. The reservation rows are locked until the RSVP commits,
        so a release that has not happened yet waits for this transaction.
        """
        if holder is None or not unit_ids:
            return

        result = await session.execute(
            select(CapacityReservation.unit_id)
            .where(
                CapacityReservation.holder == holder,
                CapacityReservation.unit_id.in_(unit_ids),
            )
            .with_for_update()
        )
        missing = set(unit_ids) - set(result.scalars().all())
        if missing:
            logger.warning(
                "rsvp_reservation_missing",
                holder=holder,
                missing_units=sorted(missing),
                from_status=current.value if current else None,
                to_status=target.value,
            )
            raise InvalidTransitionError(current.value if current else None, target.value)

    async def _require(self, session: AsyncSession, user_id: str, event_id: str) -> EventRSVP:
        rsvp = await self._load(session, user_id, event_id, for_update=True)
        if rsvp is None:
            raise NotFoundError("RSVP", f"{user_id}/{event_id}")
        return rsvp
