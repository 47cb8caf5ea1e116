"""
Admission orchestrator: the single entry point for every RSVP change.

CONSISTENCY STRATEGY: Reserve, Persist, Compensate
==================================================

Problem:
  Capacity and RSVP rows are written in separate transactions. If the
  RSVP write fails after a slot was reserved, the slot leaks and the
  track looks fuller than it is.

Solution:
  1. Eligibility gate (profile complete?)
  2. Track group resolver (exclusive group conflict?)
  3. Capacity ledger: reserve every unit the admission needs, or none
  4. RSVP state machine: persist the transition
  5. If step 4 does not commit (error or task cancellation), release what
     step 3 took. The release is shielded from cancellation.

  Reservations are keyed by holder "rsvp:{user_id}:{event_id}", so a
  retried operation never double counts and a cancel releases exactly
  what the holder has.

  Transient database failures (PersistenceError) are retried with
  exponential backoff (tenacity). Rejections are never retried.

Ordering of a confirmation: track slot first, then the event slot. On a
track change the new track is reserved before the old one is released,
so a failed change leaves the user on the old track.
"""

import asyncio
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    AdmissionError,
    AtCapacityError,
    InvalidTrackError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)
from app.core.logging import get_logger
from app.core.metrics import (
    admission_latency,
    notification_failures,
    record_admission,
    record_compensation,
    record_release,
    record_reservation,
    record_retry,
)
from app.db.session import persistence_guard
from app.models.event import Event
from app.models.rsvp import EventRSVP, RSVPStatus
from app.services.cache_service import invalidate_capacity_cache
from app.services.eligibility_service import DatabaseProfileProvider, Eligibility, EligibilityGate
from app.services.interfaces.ledger import CapacityLedger, Occupancy
from app.services.interfaces.notifier import Notifier
from app.services.interfaces.profile import ProfileProvider
from app.services.ledger_service import SqlCapacityLedger
from app.services.notification_service import LoggingNotifier
from app.services.rsvp_state import CANCELLABLE, RSVPStateMachine
from app.services.track_service import TrackGroupResolver

logger = get_logger(__name__)

S = RSVPStatus

Unit = tuple[str, str]  # (unit_id, unit_type)


def holder_key(user_id: str, event_id: str) -> str:
    return f"rsvp:{user_id}:{event_id}"


class AdmissionOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: Optional[CapacityLedger] = None,
        profiles: Optional[ProfileProvider] = None,
        notifier: Optional[Notifier] = None,
        state_machine: Optional[RSVPStateMachine] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.ledger = ledger or SqlCapacityLedger(session_factory)
        self.gate = EligibilityGate(profiles or DatabaseProfileProvider(session_factory))
        self.resolver = TrackGroupResolver(session_factory)
        self.rsvps = state_machine or RSVPStateMachine(session_factory)
        self.notifier = notifier or LoggingNotifier()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def request_admission(
        self,
        user_id: str,
        event_id: str,
        status: RSVPStatus = S.ATTENDING,
        guest_count: int = 1,
        notes: Optional[str] = None,
    ) -> EventRSVP:
        """
        RSVP to an event.

        Events without tracks go straight to ATTENDING (capacity permitting).
        Events with tracks go to PENDING until a track is confirmed.
        MAYBE and NOT_ATTENDING never touch capacity.
        """
        return await self._run(
            "request_admission", self._request_admission, user_id, event_id, status, guest_count, notes
        )

    async def confirm_track(
        self,
        user_id: str,
        event_id: str,
        track_id: str,
        join_waitlist: bool = False,
    ) -> EventRSVP:
        """
        Admit a PENDING or WAITLIST RSVP to a track, or add a compatible
        track to an ATTENDING one.

        When the track or event is full, raises AtCapacityError and the RSVP
        keeps its status, unless `join_waitlist` is set.
        """
        return await self._run(
            "confirm_track", self._confirm_track, user_id, event_id, track_id, join_waitlist
        )

    async def join_waitlist(self, user_id: str, event_id: str, track_id: Optional[str] = None) -> EventRSVP:
        return await self._run("join_waitlist", self._join_waitlist, user_id, event_id, track_id)

    async def change_track(
        self,
        user_id: str,
        event_id: str,
        from_track_id: str,
        to_track_id: str,
    ) -> EventRSVP:
        """Swap one held track for another. On any failure the old track is kept."""
        return await self._run(
            "change_track", self._change_track, user_id, event_id, from_track_id, to_track_id
        )

    async def cancel(self, user_id: str, event_id: str) -> Optional[EventRSVP]:
        """Release everything the RSVP holds and mark it not_attending. Idempotent."""
        return await self._run("cancel", self._cancel, user_id, event_id)

    async def get_occupancy(self, unit_id: str) -> Occupancy:
        return await self.ledger.occupancy_of(unit_id)

    async def recount_unit(self, unit_id: str) -> Occupancy:
        """Reconcile a unit's counter with its live reservations, e.g. after a failed track release."""
        occupancy = await self.ledger.recount(unit_id)
        await invalidate_capacity_cache(unit_id)
        logger.info("unit_recounted", unit_id=unit_id, current=occupancy.current, max=occupancy.max)
        return occupancy

    async def get_rsvp(self, user_id: str, event_id: str) -> EventRSVP:
        rsvp = await self.rsvps.get(user_id, event_id)
        if rsvp is None:
            raise NotFoundError("RSVP", event_id)
        return rsvp

    async def check_eligibility(self, user_id: str, event_id: str) -> Eligibility:
        await self._get_event(event_id)
        return await self.gate.check_eligibility(user_id, event_id)

    # ------------------------------------------------------------------
    # Operation bodies (one attempt each)
    # ------------------------------------------------------------------

    async def _request_admission(
        self,
        user_id: str,
        event_id: str,
        status: RSVPStatus,
        guest_count: int,
        notes: Optional[str],
    ) -> EventRSVP:
        if guest_count < 1:
            raise ValueError("guest_count must be at least 1")

        event = await self._get_event(event_id)
        existing = await self.rsvps.get(user_id, event_id)
        current = existing.status if existing else None

        if status == S.NOT_ATTENDING:
            if existing is not None and current in CANCELLABLE:
                return await self._cancel(user_id, event_id)
            if existing is None:
                # Declining skips the eligibility gate; unknown users still get NotFoundError
                await self.gate.profiles.check_completeness(user_id)
            return await self.rsvps.upsert_status(user_id, event_id, S.NOT_ATTENDING, notes=notes)

        if status == S.WAITLIST:
            return await self._join_waitlist(user_id, event_id, None)

        if status not in (S.ATTENDING, S.MAYBE):
            raise InvalidTransitionError(current.value if current else None, status.value)

        await self.gate.ensure_eligible(user_id, event_id)

        if status == S.MAYBE:
            return await self.rsvps.upsert_status(user_id, event_id, S.MAYBE, guest_count, notes=notes)

        if current == S.ATTENDING:
            return existing

        if event.has_tracks:
            if current in (S.PENDING, S.WAITLIST):
                return existing
            rsvp = await self.rsvps.upsert_status(user_id, event_id, S.PENDING, guest_count, notes=notes)
            record_admission("request_admission", "pending")
            return rsvp

        units = [(event_id, "event")]
        full = await self._reserve_all("request_admission", user_id, event_id, units, self._amount(guest_count))
        if full is not None:
            raise AtCapacityError(*full)

        committed = False
        try:
            rsvp = await self.rsvps.upsert_status(
                user_id,
                event_id,
                S.ATTENDING,
                guest_count,
                notes=notes,
                holder=holder_key(user_id, event_id),
                held_units=[event_id],
            )
            committed = True
        finally:
            if not committed:
                await asyncio.shield(self._compensate("request_admission", user_id, event_id, units))

        await self._after_admission(rsvp, units)
        record_admission("request_admission", "attending")
        return rsvp

    async def _confirm_track(
        self,
        user_id: str,
        event_id: str,
        track_id: str,
        join_waitlist: bool,
    ) -> EventRSVP:
        await self._get_event(event_id)
        rsvp = await self.rsvps.get(user_id, event_id)
        if rsvp is None or rsvp.status not in (S.PENDING, S.WAITLIST, S.ATTENDING):
            raise InvalidTransitionError(rsvp.status.value if rsvp else None, S.ATTENDING.value)

        if track_id in rsvp.track_ids:
            return rsvp

        await self.gate.ensure_eligible(user_id, event_id)
        selection = await self.resolver.validate_selection(event_id, track_id, rsvp.track_ids)
        selection.raise_for_conflict()

        units: list[Unit] = [(track_id, "track")]
        if rsvp.status != S.ATTENDING:
            # First admission also takes a slot of the event itself
            units.append((event_id, "event"))

        full = await self._reserve_all("confirm_track", user_id, event_id, units, self._amount(rsvp.guest_count))
        if full is not None:
            if join_waitlist:
                waitlisted = await self.rsvps.move_to_waitlist(user_id, event_id, track_id)
                record_admission("confirm_track", "waitlist")
                return waitlisted
            raise AtCapacityError(*full)

        committed = False
        try:
            admitted = await self._persist_track(
                user_id, event_id, track_id, selection.exclusive_group_id, None, units
            )
            committed = True
        finally:
            if not committed:
                await asyncio.shield(self._compensate("confirm_track", user_id, event_id, units))

        await self._after_admission(admitted, units, newly_attending=rsvp.status != S.ATTENDING)
        record_admission("confirm_track", "attending")
        return admitted

    async def _join_waitlist(self, user_id: str, event_id: str, track_id: Optional[str]) -> EventRSVP:
        await self._get_event(event_id)
        await self.gate.ensure_eligible(user_id, event_id)
        if track_id is not None:
            await self.resolver.get_track(event_id, track_id)

        rsvp = await self.rsvps.move_to_waitlist(user_id, event_id, track_id)
        record_admission("join_waitlist", "waitlist")
        return rsvp

    async def _change_track(
        self,
        user_id: str,
        event_id: str,
        from_track_id: str,
        to_track_id: str,
    ) -> EventRSVP:
        await self._get_event(event_id)
        rsvp = await self.rsvps.get(user_id, event_id)
        if rsvp is None or rsvp.status != S.ATTENDING:
            raise InvalidTransitionError(rsvp.status.value if rsvp else None, S.ATTENDING.value)
        if from_track_id not in rsvp.track_ids:
            raise InvalidTrackError(from_track_id, "track is not part of this RSVP")
        if from_track_id == to_track_id:
            return rsvp
        if to_track_id in rsvp.track_ids:
            raise InvalidTrackError(to_track_id, "track is already selected")

        remaining = rsvp.track_ids - {from_track_id}
        selection = await self.resolver.validate_selection(event_id, to_track_id, remaining)
        selection.raise_for_conflict()

        units: list[Unit] = [(to_track_id, "track")]
        full = await self._reserve_all("change_track", user_id, event_id, units, self._amount(rsvp.guest_count))
        if full is not None:
            raise AtCapacityError(*full)

        committed = False
        try:
            changed = await self._persist_track(
                user_id, event_id, to_track_id, selection.exclusive_group_id, from_track_id, units
            )
            committed = True
        finally:
            if not committed:
                await asyncio.shield(self._compensate("change_track", user_id, event_id, units))

        holder = holder_key(user_id, event_id)
        try:
            await self.ledger.release(from_track_id, holder)
            record_release("track")
        except PersistenceError:
            # The RSVP already moved; the stale hold is dropped by the next cancel
            logger.error(
                "track_release_failed",
                user_id=user_id,
                event_id=event_id,
                track_id=from_track_id,
                exc_info=True,
            )

        await self._after_admission(changed, [(from_track_id, "track"), *units], newly_attending=False)
        record_admission("change_track", "attending")
        return changed

    async def _cancel(self, user_id: str, event_id: str) -> Optional[EventRSVP]:
        rsvp = await self.rsvps.get(user_id, event_id)
        if rsvp is None:
            return None

        holder = holder_key(user_id, event_id)
        held = await self.ledger.units_held_by(holder)
        # Tracks before the event slot
        held.sort(key=lambda unit: unit[1] == "event")
        for unit_id, unit_type in held:
            await self.ledger.release(unit_id, holder)
            record_release(unit_type)

        if rsvp.status != S.NOT_ATTENDING:
            rsvp = await self.rsvps.mark_not_attending(user_id, event_id)

        if held:
            await invalidate_capacity_cache(event_id, *(unit_id for unit_id, _ in held))
        record_admission("cancel", "not_attending")
        return rsvp

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(self, operation: str, func, *args):
        """Run one operation with retry on transient persistence failures."""
        start = time.perf_counter()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.ADMISSION_MAX_RETRIES),
            wait=wait_exponential(
                multiplier=self.settings.ADMISSION_RETRY_MIN_WAIT,
                min=self.settings.ADMISSION_RETRY_MIN_WAIT,
                max=self.settings.ADMISSION_RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type(PersistenceError),
            before_sleep=lambda state: self._on_retry(operation, state),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await func(*args)
            return result
        except AdmissionError as exc:
            record_admission(operation, exc.error_code.lower())
            raise
        finally:
            admission_latency.labels(operation=operation).observe(time.perf_counter() - start)

    @staticmethod
    def _on_retry(operation: str, state) -> None:
        record_retry(operation)
        logger.warning(
            "admission_retry",
            operation=operation,
            attempt=state.attempt_number,
            error=str(state.outcome.exception()),
        )

    def _amount(self, guest_count: int) -> int:
        return guest_count if self.settings.CAPACITY_SCALES_WITH_GUESTS else 1

    async def _get_event(self, event_id: str) -> Event:
        with persistence_guard("admission.get_event"):
            async with self.session_factory() as session:
                event = (await session.execute(select(Event).where(Event.id == event_id))).scalar_one_or_none()
        if event is None:
            raise NotFoundError("Event", event_id)
        return event

    async def _reserve_all(
        self,
        operation: str,
        user_id: str,
        event_id: str,
        units: list[Unit],
        amount: int,
    ) -> Optional[Unit]:
        """Reserve every unit or none. Returns the unit that was full, if any."""
        holder = holder_key(user_id, event_id)
        taken: list[Unit] = []
        done = False
        try:
            for unit_id, unit_type in units:
                result = await self.ledger.try_reserve(unit_id, holder, amount)
                record_reservation(unit_type, bool(result))
                if not result:
                    return unit_id, unit_type
                taken.append((unit_id, unit_type))
            done = True
            return None
        finally:
            if not done and taken:
                await asyncio.shield(self._compensate(operation, user_id, event_id, taken))

    async def _persist_track(
        self,
        user_id: str,
        event_id: str,
        track_id: str,
        exclusive_group_id: Optional[str],
        replace_track_id: Optional[str],
        reserved: list[Unit],
    ) -> EventRSVP:
        holder = holder_key(user_id, event_id)
        held_units = [unit_id for unit_id, _ in reserved]
        try:
            if replace_track_id is not None:
                return await self.rsvps.swap_track(
                    user_id, event_id, replace_track_id, track_id, exclusive_group_id,
                    holder=holder, held_units=held_units,
                )
            return await self.rsvps.admit_to_track(
                user_id, event_id, track_id, exclusive_group_id,
                holder=holder, held_units=held_units,
            )
        except IntegrityError:
            # A concurrent request by the same user took a track in this group
            current = await self.rsvps.get(user_id, event_id)
            held = current.track_ids if current else set()
            if replace_track_id is not None:
                held = held - {replace_track_id}
            again = await self.resolver.validate_selection(event_id, track_id, held)
            again.raise_for_conflict()
            raise

    async def _compensate(self, operation: str, user_id: str, event_id: str, units: list[Unit]) -> None:
        """
        Release reservations that no persisted RSVP accounts for.

        A unit stays held when the stored RSVP is attending on it, which
        happens when a concurrent request by the same holder committed.
        """
        holder = holder_key(user_id, event_id)
        try:
            current = await self.rsvps.get(user_id, event_id)
        except PersistenceError:
            current = None

        released: list[str] = []
        for unit_id, unit_type in units:
            if current is not None and current.status == S.ATTENDING and (
                unit_type == "event" or unit_id in current.track_ids
            ):
                continue
            try:
                await self.ledger.release(unit_id, holder)
            except Exception:
                logger.error(
                    "compensation_failed",
                    operation=operation,
                    unit_id=unit_id,
                    holder=holder,
                    exc_info=True,
                )
                continue
            released.append(unit_id)
            record_release(unit_type)
            record_compensation(operation)
            logger.warning("compensation_released", operation=operation, unit_id=unit_id, holder=holder)

        if released:
            # A snapshot cached between the reserve and this release would still show the slot taken
            await invalidate_capacity_cache(event_id, *released)

    async def _after_admission(
        self,
        rsvp: EventRSVP,
        units: list[Unit],
        newly_attending: bool = True,
    ) -> None:
        await invalidate_capacity_cache(rsvp.event_id, *(unit_id for unit_id, _ in units))
        if newly_attending and rsvp.status == S.ATTENDING:
            await self._notify_attending(rsvp)

    async def _notify_attending(self, rsvp: EventRSVP) -> None:
        """Best effort: the admission has already committed."""
        try:
            await asyncio.wait_for(
                self.notifier.notify_attending(rsvp.user_id, rsvp.event_id, rsvp.track_id),
                timeout=self.settings.NOTIFY_TIMEOUT,
            )
        except Exception as exc:
            notification_failures.inc()
            logger.warning(
                "notification_failed",
                user_id=rsvp.user_id,
                event_id=rsvp.event_id,
                error=repr(exc),
            )


def build_orchestrator(session_factory: async_sessionmaker[AsyncSession]) -> AdmissionOrchestrator:
    return AdmissionOrchestrator(session_factory)
