"""
Activity RSVPs and RSVP read models (statistics, "my RSVPs").

Activity RSVPs carry no capacity; they are plain upserts on
(user, activity) and, like event RSVPs, are never deleted.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.event import Activity
from app.models.rsvp import ActivityRSVP, EventRSVP, RSVPStatus
from app.models.user import User
from app.schemas.rsvp import RSVPStats

logger = get_logger(__name__)


async def rsvp_activity(
    db: AsyncSession,
    user_id: str,
    activity_id: str,
    status: RSVPStatus = RSVPStatus.ATTENDING,
    guest_count: int = 1,
    notes: Optional[str] = None,
) -> ActivityRSVP:
    """Create or update the user's RSVP for an activity."""
    activity = await db.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity", activity_id)

    rsvp = await get_activity_rsvp(db, user_id, activity_id)
    if rsvp is None:
        if await db.get(User, user_id) is None:
            raise NotFoundError("User", user_id)
        rsvp = ActivityRSVP(
            user_id=user_id,
            activity_id=activity_id,
            status=status,
            guest_count=guest_count,
            notes=notes,
        )
        try:
            async with db.begin_nested():
                db.add(rsvp)
        except IntegrityError:
            # Created concurrently; update that row instead
            rsvp = await get_activity_rsvp(db, user_id, activity_id)
            if rsvp is None:
                raise
            _apply(rsvp, status, guest_count, notes)
    else:
        _apply(rsvp, status, guest_count, notes)

    await db.flush()
    logger.info(
        "activity_rsvp_saved",
        user_id=user_id,
        activity_id=activity_id,
        status=rsvp.status.value,
    )
    return rsvp


async def get_activity_rsvp(db: AsyncSession, user_id: str, activity_id: str) -> Optional[ActivityRSVP]:
    result = await db.execute(
        select(ActivityRSVP).where(
            ActivityRSVP.user_id == user_id,
            ActivityRSVP.activity_id == activity_id,
        )
    )
    return result.scalar_one_or_none()


async def cancel_activity_rsvp(db: AsyncSession, user_id: str, activity_id: str) -> Optional[ActivityRSVP]:
    """Soft cancel. Returns None when the user never RSVPed."""
    rsvp = await get_activity_rsvp(db, user_id, activity_id)
    if rsvp is None:
        return None
    rsvp.status = RSVPStatus.NOT_ATTENDING
    await db.flush()

    logger.info("activity_rsvp_cancelled", user_id=user_id, activity_id=activity_id)
    return rsvp


async def list_activity_rsvps(
    db: AsyncSession,
    activity_id: str,
    status: Optional[RSVPStatus] = None,
) -> list[ActivityRSVP]:
    activity = await db.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity", activity_id)

    query = select(ActivityRSVP).where(ActivityRSVP.activity_id == activity_id)
    if status is not None:
        query = query.where(ActivityRSVP.status == status)
    result = await db.execute(query.order_by(ActivityRSVP.created_at.asc()))
    return list(result.scalars().all())


async def rsvp_stats(db: AsyncSession, event_id: str) -> RSVPStats:
    """Count RSVPs per status; uses the ix_event_rsvps_event_status index."""
    result = await db.execute(
        select(EventRSVP.status, func.count())
        .where(EventRSVP.event_id == event_id)
        .group_by(EventRSVP.status)
    )
    counts = {status: count for status, count in result.all()}

    return RSVPStats(
        going=counts.get(RSVPStatus.ATTENDING, 0),
        not_going=counts.get(RSVPStatus.NOT_ATTENDING, 0),
        maybe=counts.get(RSVPStatus.MAYBE, 0),
        waitlist=counts.get(RSVPStatus.WAITLIST, 0),
        pending=counts.get(RSVPStatus.PENDING, 0),
        total=sum(counts.values()),
    )


async def list_user_rsvps(db: AsyncSession, user_id: str) -> list[EventRSVP]:
    """All of a user's event RSVPs, newest first."""
    result = await db.execute(
        select(EventRSVP)
        .where(EventRSVP.user_id == user_id)
        .order_by(EventRSVP.created_at.desc())
    )
    return list(result.scalars().all())


def _apply(rsvp: ActivityRSVP, status: RSVPStatus, guest_count: int, notes: Optional[str]) -> None:
    rsvp.status = status
    rsvp.guest_count = guest_count
    if notes is not None:
        rsvp.notes = notes
