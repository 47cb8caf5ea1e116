"""
Event topology service: events, track groups, tracks and activities.

Every admission unit (event or track) gets its capacity counter in the
same transaction as its row, so a unit can never exist without one.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from app.core.exceptions import CapacityChangeRefusedError, InvalidTrackError, NotFoundError
from app.core.logging import get_logger
from app.models.capacity import CapacityCounter
from app.models.event import Activity, Event, Track, TrackActivity, TrackGroup
from app.schemas.event import ActivityCreate, EventCreate
from app.schemas.track import TrackCreate, TrackGroupCreate
from app.services.ledger_service import add_counter, apply_capacity

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    """Create an event and its capacity counter."""
    if event_data.starts_at is not None and _as_utc(event_data.starts_at) <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )

    event = Event(
        title=event_data.title,
        description=event_data.description,
        starts_at=event_data.starts_at,
        location=event_data.location,
        capacity=event_data.capacity,
        has_tracks=False,
    )
    db.add(event)
    await db.flush()
    add_counter(db, event.id, "event", event.capacity)
    await db.flush()

    logger.info("event_created", event_id=event.id, title=event.title, capacity=event.capacity)
    return event


async def get_event(db: AsyncSession, event_id: str) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise NotFoundError("Event", event_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = False,
) -> tuple[list[Event], int]:
    """
    List events with pagination.
    Undated events sort last; uses the ix_events_starts_at index.
    """
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.starts_at >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.starts_at.is_(None), Event.starts_at.asc(), Event.created_at.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def delete_event(db: AsyncSession, event_id: str) -> list[str]:
    """
    Delete an event with its groups, tracks, activities and RSVPs.

    Returns the unit ids whose counters were removed.
    """
    event = await get_event(db, event_id)
    track_ids = list((await db.execute(select(Track.id).where(Track.event_id == event_id))).scalars())
    unit_ids = [event_id, *track_ids]

    await db.execute(
        delete(CapacityCounter)
        .where(CapacityCounter.unit_id.in_(unit_ids))
        .execution_options(synchronize_session=False)
    )
    await db.delete(event)
    await db.flush()

    logger.info("event_deleted", event_id=event_id, tracks=len(track_ids))
    return unit_ids


async def update_event_capacity(db: AsyncSession, event_id: str, capacity: Optional[int]) -> Event:
    event = await get_event(db, event_id)
    await _change_capacity(db, event_id, capacity)
    event.capacity = capacity
    await db.flush()
    return event


async def create_track_group(db: AsyncSession, event_id: str, group_data: TrackGroupCreate) -> TrackGroup:
    await get_event(db, event_id)
    group = TrackGroup(
        event_id=event_id,
        name=group_data.name,
        is_mutually_exclusive=group_data.is_mutually_exclusive,
        display_order=group_data.display_order,
    )
    db.add(group)
    await db.flush()

    logger.info(
        "track_group_created",
        event_id=event_id,
        group_id=group.id,
        name=group.name,
        exclusive=group.is_mutually_exclusive,
    )
    return group


async def create_track(db: AsyncSession, event_id: str, track_data: TrackCreate) -> Track:
    """Create a track, register its counter and flag the event as tracked."""
    event = await get_event(db, event_id)

    if track_data.group_id is not None:
        group = await db.get(TrackGroup, track_data.group_id)
        if group is None or group.event_id != event_id:
            raise NotFoundError("Track group", track_data.group_id)

    track = Track(
        event_id=event_id,
        group_id=track_data.group_id,
        name=track_data.name,
        description=track_data.description,
        capacity=track_data.capacity,
        display_order=track_data.display_order,
        is_active=True,
    )
    db.add(track)
    await db.flush()
    add_counter(db, track.id, "track", track.capacity)
    event.has_tracks = True
    await db.flush()

    logger.info(
        "track_created",
        event_id=event_id,
        track_id=track.id,
        group_id=track.group_id,
        capacity=track.capacity,
    )
    return track


async def get_track(db: AsyncSession, track_id: str) -> Track:
    track = await db.get(Track, track_id)
    if track is None:
        raise NotFoundError("Track", track_id)
    return track


async def update_track_capacity(db: AsyncSession, track_id: str, capacity: Optional[int]) -> Track:
    track = await get_track(db, track_id)
    await _change_capacity(db, track_id, capacity)
    track.capacity = capacity
    await db.flush()
    return track


async def create_activity(db: AsyncSession, event_id: str, activity_data: ActivityCreate) -> Activity:
    await get_event(db, event_id)
    activity = Activity(
        event_id=event_id,
        title=activity_data.title,
        starts_at=activity_data.starts_at,
        ends_at=activity_data.ends_at,
    )
    db.add(activity)
    await db.flush()

    logger.info("activity_created", event_id=event_id, activity_id=activity.id)
    return activity


async def assign_activity_to_track(
    db: AsyncSession,
    track_id: str,
    activity_id: str,
    position: Optional[int] = None,
) -> TrackActivity:
    """Attach an activity to a track. Without a position it goes last."""
    track = await get_track(db, track_id)
    activity = await db.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity", activity_id)
    if activity.event_id != track.event_id:
        raise InvalidTrackError(track_id, "activity belongs to a different event")

    existing = await db.execute(
        select(TrackActivity).where(
            TrackActivity.track_id == track_id,
            TrackActivity.activity_id == activity_id,
        )
    )
    link = existing.scalar_one_or_none()
    if link is not None:
        return link

    if position is None:
        last = await db.execute(
            select(func.max(TrackActivity.position)).where(TrackActivity.track_id == track_id)
        )
        highest = last.scalar()
        position = 0 if highest is None else highest + 1

    link = TrackActivity(track_id=track_id, activity_id=activity_id, position=position)
    db.add(link)
    await db.flush()

    logger.info("activity_assigned", track_id=track_id, activity_id=activity_id, position=position)
    return link


async def _change_capacity(db: AsyncSession, unit_id: str, capacity: Optional[int]) -> None:
    if not await apply_capacity(db, unit_id, capacity):
        counter = await db.get(CapacityCounter, unit_id)
        raise CapacityChangeRefusedError(unit_id, capacity, counter.occupancy if counter else None)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
