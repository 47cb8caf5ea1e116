"""
Event topology endpoints: events, track groups, tracks and activities.
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.event import (
    ActivityCreate, ActivityResponse, CapacityUpdate, EventCreate, EventListResponse, EventResponse,
)
from app.schemas.track import (
    TrackCreate, TrackGroupCreate, TrackGroupResponse, TrackListResponse, TrackResponse,
)
from app.services import event_service
from app.services.track_service import list_event_tracks
from app.services.cache_service import get_cached_tracks, set_cached_tracks, invalidate_capacity_cache
from app.core.security import get_current_user_id
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Requires authentication."""
    event = await event_service.create_event(db, event_data)
    await db.commit()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    events, total = await event_service.list_events(db, page, page_size, upcoming_only)
    return EventListResponse(
        events=[EventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await event_service.get_event(db, event_id)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event with its tracks, activities and RSVPs."""
    unit_ids = await event_service.delete_event(db, event_id)
    await db.commit()
    await invalidate_capacity_cache(event_id, *unit_ids)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{event_id}/capacity", response_model=EventResponse)
async def update_event_capacity_endpoint(
    event_id: str,
    update: CapacityUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Change the event limit. Refused (409) below the current number of attendees."""
    event = await event_service.update_event_capacity(db, event_id, update.capacity)
    await db.commit()
    await invalidate_capacity_cache(event_id)
    return event


@router.post(
    "/{event_id}/track-groups",
    response_model=TrackGroupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_track_group_endpoint(
    event_id: str,
    group_data: TrackGroupCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    group = await event_service.create_track_group(db, event_id, group_data)
    await db.commit()
    return group


@router.post("/{event_id}/tracks", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
async def create_track_endpoint(
    event_id: str,
    track_data: TrackCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    track = await event_service.create_track(db, event_id, track_data)
    await db.commit()
    await invalidate_capacity_cache(event_id)
    return track


@router.get("/{event_id}/tracks", response_model=TrackListResponse)
async def list_tracks_endpoint(
    event_id: str,
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """
    Tracks with group, activities and live occupancy.
    The active listing is cached in Redis for a few seconds.
    """
    if not include_inactive:
        cached = await get_cached_tracks(event_id)
        if cached is not None:
            logger.info("tracks_cache_hit", event_id=event_id)
            return TrackListResponse(tracks=cached, cached=True)

    await event_service.get_event(db, event_id)
    tracks = await list_event_tracks(db, event_id, include_inactive=include_inactive)

    if not include_inactive:
        await set_cached_tracks(event_id, tracks)
    return TrackListResponse(tracks=tracks)


@router.post(
    "/{event_id}/activities",
    response_model=ActivityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_activity_endpoint(
    event_id: str,
    activity_data: ActivityCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    activity = await event_service.create_activity(db, event_id, activity_data)
    await db.commit()
    return activity
