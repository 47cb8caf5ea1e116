"""
Track endpoints addressed by track id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.event import CapacityUpdate
from app.schemas.track import TrackActivityResponse, TrackResponse
from app.services import event_service
from app.services.cache_service import invalidate_capacity_cache
from app.core.security import get_current_user_id

router = APIRouter(prefix="/tracks", tags=["Tracks"])


@router.patch("/{track_id}/capacity", response_model=TrackResponse)
async def update_track_capacity_endpoint(
    track_id: str,
    update: CapacityUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Change the track limit. Refused (409) below current occupancy."""
    track = await event_service.update_track_capacity(db, track_id, update.capacity)
    await db.commit()
    await invalidate_capacity_cache(track.event_id, track_id)
    return track


@router.post(
    "/{track_id}/activities/{activity_id}",
    response_model=TrackActivityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_activity_endpoint(
    track_id: str,
    activity_id: str,
    position: Optional[int] = Query(None, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    link = await event_service.assign_activity_to_track(db, track_id, activity_id, position)
    await db.commit()
    return link
