"""
Activity RSVP endpoints. Activities carry no capacity.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.db.session import get_db
from app.models.rsvp import RSVPStatus
from app.schemas.rsvp import ActivityRSVPRequest, ActivityRSVPResponse
from app.services import activity_service
from app.core.security import get_current_user_id

router = APIRouter(prefix="/activities", tags=["Activities"])


@router.put("/{activity_id}/rsvp", response_model=ActivityRSVPResponse)
async def rsvp_activity_endpoint(
    activity_id: str,
    request: ActivityRSVPRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rsvp = await activity_service.rsvp_activity(
        db, user_id, activity_id, request.status, request.guest_count, request.notes
    )
    await db.commit()
    return rsvp


@router.get("/{activity_id}/rsvp", response_model=ActivityRSVPResponse)
async def get_activity_rsvp_endpoint(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rsvp = await activity_service.get_activity_rsvp(db, user_id, activity_id)
    if rsvp is None:
        raise NotFoundError("Activity RSVP", activity_id)
    return rsvp


@router.delete("/{activity_id}/rsvp", response_model=Optional[ActivityRSVPResponse])
async def cancel_activity_rsvp_endpoint(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    rsvp = await activity_service.cancel_activity_rsvp(db, user_id, activity_id)
    await db.commit()
    return rsvp


@router.get("/{activity_id}/rsvps", response_model=list[ActivityRSVPResponse])
async def list_activity_rsvps_endpoint(
    activity_id: str,
    status: Optional[RSVPStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await activity_service.list_activity_rsvps(db, activity_id, status)
