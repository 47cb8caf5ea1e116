"""
RSVP endpoints. Every state change goes through the admission orchestrator.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_orchestrator
from app.db.session import get_db
from app.schemas.rsvp import (
    EligibilityResponse, RSVPRequest, RSVPResponse, RSVPStats, TrackChange, TrackConfirm, WaitlistRequest,
)
from app.services.activity_service import list_user_rsvps, rsvp_stats
from app.services.admission_service import AdmissionOrchestrator
from app.services.event_service import get_event
from app.core.security import get_current_user_id

router = APIRouter(tags=["RSVPs"])


@router.post("/events/{event_id}/rsvp", response_model=RSVPResponse)
async def request_admission_endpoint(
    event_id: str,
    request: RSVPRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    """
    RSVP to an event.

    Without tracks an `attending` RSVP is admitted immediately (409 when
    full). With tracks it stays `pending` until a track is confirmed.
    """
    return await orchestrator.request_admission(
        user_id, event_id, request.status, request.guest_count, request.notes
    )


@router.get("/events/{event_id}/rsvp", response_model=RSVPResponse)
async def get_rsvp_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_rsvp(user_id, event_id)


@router.delete("/events/{event_id}/rsvp", response_model=Optional[RSVPResponse])
async def cancel_rsvp_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    """Cancel and release held capacity. Returns null when there was no RSVP."""
    return await orchestrator.cancel(user_id, event_id)


@router.post("/events/{event_id}/rsvp/track", response_model=RSVPResponse)
async def confirm_track_endpoint(
    event_id: str,
    confirm: TrackConfirm,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    """
    Confirm a track.

    409 TRACK_CONFLICT when another track of the same exclusive group is
    held, 409 AT_CAPACITY when full (unless `join_waitlist` is set).
    """
    return await orchestrator.confirm_track(user_id, event_id, confirm.track_id, confirm.join_waitlist)


@router.put("/events/{event_id}/rsvp/track", response_model=RSVPResponse)
async def change_track_endpoint(
    event_id: str,
    change: TrackChange,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.change_track(user_id, event_id, change.from_track_id, change.to_track_id)


@router.post("/events/{event_id}/rsvp/waitlist", response_model=RSVPResponse)
async def join_waitlist_endpoint(
    event_id: str,
    request: WaitlistRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.join_waitlist(user_id, event_id, request.track_id)


@router.get("/events/{event_id}/rsvp/stats", response_model=RSVPStats)
async def rsvp_stats_endpoint(
    event_id: str,
    db: AsyncSession = Depends(get_db),
):
    await get_event(db, event_id)
    return await rsvp_stats(db, event_id)


@router.get("/events/{event_id}/eligibility", response_model=EligibilityResponse)
async def eligibility_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AdmissionOrchestrator = Depends(get_orchestrator),
):
    """Whether the profile is complete enough to RSVP, and what is missing."""
    eligibility = await orchestrator.check_eligibility(user_id, event_id)
    return EligibilityResponse(
        eligible=eligibility.eligible,
        missing_fields=eligibility.missing_fields,
        missing_labels=eligibility.missing_labels,
        completion_percentage=eligibility.percent,
    )


@router.get("/rsvps/me", response_model=list[RSVPResponse])
async def my_rsvps_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await list_user_rsvps(db, user_id)
