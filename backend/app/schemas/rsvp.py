"""
RSVP request/response schemas.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from app.models.rsvp import RSVPStatus


class RSVPRequest(BaseModel):
    status: RSVPStatus = RSVPStatus.ATTENDING
    guest_count: int = Field(1, ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=1000)


class TrackConfirm(BaseModel):
    track_id: str
    join_waitlist: bool = False


class TrackChange(BaseModel):
    from_track_id: str
    to_track_id: str


class WaitlistRequest(BaseModel):
    track_id: Optional[str] = None


class RSVPResponse(BaseModel):
    id: str
    user_id: str
    event_id: str
    status: RSVPStatus
    track_id: Optional[str]
    track_ids: list[str] = []
    guest_count: int
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("track_ids", mode="before")
    @classmethod
    def sort_track_ids(cls, value):
        return sorted(value or [])


class RSVPStats(BaseModel):
    going: int = 0
    not_going: int = 0
    maybe: int = 0
    waitlist: int = 0
    pending: int = 0
    total: int = 0


class EligibilityResponse(BaseModel):
    eligible: bool
    missing_fields: list[str]
    missing_labels: list[str]
    completion_percentage: int


class OccupancyResponse(BaseModel):
    unit_id: str
    current: int
    max: Optional[int]
    available: Optional[int]
    is_full: bool
    cached: bool = False


class ActivityRSVPRequest(BaseModel):
    status: RSVPStatus = RSVPStatus.ATTENDING
    guest_count: int = Field(1, ge=1, le=50)
    notes: Optional[str] = Field(None, max_length=1000)


class ActivityRSVPResponse(BaseModel):
    id: str
    user_id: str
    activity_id: str
    status: RSVPStatus
    guest_count: int
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
