"""
Track and track group schemas.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class TrackGroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    is_mutually_exclusive: bool = True
    display_order: int = 0


class TrackGroupResponse(BaseModel):
    id: str
    event_id: str
    name: str
    is_mutually_exclusive: bool
    display_order: int

    model_config = {"from_attributes": True}


class TrackCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    capacity: Optional[int] = Field(None, ge=0, le=100000)  # None = unlimited
    group_id: Optional[str] = None
    display_order: int = 0


class TrackResponse(BaseModel):
    id: str
    event_id: str
    group_id: Optional[str]
    name: str
    description: Optional[str]
    capacity: Optional[int]
    display_order: int
    is_active: bool

    model_config = {"from_attributes": True}


class TrackActivityInfo(BaseModel):
    id: str
    title: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    position: int


class TrackWithCapacity(BaseModel):
    """Track as shown in the picker: group, activities and live occupancy."""

    id: str
    event_id: str
    name: str
    description: Optional[str]
    display_order: int
    is_active: bool
    group_id: Optional[str]
    group_name: Optional[str]
    is_mutually_exclusive: bool
    capacity: Optional[int]
    current_rsvps: int
    available: Optional[int]
    is_full: bool
    activities: list[TrackActivityInfo] = []


class TrackListResponse(BaseModel):
    tracks: list[TrackWithCapacity]
    cached: bool = False


class TrackActivityResponse(BaseModel):
    track_id: str
    activity_id: str
    position: int

    model_config = {"from_attributes": True}
