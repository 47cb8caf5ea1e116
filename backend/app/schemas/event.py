"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    starts_at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    capacity: Optional[int] = Field(None, ge=0, le=100000)  # None = unlimited


class EventResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    starts_at: Optional[datetime]
    location: Optional[str]
    capacity: Optional[int]
    has_tracks: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int


class CapacityUpdate(BaseModel):
    capacity: Optional[int] = Field(..., ge=0, le=100000)


class ActivityCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class ActivityResponse(BaseModel):
    id: str
    event_id: str
    title: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]

    model_config = {"from_attributes": True}
