from app.schemas.event import (
    EventCreate, EventResponse, EventListResponse, CapacityUpdate, ActivityCreate, ActivityResponse,
)
from app.schemas.track import (
    TrackGroupCreate, TrackGroupResponse, TrackCreate, TrackResponse, TrackWithCapacity,
    TrackListResponse, TrackActivityResponse,
)
from app.schemas.rsvp import (
    RSVPRequest, TrackConfirm, TrackChange, WaitlistRequest, RSVPResponse, RSVPStats,
    EligibilityResponse, OccupancyResponse, ActivityRSVPRequest, ActivityRSVPResponse,
)

__all__ = [
    "EventCreate", "EventResponse", "EventListResponse", "CapacityUpdate",
    "ActivityCreate", "ActivityResponse",
    "TrackGroupCreate", "TrackGroupResponse", "TrackCreate", "TrackResponse",
    "TrackWithCapacity", "TrackListResponse", "TrackActivityResponse",
    "RSVPRequest", "TrackConfirm", "TrackChange", "WaitlistRequest", "RSVPResponse", "RSVPStats",
    "EligibilityResponse", "OccupancyResponse", "ActivityRSVPRequest", "ActivityRSVPResponse",
]
