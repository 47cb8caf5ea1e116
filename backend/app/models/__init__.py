from app.models.user import User
from app.models.event import Event, TrackGroup, Track, Activity, TrackActivity
from app.models.rsvp import RSVPStatus, EventRSVP, RSVPTrackSelection, ActivityRSVP
from app.models.capacity import CapacityCounter, CapacityReservation

__all__ = [
    "User",
    "Event", "TrackGroup", "Track", "Activity", "TrackActivity",
    "RSVPStatus", "EventRSVP", "RSVPTrackSelection", "ActivityRSVP",
    "CapacityCounter", "CapacityReservation",
]
