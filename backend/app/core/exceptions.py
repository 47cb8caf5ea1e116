"""
Exception hierarchy for the admission engine.

Rejections (Ineligible, TrackConflict, AtCapacity) are recoverable and
carry enough detail for the caller to show an actionable message.
All exceptions inherit from AdmissionError for consistent handling.
"""

from typing import Optional


class AdmissionError(Exception):
    """Base exception for all admission errors."""

    status_code = 400

    def __init__(
        self,
        message: str,
        error_code: str = "ADMISSION_ERROR",
        details: Optional[dict] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class IneligibleError(AdmissionError):
    """User profile is missing fields required before admission."""

    status_code = 422

    def __init__(self, missing_fields: list[str], labels: Optional[list[str]] = None, percent: int = 0):
        self.missing_fields = list(missing_fields)
        labels = labels or self.missing_fields
        super().__init__(
            message=f"Complete your profile before RSVPing. Missing: {', '.join(labels)}",
            error_code="PROFILE_INCOMPLETE",
            details={
                "missing_fields": self.missing_fields,
                "missing_labels": list(labels),
                "completion_percentage": percent,
            },
        )


class TrackConflictError(AdmissionError):
    """Proposed track collides with a track already held in an exclusive group."""

    status_code = 409

    def __init__(self, group_id: str, group_name: str, conflicting_tracks: dict[str, str]):
        self.group_id = group_id
        self.group_name = group_name
        # track id -> track name
        self.conflicting_tracks = dict(conflicting_tracks)
        names = ", ".join(self.conflicting_tracks.values())
        super().__init__(
            message=f"You already selected {names} in '{group_name}'. Only one track per group is allowed.",
            error_code="TRACK_CONFLICT",
            details={
                "group_id": group_id,
                "group_name": group_name,
                "conflicting_track_ids": list(self.conflicting_tracks),
                "conflicting_track_names": list(self.conflicting_tracks.values()),
            },
        )


class AtCapacityError(AdmissionError):
    """Admission unit has no free slot. The caller may offer the waitlist."""

    status_code = 409

    def __init__(self, unit_id: str, unit_type: str):
        self.unit_id = unit_id
        self.unit_type = unit_type
        super().__init__(
            message=f"This {unit_type} is full. You can join the waitlist instead.",
            error_code="AT_CAPACITY",
            details={"unit_id": unit_id, "unit_type": unit_type, "waitlist_available": True},
        )


class CapacityChangeRefusedError(AdmissionError):
    """New capacity would be below the number of slots already taken."""

    status_code = 409

    def __init__(self, unit_id: str, capacity: int, occupancy: Optional[int] = None):
        super().__init__(
            message=f"Capacity cannot be lowered to {capacity}: more slots are already taken",
            error_code="CAPACITY_BELOW_OCCUPANCY",
            details={"unit_id": unit_id, "capacity": capacity, "occupancy": occupancy},
        )


class InvalidTransitionError(AdmissionError):
    status_code = 409

    def __init__(self, current: Optional[str], target: str):
        self.current = current
        self.target = target
        super().__init__(
            message=f"Cannot change RSVP from {current or 'none'} to {target}",
            error_code="INVALID_TRANSITION",
            details={"current": current, "target": target},
        )


class InvalidTrackError(AdmissionError):
    status_code = 400

    def __init__(self, track_id: str, reason: str):
        super().__init__(
            message=f"Track {track_id} cannot be selected: {reason}",
            error_code="INVALID_TRACK",
            details={"track_id": track_id, "reason": reason},
        )


class NotFoundError(AdmissionError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity} {entity_id} not found",
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class PersistenceError(AdmissionError):
    """Transient database failure. Retried with backoff before surfacing."""

    status_code = 503

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        super().__init__(
            message="The RSVP could not be saved right now. Please try again.",
            error_code="PERSISTENCE_FAILURE",
            details={"operation": operation, "cause": type(cause).__name__ if cause else None},
        )
