"""
Track topology: the group resolver and track listings with capacity.

The resolver enforces "at most one track per mutually-exclusive group".
Ungrouped tracks and tracks in non-exclusive groups combine freely.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.exceptions import InvalidTrackError, NotFoundError, TrackConflictError
from app.core.logging import get_logger
from app.db.session import persistence_guard
from app.models.event import Track, TrackActivity, TrackGroup
from app.models.capacity import CapacityCounter
from app.services.interfaces.ledger import CapacityLedger, Occupancy

logger = get_logger(__name__)


@dataclass(frozen=True)
class SelectionResult:
    valid: bool
    # Group id to store on the selection row; None for free-combining tracks
    exclusive_group_id: Optional[str] = None
    group_name: Optional[str] = None
    conflicting_tracks: dict[str, str] = field(default_factory=dict)

    def raise_for_conflict(self) -> None:
        if not self.valid:
            raise TrackConflictError(self.exclusive_group_id, self.group_name, self.conflicting_tracks)


def resolve_selection(
    track: Track,
    group: Optional[TrackGroup],
    group_tracks: Iterable[Track],
    existing_selections: set[str],
) -> SelectionResult:
    """Check a proposed track against the tracks the user already holds."""
    if group is None or not group.is_mutually_exclusive:
        return SelectionResult(valid=True)

    conflicting = {
        other.id: other.name
        for other in group_tracks
        if other.id != track.id and other.id in existing_selections
    }
    if conflicting:
        return SelectionResult(
            valid=False,
            exclusive_group_id=group.id,
            group_name=group.name,
            conflicting_tracks=conflicting,
        )
    return SelectionResult(valid=True, exclusive_group_id=group.id, group_name=group.name)


class TrackGroupResolver:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_track(self, event_id: str, track_id: str) -> Track:
        """Load a selectable track of the event with its group and sibling tracks."""
        with persistence_guard("tracks.get_track"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Track)
                    .where(Track.id == track_id)
                    .options(selectinload(Track.group).selectinload(TrackGroup.tracks))
                )
                track = result.scalar_one_or_none()

        if track is None:
            raise NotFoundError("Track", track_id)
        if track.event_id != event_id:
            raise InvalidTrackError(track_id, "track belongs to a different event")
        if not track.is_active:
            raise InvalidTrackError(track_id, "track is no longer offered")
        return track

    async def validate_selection(
        self,
        event_id: str,
        proposed_track_id: str,
        existing_selections: set[str],
    ) -> SelectionResult:
        track = await self.get_track(event_id, proposed_track_id)
        group = track.group
        result = resolve_selection(track, group, group.tracks if group else [], existing_selections)
        if not result.valid:
            logger.info(
                "track_conflict",
                event_id=event_id,
                track_id=proposed_track_id,
                group=result.group_name,
                conflicting=list(result.conflicting_tracks.values()),
            )
        return result


async def list_event_tracks(
    db: AsyncSession,
    event_id: str,
    include_inactive: bool = False,
) -> list[dict]:
    """Tracks of an event ordered by display_order, with group, activities and occupancy."""
    query = (
        select(Track)
        .where(Track.event_id == event_id)
        .options(
            selectinload(Track.group),
            selectinload(Track.track_activities).selectinload(TrackActivity.activity),
        )
        .order_by(Track.display_order.asc(), Track.name.asc())
    )
    if not include_inactive:
        query = query.where(Track.is_active.is_(True))

    result = await db.execute(query)
    tracks = list(result.scalars().all())

    # Occupancy read in the same transaction as the topology
    counters = await db.execute(
        select(CapacityCounter).where(CapacityCounter.unit_id.in_([track.id for track in tracks]))
    )
    by_unit = {counter.unit_id: counter for counter in counters.scalars()}

    listing = []
    for track in tracks:
        counter = by_unit.get(track.id)
        occupancy = Occupancy(
            unit_id=track.id,
            current=counter.occupancy if counter else 0,
            max=counter.capacity if counter else track.capacity,
        )
        listing.append({
            "id": track.id,
            "event_id": track.event_id,
            "name": track.name,
            "description": track.description,
            "display_order": track.display_order,
            "is_active": track.is_active,
            "group_id": track.group_id,
            "group_name": track.group.name if track.group else None,
            "is_mutually_exclusive": bool(track.group and track.group.is_mutually_exclusive),
            "capacity": occupancy.max,
            "current_rsvps": occupancy.current,
            "available": occupancy.available,
            "is_full": occupancy.is_full,
            "activities": [
                {
                    "id": ta.activity.id,
                    "title": ta.activity.title,
                    "starts_at": ta.activity.starts_at,
                    "ends_at": ta.activity.ends_at,
                    "position": ta.position,
                }
                for ta in track.track_activities
            ],
        })

    logger.debug("tracks_listed", event_id=event_id, count=len(listing))
    return listing


async def track_is_full(ledger: CapacityLedger, track_id: str) -> bool:
    occupancy = await ledger.occupancy_of(track_id)
    return occupancy.is_full
