"""
Tests for the track group resolver and track listings.
"""

import pytest

from app.core.exceptions import InvalidTrackError, NotFoundError, TrackConflictError
from app.models.event import Track, TrackGroup
from app.services.track_service import TrackGroupResolver, list_event_tracks, resolve_selection, track_is_full


def _group(exclusive=True):
    return TrackGroup(id="g1", event_id="e1", name="Morning", is_mutually_exclusive=exclusive)


def _track(track_id, name, group_id="g1"):
    return Track(id=track_id, event_id="e1", name=name, group_id=group_id)


def test_exclusive_group_conflict_names_tracks():
    group = _group()
    a, b = _track("a", "Workshop A"), _track("b", "Workshop B")

    result = resolve_selection(b, group, [a, b], existing_selections={"a"})

    assert not result.valid
    assert result.group_name == "Morning"
    assert result.conflicting_tracks == {"a": "Workshop A"}
    with pytest.raises(TrackConflictError) as exc_info:
        result.raise_for_conflict()
    assert "Workshop A" in exc_info.value.message
    assert "Morning" in exc_info.value.message


def test_exclusive_group_first_selection_is_valid():
    group = _group()
    a, b = _track("a", "Workshop A"), _track("b", "Workshop B")

    result = resolve_selection(a, group, [a, b], existing_selections=set())

    assert result.valid
    assert result.exclusive_group_id == "g1"


def test_reselecting_same_track_is_not_a_conflict():
    group = _group()
    a = _track("a", "Workshop A")
    assert resolve_selection(a, group, [a], existing_selections={"a"}).valid


def test_non_exclusive_group_combines_freely():
    group = _group(exclusive=False)
    a, b = _track("a", "Talk A"), _track("b", "Talk B")

    result = resolve_selection(b, group, [a, b], existing_selections={"a"})

    assert result.valid
    assert result.exclusive_group_id is None


def test_ungrouped_track_combines_freely():
    lone = _track("n", "Networking", group_id=None)
    assert resolve_selection(lone, None, [], existing_selections={"a", "b"}).valid


def test_selections_in_other_groups_do_not_conflict():
    group = _group()
    a, b = _track("a", "Workshop A"), _track("b", "Workshop B")
    assert resolve_selection(a, group, [a, b], existing_selections={"afternoon-1"}).valid


@pytest.mark.asyncio
async def test_resolver_against_database(session_factory, tracked_event):
    resolver = TrackGroupResolver(session_factory)
    event_id = tracked_event["event_id"]

    conflict = await resolver.validate_selection(event_id, tracked_event["track_b"], {tracked_event["track_a"]})
    assert not conflict.valid
    assert conflict.conflicting_tracks == {tracked_event["track_a"]: "Workshop A"}

    free = await resolver.validate_selection(event_id, tracked_event["networking"], {tracked_event["track_a"]})
    assert free.valid


@pytest.mark.asyncio
async def test_resolver_rejects_track_of_other_event(session_factory, tracked_event, make_event, make_track):
    other_event = await make_event(title="Other")
    foreign_track = await make_track(other_event, "Elsewhere")
    resolver = TrackGroupResolver(session_factory)

    with pytest.raises(InvalidTrackError):
        await resolver.validate_selection(tracked_event["event_id"], foreign_track, set())

    with pytest.raises(NotFoundError):
        await resolver.validate_selection(tracked_event["event_id"], "missing-track", set())


@pytest.mark.asyncio
async def test_resolver_rejects_inactive_track(session_factory, tracked_event):
    async with session_factory() as session:
        track = await session.get(Track, tracked_event["track_b"])
        track.is_active = False
        await session.commit()

    resolver = TrackGroupResolver(session_factory)
    with pytest.raises(InvalidTrackError):
        await resolver.validate_selection(tracked_event["event_id"], tracked_event["track_b"], set())


@pytest.mark.asyncio
async def test_list_event_tracks_with_capacity(session_factory, ledger, tracked_event):
    await ledger.try_reserve(tracked_event["track_a"], "someone")

    async with session_factory() as session:
        listing = await list_event_tracks(session, tracked_event["event_id"])

    assert [t["name"] for t in listing] == ["Workshop A", "Workshop B", "Networking"]
    workshop_a = listing[0]
    assert workshop_a["group_name"] == "Morning"
    assert workshop_a["is_mutually_exclusive"] is True
    assert workshop_a["current_rsvps"] == 1
    assert workshop_a["is_full"] is True
    assert workshop_a["available"] == 0

    networking = listing[2]
    assert networking["group_id"] is None
    assert networking["capacity"] is None
    assert networking["available"] is None
    assert networking["is_full"] is False


@pytest.mark.asyncio
async def test_track_is_full(ledger, tracked_event):
    assert not await track_is_full(ledger, tracked_event["track_a"])
    await ledger.try_reserve(tracked_event["track_a"], "someone")
    assert await track_is_full(ledger, tracked_event["track_a"])
    # Unlimited tracks are never full
    assert not await track_is_full(ledger, tracked_event["networking"])
