"""
Tests for event topology endpoints: events, track groups, tracks, activities.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient


def _future(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, auth_headers):
    """Authenticated user can create an event; its counter starts empty."""
    response = await client.post(
        "/api/v1/events/",
        json={
            "title": "Community Summit",
            "description": "Annual community gathering",
            "starts_at": _future(),
            "location": "Town Hall",
            "capacity": 200,
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Community Summit"
    assert data["capacity"] == 200
    assert data["has_tracks"] is False

    occupancy = await client.get(f"/api/v1/occupancy/{data['id']}")
    assert occupancy.status_code == 200
    assert occupancy.json()["current"] == 0
    assert occupancy.json()["available"] == 200


@pytest.mark.asyncio
async def test_create_event_unlimited(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/events/", json={"title": "Open House"}, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["capacity"] is None


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    """Unauthenticated request returns 401."""
    response = await client.post("/api/v1/events/", json={"title": "Unauthorized Event"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_bad_token(client: AsyncClient):
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Forged"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, auth_headers):
    """Event with past date returns 400."""
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Past Event", "starts_at": past_date},
        headers=auth_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_event_negative_capacity(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/v1/events/",
        json={"title": "Broken", "capacity": -1},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_events(client: AsyncClient, make_event):
    """List events returns paginated results, dated events first."""
    await make_event(title="First")
    await make_event(title="Second")

    response = await client.get("/api/v1/events/", params={"page_size": 1})
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["page"] == 1
    assert len(data["events"]) == 1


@pytest.mark.asyncio
async def test_get_event(client: AsyncClient, make_event):
    event_id = await make_event(capacity=10, title="Meetup")

    response = await client.get(f"/api/v1/events/{event_id}")
    assert response.status_code == 200
    assert response.json()["title"] == "Meetup"


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    response = await client.get("/api/v1/events/nonexistent-id")
    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "NOT_FOUND"
    assert body["details"]["entity"] == "Event"


@pytest.mark.asyncio
async def test_build_track_topology(client: AsyncClient, auth_headers, make_event):
    """Group, two tracks and an activity; the listing shows live occupancy."""
    event_id = await make_event(capacity=100)

    group = await client.post(
        f"/api/v1/events/{event_id}/track-groups",
        json={"name": "Morning Workshops", "is_mutually_exclusive": True},
        headers=auth_headers,
    )
    assert group.status_code == 201
    group_id = group.json()["id"]

    track = await client.post(
        f"/api/v1/events/{event_id}/tracks",
        json={"name": "Intro to Pottery", "capacity": 12, "group_id": group_id, "display_order": 1},
        headers=auth_headers,
    )
    assert track.status_code == 201
    track_id = track.json()["id"]

    activity = await client.post(
        f"/api/v1/events/{event_id}/activities",
        json={"title": "Clay basics"},
        headers=auth_headers,
    )
    assert activity.status_code == 201

    link = await client.post(
        f"/api/v1/tracks/{track_id}/activities/{activity.json()['id']}",
        headers=auth_headers,
    )
    assert link.status_code == 201
    assert link.json()["position"] == 0

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["has_tracks"] is True

    listing = await client.get(f"/api/v1/events/{event_id}/tracks")
    assert listing.status_code == 200
    tracks = listing.json()["tracks"]
    assert len(tracks) == 1
    assert tracks[0]["group_name"] == "Morning Workshops"
    assert tracks[0]["capacity"] == 12
    assert tracks[0]["current_rsvps"] == 0
    assert tracks[0]["available"] == 12
    assert [a["title"] for a in tracks[0]["activities"]] == ["Clay basics"]


@pytest.mark.asyncio
async def test_track_with_group_of_other_event(client: AsyncClient, auth_headers, make_event, make_group):
    event_id = await make_event()
    other_group = await make_group(await make_event(title="Other"))

    response = await client.post(
        f"/api/v1/events/{event_id}/tracks",
        json={"name": "Stray", "group_id": other_group},
        headers=auth_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_activity_of_other_event_cannot_be_assigned(
    client: AsyncClient, auth_headers, tracked_event, make_event, make_activity
):
    foreign = await make_activity(await make_event(title="Other"))

    response = await client.post(
        f"/api/v1/tracks/{tracked_event['track_a']}/activities/{foreign}",
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_TRACK"


@pytest.mark.asyncio
async def test_lower_track_capacity_below_occupancy_is_refused(
    client: AsyncClient, auth_headers, orchestrator, make_user, tracked_event
):
    event_id, track = tracked_event["event_id"], tracked_event["track_b"]
    for _ in range(2):
        user = await make_user()
        await orchestrator.request_admission(user, event_id)
        await orchestrator.confirm_track(user, event_id, track)

    refused = await client.patch(f"/api/v1/tracks/{track}/capacity", json={"capacity": 1}, headers=auth_headers)
    assert refused.status_code == 409
    assert refused.json()["error_code"] == "CAPACITY_BELOW_OCCUPANCY"
    assert refused.json()["details"]["occupancy"] == 2

    accepted = await client.patch(f"/api/v1/tracks/{track}/capacity", json={"capacity": 2}, headers=auth_headers)
    assert accepted.status_code == 200
    assert accepted.json()["capacity"] == 2
    assert (await orchestrator.get_occupancy(track)).is_full


@pytest.mark.asyncio
async def test_raise_event_capacity(client: AsyncClient, auth_headers, orchestrator, make_user, make_event):
    event_id = await make_event(capacity=1)
    await orchestrator.request_admission(await make_user(), event_id)

    response = await client.patch(
        f"/api/v1/events/{event_id}/capacity", json={"capacity": None}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["capacity"] is None

    rsvp = await orchestrator.request_admission(await make_user(), event_id)
    assert rsvp.status.value == "attending"


@pytest.mark.asyncio
async def test_delete_event(client: AsyncClient, auth_headers, orchestrator, user_id, tracked_event):
    event_id = tracked_event["event_id"]
    await orchestrator.request_admission(user_id, event_id)
    await orchestrator.confirm_track(user_id, event_id, tracked_event["track_b"])

    response = await client.delete(f"/api/v1/events/{event_id}", headers=auth_headers)
    assert response.status_code == 204

    assert (await client.get(f"/api/v1/events/{event_id}")).status_code == 404
    assert (await client.get(f"/api/v1/occupancy/{tracked_event['track_a']}")).status_code == 404
    assert await orchestrator.rsvps.get(user_id, event_id) is None
