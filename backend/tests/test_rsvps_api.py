"""
Tests for RSVP, activity RSVP and occupancy endpoints.
"""

import pytest
from httpx import AsyncClient


def _rsvp_url(event_id: str, suffix: str = "") -> str:
    return f"/api/v1/events/{event_id}/rsvp{suffix}"


@pytest.mark.asyncio
async def test_rsvp_requires_authentication(client: AsyncClient, make_event):
    event_id = await make_event()
    response = await client.post(_rsvp_url(event_id), json={})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rsvp_untracked_event(client: AsyncClient, auth_headers, make_event):
    event_id = await make_event(capacity=5)

    response = await client.post(_rsvp_url(event_id), json={"guest_count": 2}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "attending"
    assert data["guest_count"] == 2
    assert data["track_ids"] == []

    fetched = await client.get(_rsvp_url(event_id), headers=auth_headers)
    assert fetched.json()["id"] == data["id"]


@pytest.mark.asyncio
async def test_rsvp_incomplete_profile_is_422(client: AsyncClient, headers_for, incomplete_user_id, make_event):
    event_id = await make_event()

    response = await client.post(_rsvp_url(event_id), json={}, headers=headers_for(incomplete_user_id))

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "PROFILE_INCOMPLETE"
    assert "phone_number" in body["details"]["missing_fields"]
    assert "Phone Number" in body["detail"]


@pytest.mark.asyncio
async def test_eligibility_endpoint(client: AsyncClient, headers_for, user_id, incomplete_user_id, make_event):
    event_id = await make_event()

    eligible = await client.get(f"/api/v1/events/{event_id}/eligibility", headers=headers_for(user_id))
    assert eligible.status_code == 200
    assert eligible.json()["eligible"] is True
    assert eligible.json()["completion_percentage"] == 100

    missing = await client.get(f"/api/v1/events/{event_id}/eligibility", headers=headers_for(incomplete_user_id))
    assert missing.json()["eligible"] is False
    assert "T-Shirt Size" in missing.json()["missing_labels"]


@pytest.mark.asyncio
async def test_full_event_is_409_with_waitlist_hint(client: AsyncClient, headers_for, make_user, make_event):
    event_id = await make_event(capacity=1)
    first, second = await make_user(), await make_user()
    await client.post(_rsvp_url(event_id), json={}, headers=headers_for(first))

    response = await client.post(_rsvp_url(event_id), json={}, headers=headers_for(second))

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "AT_CAPACITY"
    assert body["details"]["waitlist_available"] is True

    waitlisted = await client.post(_rsvp_url(event_id, "/waitlist"), json={}, headers=headers_for(second))
    assert waitlisted.status_code == 200
    assert waitlisted.json()["status"] == "waitlist"


@pytest.mark.asyncio
async def test_track_flow(client: AsyncClient, auth_headers, tracked_event):
    """pending -> attending on a track -> change track -> cancel."""
    event_id = tracked_event["event_id"]

    pending = await client.post(_rsvp_url(event_id), json={}, headers=auth_headers)
    assert pending.json()["status"] == "pending"

    confirmed = await client.post(
        _rsvp_url(event_id, "/track"), json={"track_id": tracked_event["track_b"]}, headers=auth_headers
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "attending"
    assert confirmed.json()["track_ids"] == [tracked_event["track_b"]]

    changed = await client.put(
        _rsvp_url(event_id, "/track"),
        json={"from_track_id": tracked_event["track_b"], "to_track_id": tracked_event["track_a"]},
        headers=auth_headers,
    )
    assert changed.status_code == 200
    assert changed.json()["track_ids"] == [tracked_event["track_a"]]

    occupancy = await client.get(f"/api/v1/occupancy/{tracked_event['track_a']}")
    assert occupancy.json()["current"] == 1
    assert occupancy.json()["is_full"] is True

    cancelled = await client.delete(_rsvp_url(event_id), headers=auth_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "not_attending"
    assert cancelled.json()["track_ids"] == []


@pytest.mark.asyncio
async def test_track_conflict_is_409(client: AsyncClient, auth_headers, tracked_event):
    event_id = tracked_event["event_id"]
    await client.post(_rsvp_url(event_id), json={}, headers=auth_headers)
    await client.post(_rsvp_url(event_id, "/track"), json={"track_id": tracked_event["track_a"]}, headers=auth_headers)

    response = await client.post(
        _rsvp_url(event_id, "/track"), json={"track_id": tracked_event["track_b"]}, headers=auth_headers
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "TRACK_CONFLICT"
    assert body["details"]["group_name"] == "Morning"
    assert body["details"]["conflicting_track_names"] == ["Workshop A"]


@pytest.mark.asyncio
async def test_full_track_can_waitlist(client: AsyncClient, headers_for, make_user, tracked_event):
    event_id, track = tracked_event["event_id"], tracked_event["track_a"]
    first, second = await make_user(), await make_user()
    for user in (first, second):
        await client.post(_rsvp_url(event_id), json={}, headers=headers_for(user))
    await client.post(_rsvp_url(event_id, "/track"), json={"track_id": track}, headers=headers_for(first))

    rejected = await client.post(_rsvp_url(event_id, "/track"), json={"track_id": track}, headers=headers_for(second))
    assert rejected.status_code == 409
    assert rejected.json()["details"]["unit_id"] == track

    waitlisted = await client.post(
        _rsvp_url(event_id, "/track"),
        json={"track_id": track, "join_waitlist": True},
        headers=headers_for(second),
    )
    assert waitlisted.status_code == 200
    assert waitlisted.json()["status"] == "waitlist"


@pytest.mark.asyncio
async def test_confirm_unknown_track_is_404(client: AsyncClient, auth_headers, tracked_event):
    event_id = tracked_event["event_id"]
    await client.post(_rsvp_url(event_id), json={}, headers=auth_headers)

    response = await client.post(_rsvp_url(event_id, "/track"), json={"track_id": "nope"}, headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_missing_rsvp_is_404(client: AsyncClient, auth_headers, make_event):
    event_id = await make_event()
    response = await client.get(_rsvp_url(event_id), headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["details"]["entity"] == "RSVP"


@pytest.mark.asyncio
async def test_cancel_without_rsvp_returns_null(client: AsyncClient, auth_headers, make_event):
    event_id = await make_event()
    response = await client.delete(_rsvp_url(event_id), headers=auth_headers)
    assert response.status_code == 200
    assert response.json() is None


@pytest.mark.asyncio
async def test_rsvp_stats_and_my_rsvps(client: AsyncClient, headers_for, make_user, make_event):
    event_id = await make_event(capacity=10)
    going, maybe, declined = await make_user(), await make_user(), await make_user()
    await client.post(_rsvp_url(event_id), json={}, headers=headers_for(going))
    await client.post(_rsvp_url(event_id), json={"status": "maybe"}, headers=headers_for(maybe))
    await client.post(_rsvp_url(event_id), json={"status": "not_attending"}, headers=headers_for(declined))

    stats = await client.get(_rsvp_url(event_id, "/stats"))
    assert stats.status_code == 200
    assert stats.json() == {
        "going": 1,
        "not_going": 1,
        "maybe": 1,
        "waitlist": 0,
        "pending": 0,
        "total": 3,
    }

    other_event = await make_event(title="Second")
    await client.post(_rsvp_url(other_event), json={}, headers=headers_for(going))
    mine = await client.get("/api/v1/rsvps/me", headers=headers_for(going))
    assert mine.status_code == 200
    assert {r["event_id"] for r in mine.json()} == {event_id, other_event}


@pytest.mark.asyncio
async def test_occupancy_unknown_unit(client: AsyncClient):
    response = await client.get("/api/v1/occupancy/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_recount_occupancy(client: AsyncClient, auth_headers, session_factory, tracked_event):
    from sqlalchemy import update
    from app.models.capacity import CapacityCounter

    track = tracked_event["track_b"]
    async with session_factory() as session, session.begin():
        await session.execute(
            update(CapacityCounter).where(CapacityCounter.unit_id == track).values(occupancy=3)
        )

    unauthenticated = await client.post(f"/api/v1/occupancy/{track}/recount")
    assert unauthenticated.status_code == 401

    response = await client.post(f"/api/v1/occupancy/{track}/recount", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["current"] == 0
    assert response.json()["available"] == 10

    missing = await client.post("/api/v1/occupancy/missing/recount", headers=auth_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_unknown_user_declining_is_404(client: AsyncClient, headers_for, make_event):
    event_id = await make_event()

    response = await client.post(
        _rsvp_url(event_id),
        json={"status": "not_attending"},
        headers=headers_for("00000000-0000-0000-0000-000000000000"),
    )

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"
    assert response.json()["details"]["entity"] == "User"


@pytest.mark.asyncio
async def test_unknown_user_activity_rsvp_is_404(client: AsyncClient, headers_for, make_event, make_activity):
    activity_id = await make_activity(await make_event())

    response = await client.put(
        f"/api/v1/activities/{activity_id}/rsvp",
        json={},
        headers=headers_for("00000000-0000-0000-0000-000000000000"),
    )

    assert response.status_code == 404
    assert response.json()["details"]["entity"] == "User"


@pytest.mark.asyncio
async def test_activity_rsvp_flow(client: AsyncClient, headers_for, user_id, make_user, make_event, make_activity):
    event_id = await make_event()
    activity_id = await make_activity(event_id)
    other = await make_user()

    created = await client.put(
        f"/api/v1/activities/{activity_id}/rsvp", json={"status": "maybe"}, headers=headers_for(user_id)
    )
    assert created.status_code == 200
    assert created.json()["status"] == "maybe"

    updated = await client.put(f"/api/v1/activities/{activity_id}/rsvp", json={}, headers=headers_for(user_id))
    assert updated.json()["id"] == created.json()["id"]
    assert updated.json()["status"] == "attending"

    await client.put(f"/api/v1/activities/{activity_id}/rsvp", json={}, headers=headers_for(other))
    cancelled = await client.delete(f"/api/v1/activities/{activity_id}/rsvp", headers=headers_for(other))
    assert cancelled.json()["status"] == "not_attending"

    attending = await client.get(f"/api/v1/activities/{activity_id}/rsvps", params={"status": "attending"})
    assert [r["user_id"] for r in attending.json()] == [user_id]

    everyone = await client.get(f"/api/v1/activities/{activity_id}/rsvps")
    assert len(everyone.json()) == 2


@pytest.mark.asyncio
async def test_activity_rsvp_unknown_activity(client: AsyncClient, auth_headers):
    response = await client.put("/api/v1/activities/missing/rsvp", json={}, headers=auth_headers)
    assert response.status_code == 404

    fetched = await client.get("/api/v1/activities/missing/rsvp", headers=auth_headers)
    assert fetched.status_code == 404


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "admission_latency_seconds" in metrics.text


@pytest.mark.asyncio
async def test_request_id_header_is_echoed(client: AsyncClient):
    response = await client.get("/", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
