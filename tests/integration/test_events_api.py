"""Integration tests for events_service endpoints."""

from datetime import timedelta

import pytest
from libs.common.datetime_utils import utc_now
from services.events_service.models import EventStatus, EventType
from tests.factories import AttendanceFactory, EventFactory


def _event_payload(**overrides):
    start = utc_now() + timedelta(days=10)
    payload = {
        "title": "Quarterly General Meeting",
        "event_type": "meetings",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "location": "Main Hall",
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_secretary_creates_event(client, secretary_headers, secretary):
    response = await client.post(
        "/api/events/", json=_event_payload(), headers=secretary_headers
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "draft"
    assert body["data"]["event_type"] == "meetings"
    assert body["data"]["created_by"] == str(secretary.id)
    assert body["data"]["attendance_count"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_rejects_end_before_start(client, secretary_headers):
    start = utc_now() + timedelta(days=3)
    response = await client.post(
        "/api/events/",
        json=_event_payload(
            start_date=start.isoformat(),
            end_date=(start - timedelta(hours=1)).isoformat(),
        ),
        headers=secretary_headers,
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_cannot_create_event(client, member_headers):
    response = await client.post(
        "/api/events/", json=_event_payload(), headers=member_headers
    )

    assert response.status_code == 403
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_events_require_authentication(client):
    response = await client.get("/api/events/")

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Not authorized to access this route",
        "errors": [],
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_events_filters_and_paginates(client, db_session, member_headers):
    db_session.add_all(
        [
            EventFactory.create(event_type=EventType.MEETINGS),
            EventFactory.create(event_type=EventType.MEETINGS),
            EventFactory.create(event_type=EventType.SOCIAL, title="End of year party"),
        ]
    )
    await db_session.commit()

    response = await client.get(
        "/api/events/",
        params={"event_type": "meetings", "limit": 1},
        headers=member_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["pagination"]["total"] == 2
    assert body["pagination"]["total_pages"] == 2

    response = await client.get(
        "/api/events/", params={"search": "party"}, headers=member_headers
    )
    assert [e["title"] for e in response.json()["data"]] == ["End of year party"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_event_includes_attendance_counts(
    client, db_session, member, member_headers
):
    event = EventFactory.create()
    db_session.add(event)
    await db_session.commit()
    db_session.add_all(
        [
            AttendanceFactory.create(event_id=event.id, user_id=member.id),
            AttendanceFactory.create(event_id=event.id, attended=False),
        ]
    )
    await db_session.commit()

    response = await client.get(f"/api/events/{event.id}", headers=member_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["attendance_count"] == 2
    assert data["attended_count"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_event_is_404(client, member_headers):
    response = await client.get(
        "/api/events/00000000-0000-0000-0000-000000000000", headers=member_headers
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Event not found"


# ---------------------------------------------------------------------------
# Update / lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_event(client, db_session, secretary_headers):
    event = EventFactory.create(status=EventStatus.DRAFT)
    db_session.add(event)
    await db_session.commit()

    response = await client.put(
        f"/api/events/{event.id}",
        json={"title": "Renamed", "location": None},
        headers=secretary_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Renamed"
    assert data["location"] is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_rejects_end_before_start(client, db_session, secretary_headers):
    event = EventFactory.create()
    db_session.add(event)
    await db_session.commit()

    response = await client.put(
        f"/api/events/{event.id}",
        json={"end_date": (event.start_date - timedelta(days=1)).isoformat()},
        headers=secretary_headers,
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_publish_and_cancel_transitions(client, db_session, secretary_headers):
    event = EventFactory.create(status=EventStatus.DRAFT)
    db_session.add(event)
    await db_session.commit()

    response = await client.patch(
        f"/api/events/{event.id}/publish", headers=secretary_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "published"

    response = await client.patch(
        f"/api/events/{event.id}/publish", headers=secretary_headers
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Event is already published"

    response = await client.patch(
        f"/api/events/{event.id}/cancel", headers=secretary_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"

    response = await client.patch(
        f"/api/events/{event.id}/cancel", headers=secretary_headers
    )
    assert response.status_code == 400

    response = await client.patch(
        f"/api/events/{event.id}/publish", headers=secretary_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_completed_event_cannot_be_cancelled(client, db_session, secretary_headers):
    event = EventFactory.create(status=EventStatus.COMPLETED)
    db_session.add(event)
    await db_session.commit()

    response = await client.patch(
        f"/api/events/{event.id}/cancel", headers=secretary_headers
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_completed_event_cannot_be_republished(
    client, db_session, secretary_headers
):
    start = utc_now() - timedelta(days=30)
    event = EventFactory.create(status=EventStatus.COMPLETED, start_date=start)
    db_session.add(event)
    await db_session.commit()

    response = await client.patch(
        f"/api/events/{event.id}/publish", headers=secretary_headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == (
        "Only draft events can be published (event is completed)"
    )
    await db_session.refresh(event)
    assert event.status == EventStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delete_event_removes_attendance(client, db_session, secretary_headers):
    event = EventFactory.create()
    db_session.add(event)
    await db_session.commit()
    db_session.add(AttendanceFactory.create(event_id=event.id))
    await db_session.commit()

    response = await client.delete(f"/api/events/{event.id}", headers=secretary_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Event deleted"

    response = await client.get(f"/api/events/{event.id}", headers=secretary_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_stats_are_admin_only(client, db_session, admin_headers, secretary_headers):
    db_session.add_all(
        [
            EventFactory.create(event_type=EventType.MEETINGS),
            EventFactory.create(status=EventStatus.CANCELLED),
        ]
    )
    await db_session.commit()

    response = await client.get("/api/events/stats", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 2
    assert data["upcoming"] == 1
    assert data["by_status"] == {"published": 1, "cancelled": 1}

    response = await client.get("/api/events/stats", headers=secretary_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_attendance_with_member_details(
    client, db_session, member, secretary_headers
):
    event = EventFactory.create()
    db_session.add(event)
    await db_session.commit()
    db_session.add(AttendanceFactory.create(event_id=event.id, user_id=member.id))
    await db_session.commit()

    response = await client.get(
        f"/api/events/{event.id}/attendance",
        params={"attended": "true"},
        headers=secretary_headers,
    )

    assert response.status_code == 200
    (record,) = response.json()["data"]
    assert record["member"]["first_name"] == "Ada"
