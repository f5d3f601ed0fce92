"""Integration tests for attendance marking, penalty configs and reconciliation."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from libs.common.datetime_utils import utc_now
from services.events_service.models import EventStatus, EventType
from tests.factories import (
    AttendanceFactory,
    DueFactory,
    EventFactory,
    MeetingFactory,
    PenaltyConfigFactory,
    PenaltyDueFactory,
)

WARNING_EMAIL = "services.events_service.services.warnings.send_attendance_warning_email"


async def _meeting_with_dues(db_session, member, year=None):
    year = year or utc_now().year
    meeting = MeetingFactory.create(year)
    db_session.add_all([meeting, DueFactory.create(assigned_to=member.id, year=year)])
    await db_session.commit()
    return meeting


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_marking_absence_applies_penalty_due(
    client, db_session, member, member_headers, secretary_headers
):
    meeting = await _meeting_with_dues(db_session, member)

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True):
        response = await client.post(
            f"/api/events/{meeting.id}/attendance",
            json={"attendanceList": [{"userId": str(member.id), "attended": False}]},
            headers=secretary_headers,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Attendance marked"
    (record,) = body["data"]["records"]
    assert record["attended"] is False
    assert record["member"]["email"] == member.email
    assert body["data"]["reconciliation"]["counts"]["applied"] == 1

    response = await client.get(
        "/api/dues/me", params={"is_penalty": "true"}, headers=member_headers
    )
    (penalty,) = response.json()["data"]
    assert penalty["amount"] == 10000.0
    assert penalty["status"] == "pending"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_marking_presence_removes_penalty(
    client, db_session, member, member_headers, secretary_headers
):
    meeting = await _meeting_with_dues(db_session, member)
    db_session.add(PenaltyDueFactory.create(member.id, meeting.start_date.year))
    await db_session.commit()

    response = await client.post(
        f"/api/events/{meeting.id}/attendance",
        json={"attendance_list": [{"user_id": str(member.id), "attended": True}]},
        headers=secretary_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["reconciliation"]["counts"]["removed"] == 1

    response = await client.get(
        "/api/dues/me", params={"is_penalty": "true"}, headers=member_headers
    )
    assert response.json()["count"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_empty_attendance_list_is_rejected(client, db_session, secretary_headers):
    event = EventFactory.create()
    db_session.add(event)
    await db_session.commit()

    response = await client.post(
        f"/api/events/{event.id}/attendance",
        json={"attendanceList": []},
        headers=secretary_headers,
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_cannot_mark_attendance(client, db_session, member, member_headers):
    event = EventFactory.create()
    db_session.add(event)
    await db_session.commit()

    response = await client.post(
        f"/api/events/{event.id}/attendance",
        json={"attendanceList": [{"userId": str(member.id), "attended": True}]},
        headers=member_headers,
    )

    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Member penalty view
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_my_penalties_reports_attendance(
    client, db_session, member, member_headers, admin_headers
):
    year = 2024
    attended_meeting = MeetingFactory.create(year)
    missed_meeting = MeetingFactory.create(year)
    db_session.add_all(
        [
            attended_meeting,
            missed_meeting,
            DueFactory.create(assigned_to=member.id, year=year),
        ]
    )
    await db_session.commit()
    db_session.add(
        AttendanceFactory.create(event_id=attended_meeting.id, user_id=member.id)
    )
    await db_session.commit()

    response = await client.get(
        "/api/events/my-penalties", params={"year": year}, headers=member_headers
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["meetings_attended"] == 1
    assert data["total_meetings"] == 2
    assert data["missed_meetings"] == 1
    assert data["attendance_percentage"] == 50
    assert data["penalty_amount"] == 0
    assert data["penalty_due"] is None


# ---------------------------------------------------------------------------
# Penalty configuration
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_penalty_config_upsert_and_fetch(client, admin, admin_headers):
    payload = {
        "year": 2024,
        "penalty_rules": [
            {
                "min_attendance": 0,
                "max_attendance": 1,
                "penalty_type": "fixed",
                "penalty_value": 5000,
                "description": "Attended at most one meeting",
            }
        ],
        "default_penalty": {"penalty_type": "fixed", "penalty_value": 0},
    }

    response = await client.post(
        "/api/events/penalty-config", json=payload, headers=admin_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Penalty configuration saved"
    assert body["data"]["created_by"] == str(admin.id)
    config_id = body["data"]["id"]

    payload["is_active"] = False
    response = await client.post(
        "/api/events/penalty-config", json=payload, headers=admin_headers
    )
    assert response.json()["data"]["id"] == config_id
    assert response.json()["data"]["is_active"] is False

    response = await client.get("/api/events/penalty-config/2024", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["penalty_rules"][0]["penalty_value"] == 5000

    response = await client.get("/api/events/penalty-configs", headers=admin_headers)
    assert response.json()["count"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_penalty_config_is_404(client, admin_headers):
    response = await client.get("/api/events/penalty-config/2023", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "No penalty configuration for 2023"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_penalty_config_rejects_inverted_rule(client, admin_headers):
    response = await client.post(
        "/api/events/penalty-config",
        json={
            "year": 2024,
            "penalty_rules": [
                {
                    "min_attendance": 3,
                    "max_attendance": 1,
                    "penalty_type": "fixed",
                    "penalty_value": 100,
                }
            ],
            "default_penalty": {"penalty_type": "fixed", "penalty_value": 0},
        },
        headers=admin_headers,
    )

    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Reconciliation and warnings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_penalties_with_tiered_config(
    client, db_session, member, admin_headers
):
    year = 2024
    meetings = [MeetingFactory.create(year) for _ in range(4)]
    db_session.add_all(
        [
            *meetings,
            DueFactory.create(assigned_to=member.id, year=year),
            PenaltyConfigFactory.create(year),
        ]
    )
    await db_session.commit()
    db_session.add(AttendanceFactory.create(event_id=meetings[0].id, user_id=member.id))
    await db_session.commit()

    response = await client.post(
        f"/api/events/calculate-penalties/{year}", headers=admin_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == f"Penalties calculated for {year}"
    assert body["data"]["total_meetings"] == 4
    assert body["data"]["policy"] == "tiered"
    (outcome,) = body["data"]["outcomes"]
    assert outcome["member_id"] == str(member.id)
    assert outcome["kind"] == "applied"
    assert outcome["amount"] == 5000.0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_penalties_rejects_invalid_year(client, admin_headers):
    response = await client.post(
        "/api/events/calculate-penalties/1999", headers=admin_headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid year: 1999"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_calculate_penalties_is_admin_only(client, member_headers):
    response = await client.post(
        "/api/events/calculate-penalties/2024", headers=member_headers
    )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_send_warnings_notifies_members(
    client, db_session, member, member_headers, admin_headers
):
    year = utc_now().year
    await _meeting_with_dues(db_session, member, year)
    db_session.add(
        EventFactory.create(
            event_type=EventType.MEETINGS,
            status=EventStatus.DRAFT,
            start_date=utc_now() + timedelta(hours=1),
        )
    )
    await db_session.commit()

    with patch(WARNING_EMAIL, new_callable=AsyncMock, return_value=True) as email:
        response = await client.post(
            f"/api/events/send-warnings/{year}", headers=admin_headers
        )

    assert response.status_code == 200
    assert response.json()["data"] == {"year": year, "warned": 1}
    email.assert_awaited_once()

    response = await client.get("/api/notifications/", headers=member_headers)
    (notification,) = response.json()["data"]
    assert notification["type"] == "attendance_warning"
