"""Integration tests for the messaging endpoints."""

import uuid

import pytest
from services.members_service.models import MemberStatus
from tests.factories import MemberFactory
from tests.fakes import FakeSocket


async def _other_member(db_session, **overrides):
    other = MemberFactory.create(first_name="Bola", **overrides)
    db_session.add(other)
    await db_session.commit()
    return other


async def _start_thread(client, headers, participants, **overrides):
    payload = {
        "subject": "Saturday meeting",
        "participants": [str(p.id) for p in participants],
        "message": "Are you coming on Saturday?",
    }
    payload.update(overrides)
    return await client.post("/api/messages/threads", json=payload, headers=headers)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_thread_notifies_online_participants(
    client, db_session, registry, member, member_headers
):
    other = await _other_member(db_session)
    socket = FakeSocket()
    registry.connect(other.id, socket)

    response = await _start_thread(client, member_headers, [other])

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["thread"]["thread_type"] == "direct"
    assert data["thread"]["last_message"] == "Are you coming on Saturday?"
    assert data["first_message"]["sender_id"] == str(member.id)
    participants = {p["user_id"]: p for p in data["thread"]["participants"]}
    assert participants[str(other.id)]["is_online"] is True
    assert participants[str(member.id)]["role"] == "admin"

    assert socket.events() == ["new_thread"]
    assert socket.frames[0]["data"]["thread_id"] == data["thread"]["id"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_duplicate_direct_thread_conflicts(
    client, db_session, member, member_headers
):
    other = await _other_member(db_session)
    await _start_thread(client, member_headers, [other])

    response = await _start_thread(client, member_headers, [other], subject="Again")

    assert response.status_code == 409
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_inactive_participant_is_rejected(client, db_session, member_headers):
    inactive = await _other_member(db_session, status=MemberStatus.SUSPENDED)

    response = await _start_thread(client, member_headers, [inactive])

    assert response.status_code == 400
    assert response.json()["error"] == "Some participants not found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unread_counts_and_reading_a_thread(
    client, db_session, member, member_headers, headers_for
):
    other = await _other_member(db_session)
    other_headers = headers_for(other)
    created = await _start_thread(client, member_headers, [other])
    thread_id = created.json()["data"]["thread"]["id"]
    await client.post(
        f"/api/messages/threads/{thread_id}/messages",
        json={"content": "Let me know"},
        headers=member_headers,
    )

    response = await client.get("/api/messages/threads", headers=other_headers)
    (thread,) = response.json()["data"]
    assert thread["unread_count"] == 2

    response = await client.get("/api/messages/unread-count", headers=other_headers)
    assert response.json()["data"] == {"unread_count": 2}

    response = await client.get(
        f"/api/messages/threads/{thread_id}", headers=other_headers
    )
    assert response.status_code == 200
    messages = response.json()["data"]["messages"]
    assert [m["content"] for m in messages] == [
        "Are you coming on Saturday?",
        "Let me know",
    ]

    response = await client.get("/api/messages/unread-count", headers=other_headers)
    assert response.json()["data"] == {"unread_count": 0}

    # The sender never has unread messages of their own.
    response = await client.get("/api/messages/unread-count", headers=member_headers)
    assert response.json()["data"] == {"unread_count": 0}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_send_message_reaches_thread_room(
    client, db_session, registry, member, member_headers
):
    other = await _other_member(db_session)
    created = await _start_thread(client, member_headers, [other])
    thread_id = created.json()["data"]["thread"]["id"]
    socket = FakeSocket()
    registry.connect(other.id, socket)
    registry.join_thread(other.id, uuid.UUID(thread_id))

    response = await client.post(
        f"/api/messages/threads/{thread_id}/messages",
        json={"content": "Running late"},
        headers=member_headers,
    )

    assert response.status_code == 201
    assert response.json()["data"]["content"] == "Running late"
    assert "new_message" in socket.events()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_non_participant_cannot_post(
    client, db_session, member_headers, headers_for
):
    other = await _other_member(db_session)
    outsider = await _other_member(db_session)
    created = await _start_thread(client, member_headers, [other])
    thread_id = created.json()["data"]["thread"]["id"]

    response = await client.post(
        f"/api/messages/threads/{thread_id}/messages",
        json={"content": "Can I join?"},
        headers=headers_for(outsider),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_only_sender_deletes_message(
    client, db_session, member_headers, headers_for
):
    other = await _other_member(db_session)
    created = await _start_thread(client, member_headers, [other])
    message_id = created.json()["data"]["first_message"]["id"]

    response = await client.delete(
        f"/api/messages/{message_id}", headers=headers_for(other)
    )
    assert response.status_code == 403

    response = await client.delete(f"/api/messages/{message_id}", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Message deleted"
