"""
End-to-end tests of the HTTP API against a temporary SQLite database.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from classroom.core.database import get_db
from classroom.core.security import get_viewer_from_token
from classroom.main import app

API = "/api/v1"


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _create_session(client):
    response = await client.post(f"{API}/sessions", json={
        "class_name": "3組",
        "date": "2024-01-15",
        "period": 3,
        "teacher_topic_title": "身近な科学",
    })
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_classroom_flow(client):
    created = await _create_session(client)
    session_id = created["session_id"]
    assert get_viewer_from_token(created["viewer_token"])["role"] == "teacher"

    response = await client.get(f"{API}/sessions/by-code/{created['session_code'].lower()}")
    assert response.json()["id"] == session_id

    response = await client.post(f"{API}/participants/join", json={
        "session_code": created["session_code"],
        "student_name": "田中太郎",
    })
    assert response.status_code == 200
    joined = response.json()
    participant_id = joined["participant"]["id"]
    assert joined["participant"]["status"] == "joined"
    assert joined["session"]["id"] == session_id
    assert joined["session"]["class_name"] == "3組"
    assert joined["session"]["teacher_topic_title"] == "身近な科学"
    assert len(joined["available_seats"]) == 42
    assert get_viewer_from_token(joined["viewer_token"])["participant_id"] == participant_id

    response = await client.post(f"{API}/participants/seat", json={
        "session_id": session_id,
        "seat_position": 10,
        "student_name": "田中太郎",
    })
    assert response.status_code == 200
    assert response.json()["participant"]["seat_position"] == 10

    response = await client.post(f"{API}/participants/{participant_id}/topic", json={
        "topic_title": "光合成",
        "topic_content": "植物はどうやって栄養を作るか",
    })
    assert response.json()["participant"]["status"] == "submitted"

    await client.post(f"{API}/reactions/like", json={"participant_id": participant_id, "reactor_name": "佐藤"})
    await client.post(f"{API}/reactions/like", json={"participant_id": participant_id, "reactor_name": "佐藤"})
    await client.post(f"{API}/reactions/view", json={"participant_id": participant_id, "reactor_name": "佐藤"})
    response = await client.get(f"{API}/reactions/{participant_id}/stats")
    assert response.json() == {"likes": 1, "views": 1}

    response = await client.post(f"{API}/comments", json={
        "participant_id": participant_id,
        "commenter_name": "佐藤",
        "content": "わかりやすい",
    })
    assert response.status_code == 200
    response = await client.get(f"{API}/comments/{participant_id}")
    assert [c["content"] for c in response.json()] == ["わかりやすい"]

    response = await client.get(f"{API}/participants", params={"session_id": session_id})
    listed = response.json()
    assert [(p["student_name"], p["like_count"], p["view_count"], p["comment_count"]) for p in listed] == [
        ("田中太郎", 1, 1, 1),
    ]

    response = await client.post(f"{API}/sessions/{session_id}/close")
    assert response.status_code == 200
    assert response.json()["session"]["status"] == "closed"
    assert response.json()["participant_count"] == 1


@pytest.mark.asyncio
async def test_chat_polling(client):
    created = await _create_session(client)
    session_id = created["session_id"]

    for text in ("one", "two", "three"):
        response = await client.post(f"{API}/chat", json={
            "session_id": session_id,
            "sender_name": "先生",
            "message": text,
            "is_teacher": True,
        })
        assert response.status_code == 200

    response = await client.get(f"{API}/chat/{session_id}", params={"limit": 2})
    page = response.json()
    assert [m["message"] for m in page["messages"]] == ["one", "two"]
    assert page["has_more"] is True
    assert page["session_status"] == "active"

    response = await client.get(f"{API}/chat/{session_id}", params={"after_seq": page["cursor"]})
    page = response.json()
    assert [m["message"] for m in page["messages"]] == ["three"]
    assert page["has_more"] is False

    message_id = page["messages"][0]["id"]
    response = await client.post(f"{API}/chat/messages/{message_id}/hide")
    assert response.status_code == 200
    response = await client.get(f"{API}/chat/{session_id}")
    assert [m["message"] for m in response.json()["messages"]] == ["one", "two"]


@pytest.mark.asyncio
async def test_error_bodies_carry_stable_codes(client):
    created = await _create_session(client)
    session_id = created["session_id"]

    await client.post(f"{API}/participants/seat", json={
        "session_id": session_id, "seat_position": 10, "student_name": "A",
    })
    response = await client.post(f"{API}/participants/seat", json={
        "session_id": session_id, "seat_position": 10, "student_name": "B",
    })
    assert response.status_code == 409
    assert response.json()["error"] == "SeatTaken"
    assert response.json()["details"]["occupant"] == "A"

    response = await client.post(f"{API}/participants/seat", json={
        "session_id": session_id, "seat_position": 43, "student_name": "B",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidSeat"

    response = await client.post(f"{API}/chat", json={
        "session_id": session_id, "sender_name": "先生", "message": "x" * 201, "is_teacher": True,
    })
    assert response.status_code == 400
    assert response.json()["error"] == "MessageTooLong"

    response = await client.post(f"{API}/sessions", json={"date": "2024-01-15", "period": 3})
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationFailed"
    assert response.json()["details"][0]["loc"] == ["body", "class_name"]

    response = await client.post(f"{API}/participants/seat", json={
        "session_id": session_id, "seat_position": "window", "student_name": "B",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationFailed"
    assert response.json()["detail"] == "Request validation failed"

    response = await client.get(f"{API}/sessions/by-code/BAD")
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidSessionCode"

    await client.post(f"{API}/sessions/{session_id}/close")
    response = await client.post(f"{API}/participants/seat", json={
        "session_id": session_id, "seat_position": 11, "student_name": "C",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "SessionClosed"

    response = await client.post(f"{API}/sessions/{session_id}/close")
    assert response.json()["error"] == "AlreadyClosed"

    response = await client.get(f"{API}/sessions/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["error"] == "SessionNotFound"


@pytest.mark.asyncio
async def test_snapshot_and_presence(client):
    created = await _create_session(client)
    session_id = created["session_id"]

    response = await client.post(f"{API}/realtime/heartbeat", json={
        "session_id": session_id, "viewer_name": "先生", "role": "teacher",
    })
    assert response.json()["status"] == "ok"

    response = await client.get(f"{API}/realtime/{session_id}/viewers")
    assert [v["viewer_name"] for v in response.json()] == ["先生"]

    response = await client.get(f"{API}/sessions/{session_id}/snapshot")
    snapshot = response.json()
    assert snapshot["session"]["id"] == session_id
    assert len(snapshot["available_seats"]) == 42
    assert snapshot["chat_cursor"] == 0
    assert [v["viewer_name"] for v in snapshot["viewers"]] == ["先生"]


@pytest.mark.asyncio
async def test_health_and_metrics(client):
    response = await client.get("/health")
    assert response.json()["status"] == "healthy"

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
