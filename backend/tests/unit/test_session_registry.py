"""
Unit tests for session creation, code lookup and closing.
"""

import pytest
from uuid import uuid4

from classroom.core.exceptions import (
    AlreadyClosedError,
    CodeGenerationExhaustedError,
    InvalidSessionCodeError,
    SessionNotFoundError,
    ValidationError,
)
from classroom.core.security import SESSION_CODE_PATTERN
from classroom.models.enums import EventType, SessionStatus
from classroom.services import SessionRegistry


@pytest.mark.asyncio
async def test_create_then_find_by_code(registry):
    session = await registry.create(class_name="3組", date="2024-01-15", period=3)

    assert SESSION_CODE_PATTERN.match(session.session_code)
    assert session.status == SessionStatus.ACTIVE
    assert session.closed_at is None

    found = await registry.find_by_code(session.session_code)
    assert found.id == session.id
    assert found.status == SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_find_by_code_is_case_insensitive(registry, classroom):
    found = await registry.find_by_code(f"  {classroom.session_code.lower()} ")
    assert found.id == classroom.id


@pytest.mark.asyncio
async def test_create_requires_class_date_and_period(registry):
    with pytest.raises(ValidationError):
        await registry.create(class_name="  ", date="2024-01-15", period=1)
    with pytest.raises(ValidationError):
        await registry.create(class_name="3組", date="", period=1)
    with pytest.raises(ValidationError):
        await registry.create(class_name="3組", date="2024-01-15", period=0)


@pytest.mark.asyncio
async def test_create_retries_on_code_collision(db, bus, locks):
    codes = iter(["AB12CD34", "AB12CD34", "XY98ZW76"])
    registry = SessionRegistry(db, events=bus, locks=locks, code_generator=lambda: next(codes))

    first = await registry.create(class_name="1組", date="2024-01-15", period=1)
    second = await registry.create(class_name="2組", date="2024-01-15", period=1)

    assert first.session_code == "AB12CD34"
    assert second.session_code == "XY98ZW76"


@pytest.mark.asyncio
async def test_create_gives_up_after_bounded_attempts(db, bus, locks):
    registry = SessionRegistry(db, events=bus, locks=locks, code_generator=lambda: "AB12CD34")
    await registry.create(class_name="1組", date="2024-01-15", period=1)

    with pytest.raises(CodeGenerationExhaustedError):
        await registry.create(class_name="2組", date="2024-01-15", period=2)


@pytest.mark.asyncio
async def test_closed_session_code_can_be_reused(db, bus, locks):
    registry = SessionRegistry(db, events=bus, locks=locks, code_generator=lambda: "AB12CD34")
    first = await registry.create(class_name="1組", date="2024-01-15", period=1)
    await registry.close(first.id)

    second = await registry.create(class_name="2組", date="2024-01-15", period=2)

    assert second.session_code == first.session_code
    assert (await registry.find_by_code("AB12CD34")).id == second.id


@pytest.mark.asyncio
async def test_find_by_code_rejects_malformed_code(registry):
    with pytest.raises(InvalidSessionCodeError):
        await registry.find_by_code("ABCD1234")
    with pytest.raises(InvalidSessionCodeError):
        await registry.find_by_code("")


@pytest.mark.asyncio
async def test_find_by_code_unknown_or_closed(registry, classroom):
    with pytest.raises(SessionNotFoundError):
        await registry.find_by_code("ZZ00ZZ00")

    await registry.close(classroom.id)
    with pytest.raises(SessionNotFoundError):
        await registry.find_by_code(classroom.session_code)


@pytest.mark.asyncio
async def test_get_unknown_session(registry):
    with pytest.raises(SessionNotFoundError):
        await registry.get(uuid4())
    with pytest.raises(SessionNotFoundError):
        await registry.get("not-a-uuid")


@pytest.mark.asyncio
async def test_get_accepts_string_id(registry, classroom):
    found = await registry.get(str(classroom.id))
    assert found.id == classroom.id


@pytest.mark.asyncio
async def test_close_publishes_event_and_rejects_second_close(registry, bus, classroom):
    events = []
    bus.add_listener(classroom.id, events.append)

    closed = await registry.close(classroom.id)

    assert closed.status == SessionStatus.CLOSED
    assert closed.closed_at is not None
    assert [e.type for e in events] == [EventType.SESSION]
    assert events[0].payload["action"] == "closed"
    assert events[0].payload["session"]["status"] == "closed"

    with pytest.raises(AlreadyClosedError):
        await registry.close(classroom.id)


@pytest.mark.asyncio
async def test_close_drops_per_session_lock_and_sequence(registry, coordinator, bus, locks, classroom):
    await coordinator.select_seat(classroom.id, 1, "A")
    assert classroom.id in locks
    assert bus.last_seq(classroom.id) == 1

    await registry.close(classroom.id)

    assert classroom.id not in locks
    assert bus.last_seq(classroom.id) == 0


@pytest.mark.asyncio
async def test_list_recent_newest_first(registry):
    first = await registry.create(class_name="1組", date="2024-01-15", period=1)
    second = await registry.create(class_name="2組", date="2024-01-15", period=2)

    sessions = await registry.list_recent()

    assert [s.id for s in sessions] == [second.id, first.id]
