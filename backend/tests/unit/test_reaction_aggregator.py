"""
Unit tests for likes, views and comments.
"""

import pytest
import pytest_asyncio
from uuid import uuid4

from classroom.core.config import settings
from classroom.core.exceptions import (
    CommentTooLongError,
    ParticipantNotFoundError,
    SessionClosedError,
    ValidationError,
)
from classroom.models.enums import EventType, ReactionType


@pytest_asyncio.fixture
async def presenter(coordinator, classroom):
    participant = await coordinator.select_seat(classroom.id, 1, "発表者")
    return await coordinator.submit_topic(participant.id, "光合成")


@pytest.mark.asyncio
async def test_like_is_counted_once_per_reactor(reactions, presenter):
    first = await reactions.like(presenter.id, "B")
    repeat = await reactions.like(presenter.id, "B")
    await reactions.like(presenter.id, "C")

    assert repeat.id == first.id
    assert first.reaction_type == ReactionType.LIKE
    assert await reactions.get_stats(presenter.id) == {"likes": 2, "views": 0}


@pytest.mark.asyncio
async def test_views_accumulate(reactions, presenter):
    await reactions.record_view(presenter.id, "B")
    await reactions.record_view(presenter.id, "B")

    assert await reactions.get_stats(presenter.id) == {"likes": 0, "views": 2}


@pytest.mark.asyncio
async def test_get_stats_is_read_only(reactions, presenter):
    await reactions.like(presenter.id, "B")

    assert await reactions.get_stats(presenter.id) == await reactions.get_stats(presenter.id)


@pytest.mark.asyncio
async def test_stats_for_unknown_participant(reactions):
    with pytest.raises(ParticipantNotFoundError):
        await reactions.get_stats(uuid4())
    with pytest.raises(ParticipantNotFoundError):
        await reactions.like(uuid4(), "B")


@pytest.mark.asyncio
async def test_reaction_event_carries_fresh_counts(reactions, bus, presenter):
    events = []
    bus.add_listener(presenter.session_id, events.append)

    await reactions.like(presenter.id, "B")
    await reactions.like(presenter.id, "B")
    await reactions.record_view(presenter.id, "C")

    assert [e.type for e in events] == [EventType.REACTION, EventType.REACTION]
    assert events[0].payload["likes"] == 1
    assert events[0].payload["reaction"]["reaction_type"] == "like"
    assert events[1].payload["views"] == 1
    assert events[1].payload["participant_id"] == str(presenter.id)


@pytest.mark.asyncio
async def test_reactor_name_is_required(reactions, presenter):
    with pytest.raises(ValidationError):
        await reactions.like(presenter.id, "  ")


@pytest.mark.asyncio
async def test_comments_are_listed_oldest_first(reactions, bus, presenter):
    events = []
    bus.add_listener(presenter.session_id, events.append)

    await reactions.comment(presenter.id, "B", "いいね")
    await reactions.comment(presenter.id, "C", "  質問があります  ")

    comments = await reactions.list_comments(presenter.id)
    assert [c.content for c in comments] == ["いいね", "質問があります"]
    assert await reactions.count_comments(presenter.id) == 2
    assert events[-1].payload["comment_count"] == 2
    assert events[-1].payload["comment"]["commenter_name"] == "C"


@pytest.mark.asyncio
async def test_comment_limits(reactions, presenter):
    with pytest.raises(ValidationError):
        await reactions.comment(presenter.id, "B", "   ")
    with pytest.raises(CommentTooLongError):
        await reactions.comment(presenter.id, "B", "x" * (settings.COMMENT_MAX_LENGTH + 1))

    accepted = await reactions.comment(presenter.id, "B", "x" * settings.COMMENT_MAX_LENGTH)
    assert len(accepted.content) == settings.COMMENT_MAX_LENGTH


@pytest.mark.asyncio
async def test_reactions_on_closed_session(reactions, registry, presenter):
    await registry.close(presenter.session_id)

    with pytest.raises(SessionClosedError):
        await reactions.like(presenter.id, "B")
    with pytest.raises(SessionClosedError):
        await reactions.record_view(presenter.id, "B")
    with pytest.raises(SessionClosedError):
        await reactions.comment(presenter.id, "B", "遅れました")

    assert await reactions.get_stats(presenter.id) == {"likes": 0, "views": 0}
