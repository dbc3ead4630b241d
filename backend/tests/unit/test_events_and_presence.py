import asyncio

import pytest

from classroom.core.locks import CODE_GENERATION_KEY, SessionLocks
from classroom.models.enums import EventType
from classroom.realtime.events import EventBus
from classroom.realtime.presence import PresenceTracker


def test_publish_numbers_events_per_session():
    bus = EventBus()

    first = bus.publish(EventType.CHAT, "s1", {})
    second = bus.publish(EventType.CHAT, "s1", {})
    other = bus.publish(EventType.CHAT, "s2", {})

    assert (first.seq, second.seq, other.seq) == (1, 2, 1)
    assert first.to_dict()["type"] == "chat"


def test_failing_listener_does_not_stop_others():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.add_listener("s1", broken)
    bus.add_listener("s1", received.append)
    bus.publish(EventType.PARTICIPANT, "s1", {"action": "joined"})

    assert len(received) == 1


def test_remove_listener():
    bus = EventBus()
    received = []
    token = bus.add_listener("s1", received.append)

    bus.remove_listener("s1", token)
    bus.remove_listener("s1", token)
    bus.publish(EventType.CHAT, "s1", {})

    assert received == []
    assert bus.listener_count("s1") == 0


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_presence_entries_go_stale():
    clock = FakeClock()
    presence = PresenceTracker(stale_after=10, clock=clock)

    presence.touch("s1", "佐藤", "student")
    presence.touch("s1", "先生", "teacher")
    clock.now += 6
    presence.touch("s1", "佐藤", "student")
    clock.now += 6

    assert [v.viewer_name for v in presence.viewers("s1")] == ["佐藤"]

    clock.now += 11
    assert presence.viewers("s1") == []


def test_presence_remove_is_idempotent():
    presence = PresenceTracker(stale_after=10, clock=FakeClock())
    presence.touch("s1", "佐藤")

    presence.remove("s1", "佐藤")
    presence.remove("s1", "佐藤")

    assert presence.viewers("s1") == []


@pytest.mark.asyncio
async def test_session_locks_serialize_one_key():
    locks = SessionLocks()
    order = []

    async def critical(name):
        async with locks.hold("s1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    await asyncio.gather(critical("a"), critical("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert locks.get("s1") is locks.get("s1")
    assert locks.get(CODE_GENERATION_KEY) is not locks.get("s1")
    assert len(locks) == 2


@pytest.mark.asyncio
async def test_session_locks_discard_skips_busy_keys():
    locks = SessionLocks()
    held = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("s1"):
            held.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await held.wait()
    locks.discard("s1")
    assert "s1" in locks

    release.set()
    await task
    locks.discard("s1")
    locks.discard("never-used")
    assert "s1" not in locks
    assert len(locks) == 0


def test_retire_forgets_sequence_after_last_listener():
    bus = EventBus()
    bus.publish(EventType.CHAT, "idle", {})
    bus.retire("idle")
    assert bus.last_seq("idle") == 0

    token = bus.add_listener("watched", lambda event: None)
    bus.publish(EventType.CHAT, "watched", {})
    bus.publish(EventType.SESSION, "watched", {})
    bus.retire("watched")
    assert bus.last_seq("watched") == 2
    assert bus.publish(EventType.CHAT, "watched", {}).seq == 3

    bus.remove_listener("watched", token)
    assert bus.last_seq("watched") == 0
