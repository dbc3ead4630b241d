"""
Session-scoped realtime subscriptions.

A subscription delivers participant, chat, reaction and session events to the
callbacks it was created with, in one of two modes:

* push: the subscription listens on the EventBus and a delivery task hands
  queued events to the callbacks in publish order.
* poll: a task wakes every ``poll_interval`` seconds, reads chat past its
  sequence cursor, reads hides past its hide cursor and diffs participant and
  reaction-count snapshots.

If a push delivery raises, the subscription switches itself to polling from
the last chat message it delivered, with empty snapshots, so every mutation is
still delivered at least once.
"""

import asyncio
import itertools
import logging
from contextlib import suppress
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classroom.core.config import settings
from classroom.core.database import AsyncSessionLocal
from classroom.core.metrics import ACTIVE_SUBSCRIPTIONS, DELIVERY_FALLBACKS
from classroom.models.enums import EventType, SessionStatus, SubscriptionMode
from classroom.realtime.events import EventBus, SessionEvent, event_bus
from classroom.realtime.presence import PresenceTracker, presence_tracker
from classroom.schemas.chat import ChatMessageResponse
from classroom.schemas.session import SessionResponse, SessionSnapshot, ViewerResponse
from classroom.services.chat_channel import ChatChannel, message_payload
from classroom.services.participant_coordinator import ParticipantCoordinator
from classroom.services.session_registry import SessionRegistry, session_payload

logger = logging.getLogger(__name__)

Callback = Callable[[dict[str, Any]], Awaitable[None]]


class SubscriptionHandle:
    def __init__(
        self,
        handle_id: int,
        session_id: str,
        mode: SubscriptionMode,
        callbacks: dict[EventType, Optional[Callback]],
    ):
        self.id = handle_id
        self.session_id = session_id
        self.mode = mode
        self.callbacks = callbacks
        self.closed = False
        self.fell_back = False

        self.chat_cursor = 0
        # Hides are ordered by deleted_at; ids already reported at the cursor instant are kept.
        self.hidden_cursor: Optional[datetime] = None
        self.hidden_seen: set[str] = set()
        self.session_status: Optional[str] = None
        self.participant_snapshot: dict[str, tuple] = {}
        self.stats_snapshot: dict[str, tuple] = {}

        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._listener_token: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    async def drain(self) -> None:
        """Wait until every queued push event has been handled."""
        await self._queue.join()

    def __repr__(self) -> str:
        return f"<SubscriptionHandle {self.id} session={self.session_id} mode={self.mode.value}>"


class RealtimeSync:
    def __init__(
        self,
        bus: Optional[EventBus] = None,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        presence: Optional[PresenceTracker] = None,
        poll_interval: Optional[float] = None,
    ):
        self.bus = bus if bus is not None else event_bus
        self.session_factory = session_factory
        self.presence = presence if presence is not None else presence_tracker
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL_SECONDS
        self._handles: dict[int, SubscriptionHandle] = {}
        self._ids = itertools.count(1)

    @property
    def handles(self) -> list[SubscriptionHandle]:
        return list(self._handles.values())

    async def subscribe(
        self,
        session_id,
        on_participant_change: Callback,
        on_chat_insert: Callback,
        on_reaction_change: Callback,
        mode: SubscriptionMode = SubscriptionMode.PUSH,
        on_session_change: Optional[Callback] = None,
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(
            next(self._ids),
            str(session_id),
            SubscriptionMode(mode),
            {
                EventType.PARTICIPANT: on_participant_change,
                EventType.CHAT: on_chat_insert,
                EventType.REACTION: on_reaction_change,
                EventType.SESSION: on_session_change,
            },
        )

        # Listen before reading the baseline so nothing published in between is lost.
        # Events that the baseline already covers are delivered twice at worst.
        if handle.mode == SubscriptionMode.PUSH:
            handle._listener_token = self.bus.add_listener(handle.session_id, handle._queue.put_nowait)

        # Start from the current state; clients load it through snapshot().
        try:
            async with self.session_factory() as db:
                registry = SessionRegistry(db, events=self.bus)
                chat = ChatChannel(db, registry=registry, events=self.bus)
                session = await registry.get(session_id)
                handle.session_status = session.status.value
                handle.chat_cursor = await chat.latest_seq(session.id)
                handle.hidden_cursor = await chat.latest_hidden_at(session.id)
                if handle.hidden_cursor is not None:
                    hidden = await chat.list_hidden(session.id, since=handle.hidden_cursor)
                    handle.hidden_seen = {str(message.id) for message in hidden}
                if handle.mode == SubscriptionMode.POLL:
                    participants = await ParticipantCoordinator(db, registry=registry, events=self.bus).list_for_session(session.id)
                    for participant in participants:
                        handle.participant_snapshot[str(participant.id)] = _participant_fingerprint(participant)
                        handle.stats_snapshot[str(participant.id)] = _stats_fingerprint(participant)
        except Exception:
            self._detach_listener(handle)
            _discard_queue(handle)
            raise

        self._handles[handle.id] = handle
        if handle.mode == SubscriptionMode.PUSH:
            handle._task = asyncio.create_task(self._deliver_loop(handle))
        else:
            handle._task = asyncio.create_task(self._poll_loop(handle))

        ACTIVE_SUBSCRIPTIONS.labels(mode=handle.mode.value).inc()
        logger.info(f"Realtime subscription {handle.id} opened for session {handle.session_id} ({handle.mode.value})")
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        self._handles.pop(handle.id, None)
        self._detach_listener(handle)
        ACTIVE_SUBSCRIPTIONS.labels(mode=handle.mode.value).dec()

        task = handle._task
        handle._task = None
        if task is not None and not task.done():
            task.cancel()
            if task is not asyncio.current_task():
                with suppress(asyncio.CancelledError):
                    await task
        _discard_queue(handle)
        logger.info(f"Realtime subscription {handle.id} closed for session {handle.session_id}")

    async def shutdown(self) -> None:
        for handle in self.handles:
            await self.unsubscribe(handle)

    async def snapshot(self, session_id, db: Optional[AsyncSession] = None) -> SessionSnapshot:
        """Authoritative state used by clients to reconcile optimistic updates."""
        if db is None:
            async with self.session_factory() as db:
                return await self._snapshot(session_id, db)
        return await self._snapshot(session_id, db)

    async def _snapshot(self, session_id, db: AsyncSession) -> SessionSnapshot:
        registry = SessionRegistry(db, events=self.bus)
        coordinator = ParticipantCoordinator(db, registry=registry, events=self.bus)
        chat = ChatChannel(db, registry=registry, events=self.bus)

        session = await registry.get(session_id)
        return SessionSnapshot(
            session=SessionResponse.model_validate(session),
            participants=await coordinator.list_for_session(session.id),
            available_seats=await coordinator.available_seats(session.id),
            messages=[ChatMessageResponse.model_validate(m) for m in await chat.recent(session.id)],
            chat_cursor=await chat.latest_seq(session.id),
            viewers=[
                ViewerResponse(viewer_name=v.viewer_name, role=v.role, last_seen_at=v.last_seen_at)
                for v in self.presence.viewers(session.id)
            ],
        )

    # ------------------------------------------------------------------
    # Push delivery
    # ------------------------------------------------------------------

    async def _deliver_loop(self, handle: SubscriptionHandle) -> None:
        while not handle.closed:
            event = await handle._queue.get()
            try:
                await self._dispatch(handle, event)
            except asyncio.CancelledError:
                handle._queue.task_done()
                raise
            except Exception as e:
                handle._queue.task_done()
                logger.warning(
                    f"Push delivery failed for subscription {handle.id} ({e}), falling back to polling"
                )
                self._fall_back_to_polling(handle)
                return
            handle._queue.task_done()

    async def _dispatch(self, handle: SubscriptionHandle, event: SessionEvent) -> None:
        callback = handle.callbacks.get(event.type)
        if callback is not None:
            await callback(event.to_dict())
        if event.type == EventType.CHAT and event.payload.get("action") == "inserted":
            handle.chat_cursor = max(handle.chat_cursor, event.payload["message"]["seq"])
        elif event.type == EventType.SESSION:
            handle.session_status = event.payload["session"]["status"]

    def _fall_back_to_polling(self, handle: SubscriptionHandle) -> None:
        self._detach_listener(handle)
        _discard_queue(handle)
        ACTIVE_SUBSCRIPTIONS.labels(mode=handle.mode.value).dec()
        DELIVERY_FALLBACKS.inc()

        handle.mode = SubscriptionMode.POLL
        handle.fell_back = True
        # Empty snapshots make the first poll re-deliver every participant and count.
        handle.participant_snapshot = {}
        handle.stats_snapshot = {}
        handle.session_status = None
        ACTIVE_SUBSCRIPTIONS.labels(mode=handle.mode.value).inc()
        handle._task = asyncio.create_task(self._poll_loop(handle))

    def _detach_listener(self, handle: SubscriptionHandle) -> None:
        if handle._listener_token is not None:
            self.bus.remove_listener(handle.session_id, handle._listener_token)
            handle._listener_token = None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_loop(self, handle: SubscriptionHandle) -> None:
        while not handle.closed:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once(handle)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Polling failed for subscription {handle.id}: {e}")

    async def poll_once(self, handle: SubscriptionHandle) -> None:
        async with self.session_factory() as db:
            registry = SessionRegistry(db, events=self.bus)
            chat = ChatChannel(db, registry=registry, events=self.bus)
            coordinator = ParticipantCoordinator(db, registry=registry, events=self.bus)

            session = await registry.get(handle.session_id)

            has_more = True
            while has_more and not handle.closed:
                messages, has_more = await chat.list(
                    session.id, after_seq=handle.chat_cursor, limit=settings.CHAT_MAX_PAGE_SIZE
                )
                for message in messages:
                    await self._emit(handle, EventType.CHAT, {"action": "inserted", "message": message_payload(message)})
                    handle.chat_cursor = message.seq

            for message in await chat.list_hidden(session.id, since=handle.hidden_cursor):
                key = str(message.id)
                if message.deleted_at == handle.hidden_cursor and key in handle.hidden_seen:
                    continue
                await self._emit(handle, EventType.CHAT, {"action": "hidden", "message": message_payload(message)})
                if message.deleted_at != handle.hidden_cursor:
                    handle.hidden_cursor = message.deleted_at
                    handle.hidden_seen = set()
                handle.hidden_seen.add(key)

            for participant in await coordinator.list_for_session(session.id):
                key = str(participant.id)
                fingerprint = _participant_fingerprint(participant)
                if handle.participant_snapshot.get(key) != fingerprint:
                    participant_data = participant.model_dump(
                        mode="json", exclude={"like_count", "view_count", "comment_count"}
                    )
                    await self._emit(handle, EventType.PARTICIPANT, {"action": "changed", "participant": participant_data})
                    handle.participant_snapshot[key] = fingerprint

                stats = _stats_fingerprint(participant)
                if handle.stats_snapshot.get(key, _NO_REACTIONS) != stats:
                    await self._emit(
                        handle,
                        EventType.REACTION,
                        {
                            "participant_id": key,
                            "likes": participant.like_count,
                            "views": participant.view_count,
                            "comment_count": participant.comment_count,
                        },
                    )
                    handle.stats_snapshot[key] = stats

            if handle.session_status != session.status.value:
                await self._emit(handle, EventType.SESSION, {"action": session.status.value, "session": session_payload(session)})
                handle.session_status = session.status.value

    async def _emit(self, handle: SubscriptionHandle, event_type: EventType, payload: dict[str, Any]) -> None:
        callback = handle.callbacks.get(event_type)
        if callback is None or handle.closed:
            return
        event = SessionEvent(type=event_type, session_id=handle.session_id, payload=payload, occurred_at=datetime.utcnow())
        await callback(event.to_dict())


_NO_REACTIONS = (0, 0, 0)


def _participant_fingerprint(participant) -> tuple:
    return (
        participant.student_name,
        participant.student_id,
        participant.seat_position,
        participant.topic_title,
        participant.topic_content,
        participant.updated_at,
    )


def _stats_fingerprint(participant) -> tuple:
    return (participant.like_count, participant.view_count, participant.comment_count)


def _discard_queue(handle: SubscriptionHandle) -> None:
    while not handle._queue.empty():
        handle._queue.get_nowait()
        handle._queue.task_done()


realtime = RealtimeSync()
