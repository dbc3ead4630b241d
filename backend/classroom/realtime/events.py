"""
In-process fan-out of session mutations.

Services publish a ``SessionEvent`` after their write has committed. Every
listener registered for that session is called synchronously with the event;
listeners must not block (realtime subscriptions just enqueue it).
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from classroom.models.enums import EventType

logger = logging.getLogger(__name__)


@dataclass
class SessionEvent:
    type: EventType
    session_id: str
    payload: dict[str, Any]
    seq: Optional[int] = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "seq": self.seq,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
        }


Listener = Callable[[SessionEvent], None]


class EventBus:
    def __init__(self):
        self._listeners: dict[str, dict[int, Listener]] = {}
        self._seq: dict[str, int] = {}
        self._retired: set[str] = set()
        self._tokens = itertools.count(1)

    def add_listener(self, session_id, listener: Listener) -> int:
        token = next(self._tokens)
        self._listeners.setdefault(str(session_id), {})[token] = listener
        return token

    def remove_listener(self, session_id, token: int) -> None:
        listeners = self._listeners.get(str(session_id))
        if not listeners:
            return
        listeners.pop(token, None)
        if not listeners:
            key = str(session_id)
            del self._listeners[key]
            if key in self._retired:
                self._retired.discard(key)
                self._seq.pop(key, None)

    def listener_count(self, session_id) -> int:
        return len(self._listeners.get(str(session_id), {}))

    def last_seq(self, session_id) -> int:
        return self._seq.get(str(session_id), 0)

    def retire(self, session_id) -> None:
        """Forget the sequence of a closed session once its last listener leaves."""
        key = str(session_id)
        if key in self._listeners:
            self._retired.add(key)
        else:
            self._seq.pop(key, None)

    def publish(self, event_type: EventType, session_id, payload: dict[str, Any]) -> SessionEvent:
        key = str(session_id)
        seq = self._seq.get(key, 0) + 1
        self._seq[key] = seq
        event = SessionEvent(type=event_type, session_id=key, payload=payload, seq=seq)

        for listener in list(self._listeners.get(key, {}).values()):
            try:
                listener(event)
            except Exception as e:
                # Listener errors never reach the publisher.
                logger.error(f"Event listener failed for session {key}: {e}")
        return event


event_bus = EventBus()
