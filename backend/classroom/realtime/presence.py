import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from classroom.core.config import settings


@dataclass
class ViewerPresence:
    viewer_name: str
    role: str
    last_seen_at: datetime
    last_seen_monotonic: float


class PresenceTracker:
    """Who is currently viewing each session.

    Clients refresh their entry every HEARTBEAT_INTERVAL_SECONDS; an entry not
    refreshed within ``stale_after`` seconds is dropped on the next read.
    """

    def __init__(self, stale_after: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.stale_after = stale_after if stale_after is not None else settings.PRESENCE_STALE_AFTER_SECONDS
        self.clock = clock
        self._entries: dict[str, dict[str, ViewerPresence]] = {}

    def touch(self, session_id, viewer_name: str, role: str = "student") -> ViewerPresence:
        entry = ViewerPresence(
            viewer_name=viewer_name,
            role=role,
            last_seen_at=datetime.utcnow(),
            last_seen_monotonic=self.clock(),
        )
        self._entries.setdefault(str(session_id), {})[viewer_name] = entry
        return entry

    def remove(self, session_id, viewer_name: str) -> None:
        entries = self._entries.get(str(session_id))
        if entries:
            entries.pop(viewer_name, None)
            if not entries:
                del self._entries[str(session_id)]

    def viewers(self, session_id) -> list[ViewerPresence]:
        key = str(session_id)
        entries = self._entries.get(key, {})
        cutoff = self.clock() - self.stale_after
        for name in [n for n, e in entries.items() if e.last_seen_monotonic < cutoff]:
            del entries[name]
        if not entries:
            self._entries.pop(key, None)
        return sorted(entries.values(), key=lambda e: e.viewer_name)


presence_tracker = PresenceTracker()
