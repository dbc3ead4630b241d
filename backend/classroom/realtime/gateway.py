import socketio
import logging
from datetime import datetime
from typing import Optional

from classroom.core.config import settings
from classroom.core.database import AsyncSessionLocal
from classroom.core.exceptions import ClassroomError
from classroom.core.security import get_viewer_from_token
from classroom.realtime.presence import presence_tracker
from classroom.realtime.sync import SubscriptionHandle, realtime
from classroom.services.chat_channel import ChatChannel, message_payload

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.CORS_ORIGINS,
    logger=False,
    engineio_logger=False,
)

socket_app = socketio.ASGIApp(sio, socketio_path="")

# In-memory state (single instance; realtime fan-out is not scaled out)
connected_viewers: dict[str, dict] = {}  # sid -> viewer info
subscriptions: dict[str, SubscriptionHandle] = {}  # sid -> realtime subscription

presence = presence_tracker


def _forward(sid: str, event: str):
    async def emit(envelope: dict):
        await sio.emit(event, envelope, to=sid)
    return emit


@sio.event
async def connect(sid, environ, auth):
    token = auth.get("token") if auth else None
    if not token:
        return False

    viewer = get_viewer_from_token(token)
    if not viewer:
        return False

    session_id = viewer["session_id"]
    try:
        handle = await realtime.subscribe(
            session_id,
            on_participant_change=_forward(sid, "participant_change"),
            on_chat_insert=_forward(sid, "chat_message"),
            on_reaction_change=_forward(sid, "reaction_change"),
            on_session_change=_forward(sid, "session_change"),
        )
    except ClassroomError as e:
        logger.warning(f"Rejected realtime connection for session {session_id}: {e.message}")
        return False

    connected_viewers[sid] = viewer
    subscriptions[sid] = handle
    await sio.enter_room(sid, f"session:{session_id}")

    presence.touch(session_id, viewer["name"], viewer["role"])
    await sio.emit(
        "presence_update",
        {
            "viewer_name": viewer["name"],
            "role": viewer["role"],
            "status": "online",
            "last_seen_at": datetime.utcnow().isoformat(),
        },
        room=f"session:{session_id}",
        skip_sid=sid,
    )
    return True


@sio.event
async def disconnect(sid):
    viewer = connected_viewers.pop(sid, None)
    handle = subscriptions.pop(sid, None)
    if handle is not None:
        await realtime.unsubscribe(handle)
    if not viewer:
        return

    session_id = viewer["session_id"]
    presence.remove(session_id, viewer["name"])
    await sio.emit(
        "presence_update",
        {
            "viewer_name": viewer["name"],
            "role": viewer["role"],
            "status": "offline",
            "last_seen_at": datetime.utcnow().isoformat(),
        },
        room=f"session:{session_id}",
    )


@sio.event
async def join_session(sid, data):
    """Return the authoritative session state for the client to reconcile against."""
    viewer = connected_viewers.get(sid)
    if not viewer:
        return {"error": "NotConnected", "detail": "Not connected"}

    try:
        snapshot = await realtime.snapshot(viewer["session_id"])
    except ClassroomError as e:
        return {"error": e.code, "detail": e.message}
    return snapshot.model_dump(mode="json")


@sio.event
async def heartbeat(sid, data=None):
    viewer = connected_viewers.get(sid)
    if not viewer:
        return {"error": "NotConnected", "detail": "Not connected"}

    entry = presence.touch(viewer["session_id"], viewer["name"], viewer["role"])
    return {
        "status": "ok",
        "last_seen_at": entry.last_seen_at.isoformat(),
        "interval": settings.HEARTBEAT_INTERVAL_SECONDS,
    }


@sio.event
async def send_chat(sid, data):
    viewer = connected_viewers.get(sid)
    if not viewer:
        return {"error": "NotConnected", "detail": "Not connected"}

    text: Optional[str] = (data or {}).get("message")
    async with AsyncSessionLocal() as db:
        try:
            message = await ChatChannel(db).send(
                viewer["session_id"],
                viewer["name"],
                text,
                is_teacher=viewer["role"] == "teacher",
            )
        except ClassroomError as e:
            return {"error": e.code, "detail": e.message}

    # Delivery to every viewer, sender included, goes through the subscriptions.
    return {"success": True, "message": message_payload(message)}
