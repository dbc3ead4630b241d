from fastapi import APIRouter
from uuid import UUID

from classroom.api.deps import Presence, Registry
from classroom.core.config import settings
from classroom.core.exceptions import ValidationError
from classroom.schemas.participant import HeartbeatRequest
from classroom.schemas.session import ViewerResponse

router = APIRouter()


@router.post("/heartbeat")
async def heartbeat(request: HeartbeatRequest, registry: Registry, presence: Presence):
    """Presence refresh for clients without a socket connection."""
    viewer_name = request.viewer_name.strip()
    if not viewer_name:
        raise ValidationError("Viewer name is required")
    session = await registry.get(request.session_id)
    entry = presence.touch(session.id, viewer_name, request.role)
    return {
        "status": "ok",
        "last_seen_at": entry.last_seen_at,
        "interval": settings.HEARTBEAT_INTERVAL_SECONDS,
    }


@router.get("/{session_id}/viewers", response_model=list[ViewerResponse])
async def list_viewers(session_id: UUID, registry: Registry, presence: Presence):
    session = await registry.get(session_id)
    return [
        ViewerResponse(viewer_name=v.viewer_name, role=v.role, last_seen_at=v.last_seen_at)
        for v in presence.viewers(session.id)
    ]
