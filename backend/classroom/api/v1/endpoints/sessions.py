from fastapi import APIRouter, Query
from uuid import UUID

from classroom.api.deps import DBSession, Realtime, Registry
from classroom.core.security import create_viewer_token
from classroom.schemas.session import (
    SessionCloseResponse,
    SessionCreate,
    SessionCreateResponse,
    SessionResponse,
    SessionSnapshot,
)

router = APIRouter()


@router.post("", response_model=SessionCreateResponse)
async def create_session(request: SessionCreate, registry: Registry):
    session = await registry.create(
        class_name=request.class_name,
        date=request.date,
        period=request.period,
        teacher_topic_title=request.teacher_topic_title,
        teacher_topic_content=request.teacher_topic_content,
    )
    return SessionCreateResponse(
        session_code=session.session_code,
        session_id=session.id,
        session=SessionResponse.model_validate(session),
        viewer_token=create_viewer_token(str(session.id), "teacher", role="teacher"),
    )


@router.get("", response_model=list[SessionResponse])
async def list_sessions(registry: Registry, limit: int = Query(20, ge=1, le=100)):
    return await registry.list_recent(limit)


@router.get("/by-code/{session_code}", response_model=SessionResponse)
async def find_session_by_code(session_code: str, registry: Registry):
    return await registry.find_by_code(session_code)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: UUID, registry: Registry):
    return await registry.get(session_id)


@router.post("/{session_id}/close", response_model=SessionCloseResponse)
async def close_session(session_id: UUID, registry: Registry):
    session = await registry.close(session_id)
    return SessionCloseResponse(
        session=SessionResponse.model_validate(session),
        participant_count=await registry.count_participants(session.id),
    )


@router.get("/{session_id}/snapshot", response_model=SessionSnapshot)
async def get_session_snapshot(session_id: UUID, db: DBSession, sync: Realtime):
    """Everything a dashboard needs to (re)build its view of the session."""
    return await sync.snapshot(session_id, db=db)
