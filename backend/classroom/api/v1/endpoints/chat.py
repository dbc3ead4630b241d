from fastapi import APIRouter, Query
from typing import Optional
from datetime import datetime
from uuid import UUID

from classroom.api.deps import Chat, Registry
from classroom.core.config import settings
from classroom.schemas.chat import ChatMessageCreate, ChatMessageResponse, ChatPage

router = APIRouter()


@router.post("", response_model=ChatMessageResponse)
async def send_message(request: ChatMessageCreate, chat: Chat):
    return await chat.send(
        request.session_id,
        request.sender_name,
        request.message,
        is_teacher=request.is_teacher,
    )


@router.get("/{session_id}", response_model=ChatPage)
async def list_messages(
    session_id: UUID,
    chat: Chat,
    registry: Registry,
    since: Optional[datetime] = None,
    after_seq: Optional[int] = Query(None, ge=0),
    limit: int = Query(settings.CHAT_PAGE_SIZE, ge=1, le=settings.CHAT_MAX_PAGE_SIZE),
):
    """Polling endpoint: messages strictly after ``since`` / ``after_seq``."""
    messages, has_more = await chat.list(session_id, since=since, limit=limit, after_seq=after_seq)
    session = await registry.get(session_id)
    return ChatPage(
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
        has_more=has_more,
        session_status=session.status.value,
        cursor=messages[-1].seq if messages else after_seq,
    )


@router.post("/messages/{message_id}/hide", response_model=ChatMessageResponse)
async def hide_message(message_id: UUID, chat: Chat):
    """Moderation: remove a message from every client's view."""
    return await chat.hide(message_id)
