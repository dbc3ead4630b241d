from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime


class ChatMessageCreate(BaseModel):
    session_id: UUID
    sender_name: str
    message: str
    is_teacher: bool = False


class ChatMessageResponse(BaseModel):
    id: UUID
    session_id: UUID
    seq: int
    sender_name: str
    message: str
    is_teacher: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ChatPage(BaseModel):
    messages: list[ChatMessageResponse]
    has_more: bool
    session_status: str
    cursor: Optional[int] = None
