from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

from classroom.schemas.participant import ParticipantResponse, ParticipantWithStats
from classroom.schemas.chat import ChatMessageResponse


class SessionCreate(BaseModel):
    class_name: str
    date: str
    period: int
    teacher_topic_title: Optional[str] = None
    teacher_topic_content: Optional[str] = None


class SessionResponse(BaseModel):
    id: UUID
    session_code: str
    class_name: str
    date: str
    period: int
    teacher_topic_title: Optional[str]
    teacher_topic_content: Optional[str]
    status: str
    created_at: datetime
    closed_at: Optional[datetime]

    class Config:
        from_attributes = True


class SessionCreateResponse(BaseModel):
    session_code: str
    session_id: UUID
    session: SessionResponse
    viewer_token: str


class JoinResponse(BaseModel):
    session_id: UUID
    session: SessionResponse
    participant: ParticipantResponse
    available_seats: list[int]
    viewer_token: str


class SessionCloseResponse(BaseModel):
    session: SessionResponse
    participant_count: int


class ViewerResponse(BaseModel):
    viewer_name: str
    role: str
    last_seen_at: datetime


class SessionSnapshot(BaseModel):
    session: SessionResponse
    participants: list[ParticipantWithStats]
    available_seats: list[int]
    messages: list[ChatMessageResponse]
    chat_cursor: int = Field(0, description="Sequence number of the newest visible message")
    viewers: list[ViewerResponse] = []
