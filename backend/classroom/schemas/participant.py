from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


class JoinRequest(BaseModel):
    session_code: str
    student_name: str
    student_id: Optional[str] = None
    auto_seat: bool = False


class SeatSelectRequest(BaseModel):
    session_id: UUID
    seat_position: int
    student_name: str
    student_id: Optional[str] = None


class TopicSubmitRequest(BaseModel):
    topic_title: str
    topic_content: Optional[str] = None


class ParticipantResponse(BaseModel):
    id: UUID
    session_id: UUID
    student_name: str
    student_id: Optional[str]
    seat_position: Optional[int]
    topic_title: Optional[str]
    topic_content: Optional[str]
    status: str
    joined_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ParticipantWithStats(ParticipantResponse):
    like_count: int = 0
    view_count: int = 0
    comment_count: int = 0


class SeatSelectResponse(BaseModel):
    participant: ParticipantResponse


class TopicSubmitResponse(BaseModel):
    participant: ParticipantResponse


class HeartbeatRequest(BaseModel):
    session_id: UUID
    viewer_name: str
    role: str = Field("student", pattern="^(teacher|student)$")
