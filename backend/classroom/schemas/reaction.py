from pydantic import BaseModel
from uuid import UUID
from datetime import datetime


class ReactionCreate(BaseModel):
    participant_id: UUID
    reactor_name: str


class ReactionResponse(BaseModel):
    id: UUID
    participant_id: UUID
    reactor_name: str
    reaction_type: str
    created_at: datetime

    class Config:
        from_attributes = True


class ReactionStats(BaseModel):
    likes: int
    views: int


class CommentCreate(BaseModel):
    participant_id: UUID
    commenter_name: str
    content: str


class CommentResponse(BaseModel):
    id: UUID
    participant_id: UUID
    commenter_name: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True
