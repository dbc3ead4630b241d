from classroom.models.session import Session, Participant
from classroom.models.chat import ChatMessage
from classroom.models.reaction import Reaction, Comment

__all__ = [
    "Session",
    "Participant",
    "ChatMessage",
    "Reaction",
    "Comment",
]
