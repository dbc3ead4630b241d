from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Uuid, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from classroom.core.database import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("sessions.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    sender_name = Column(String, nullable=False)
    message = Column(String(200), nullable=False)
    is_teacher = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("session_id", "seq", name="uq_chat_messages_session_seq"),
        Index("ix_chat_messages_session_created", "session_id", "created_at"),
    )

    # Relationships
    session = relationship("Session", back_populates="chat_messages", lazy="raise")

    @property
    def is_hidden(self) -> bool:
        return self.deleted_at is not None
