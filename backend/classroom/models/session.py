from sqlalchemy import Column, String, Enum, DateTime, Integer, ForeignKey, Text, Uuid, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from classroom.core.database import Base
from classroom.models.enums import SessionStatus, ParticipantStatus


class Session(Base):
    __tablename__ = "sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_code = Column(String(8), nullable=False, index=True)
    class_name = Column(String, nullable=False)
    date = Column(String, nullable=False)
    period = Column(Integer, nullable=False)
    teacher_topic_title = Column(String, nullable=True)
    teacher_topic_content = Column(Text, nullable=True)
    status = Column(Enum(SessionStatus, values_callable=lambda x: [e.value for e in x]), default=SessionStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    closed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # A closed session's code may be handed out again.
        Index(
            "uq_sessions_open_code",
            "session_code",
            unique=True,
            postgresql_where=text("status <> 'closed'"),
            sqlite_where=text("status <> 'closed'"),
        ),
    )

    # Relationships
    participants = relationship("Participant", back_populates="session", lazy="raise", cascade="all, delete-orphan")
    chat_messages = relationship("ChatMessage", back_populates="session", lazy="raise", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("sessions.id"), nullable=False, index=True)
    student_name = Column(String, nullable=False)
    student_id = Column(String, nullable=True)
    seat_position = Column(Integer, nullable=True)
    topic_title = Column(String(100), nullable=True)
    topic_content = Column(Text, nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "student_name", name="uq_participants_session_name"),
        # NULL seats never collide.
        UniqueConstraint("session_id", "seat_position", name="uq_participants_session_seat"),
    )

    # Relationships
    session = relationship("Session", back_populates="participants", lazy="raise")
    reactions = relationship("Reaction", back_populates="participant", lazy="raise", cascade="all, delete-orphan")
    comments = relationship("Comment", back_populates="participant", lazy="raise", cascade="all, delete-orphan")

    @property
    def status(self) -> ParticipantStatus:
        if self.seat_position is None:
            return ParticipantStatus.JOINED
        if not self.topic_title:
            return ParticipantStatus.SEATED
        return ParticipantStatus.SUBMITTED
