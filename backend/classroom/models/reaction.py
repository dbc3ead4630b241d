from sqlalchemy import Column, String, Enum, DateTime, ForeignKey, Text, Uuid, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from classroom.core.database import Base
from classroom.models.enums import ReactionType


class Reaction(Base):
    __tablename__ = "topic_reactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id = Column(Uuid, ForeignKey("participants.id"), nullable=False, index=True)
    reactor_name = Column(String, nullable=False)
    reaction_type = Column(Enum(ReactionType, values_callable=lambda x: [e.value for e in x]), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_topic_reactions_participant_reactor", "participant_id", "reactor_name", "reaction_type"),
    )

    # Relationships
    participant = relationship("Participant", back_populates="reactions", lazy="raise")


class Comment(Base):
    __tablename__ = "topic_comments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id = Column(Uuid, ForeignKey("participants.id"), nullable=False, index=True)
    commenter_name = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    participant = relationship("Participant", back_populates="comments", lazy="raise")
