from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from classroom.core.database import get_db
from classroom.realtime.presence import PresenceTracker, presence_tracker
from classroom.realtime.sync import RealtimeSync, realtime
from classroom.services import ChatChannel, ParticipantCoordinator, ReactionAggregator, SessionRegistry

DBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_registry(db: DBSession) -> SessionRegistry:
    return SessionRegistry(db)


async def get_coordinator(db: DBSession) -> ParticipantCoordinator:
    return ParticipantCoordinator(db)


async def get_reactions(db: DBSession) -> ReactionAggregator:
    return ReactionAggregator(db)


async def get_chat(db: DBSession) -> ChatChannel:
    return ChatChannel(db)


def get_realtime() -> RealtimeSync:
    return realtime


def get_presence() -> PresenceTracker:
    return presence_tracker


Registry = Annotated[SessionRegistry, Depends(get_registry)]
Coordinator = Annotated[ParticipantCoordinator, Depends(get_coordinator)]
Reactions = Annotated[ReactionAggregator, Depends(get_reactions)]
Chat = Annotated[ChatChannel, Depends(get_chat)]
Realtime = Annotated[RealtimeSync, Depends(get_realtime)]
Presence = Annotated[PresenceTracker, Depends(get_presence)]
