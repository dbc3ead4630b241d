from fastapi import APIRouter

from classroom.api.v1.endpoints import sessions, participants, reactions, comments, chat, realtime

api_router = APIRouter()

api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(participants.router, prefix="/participants", tags=["participants"])
api_router.include_router(reactions.router, prefix="/reactions", tags=["reactions"])
api_router.include_router(comments.router, prefix="/comments", tags=["comments"])
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
api_router.include_router(realtime.router, prefix="/realtime", tags=["realtime"])
