from fastapi import APIRouter
from uuid import UUID

from classroom.api.deps import Reactions
from classroom.schemas.reaction import ReactionCreate, ReactionResponse, ReactionStats

router = APIRouter()


@router.post("/like", response_model=ReactionResponse)
async def like_topic(request: ReactionCreate, reactions: Reactions):
    return await reactions.like(request.participant_id, request.reactor_name)


@router.post("/view", response_model=ReactionResponse)
async def view_topic(request: ReactionCreate, reactions: Reactions):
    return await reactions.record_view(request.participant_id, request.reactor_name)


@router.get("/{participant_id}/stats", response_model=ReactionStats)
async def get_reaction_stats(participant_id: UUID, reactions: Reactions):
    return await reactions.get_stats(participant_id)
