from fastapi import APIRouter
from uuid import UUID

from classroom.api.deps import Reactions
from classroom.schemas.reaction import CommentCreate, CommentResponse

router = APIRouter()


@router.post("", response_model=CommentResponse)
async def add_comment(request: CommentCreate, reactions: Reactions):
    return await reactions.comment(request.participant_id, request.commenter_name, request.content)


@router.get("/{participant_id}", response_model=list[CommentResponse])
async def list_comments(participant_id: UUID, reactions: Reactions):
    """Comments on a topic, oldest first."""
    return await reactions.list_comments(participant_id)
