import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classroom.core.config import settings
from classroom.core.exceptions import CommentTooLongError, ValidationError
from classroom.core.locks import SessionLocks, session_locks
from classroom.models.base import Comment, Participant, Reaction
from classroom.models.enums import EventType, ReactionType
from classroom.realtime.events import EventBus, event_bus
from classroom.schemas.reaction import CommentResponse, ReactionResponse
from classroom.services.participant_coordinator import ParticipantCoordinator
from classroom.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class ReactionAggregator:
    """Likes, views and comments on a participant's topic."""

    def __init__(
        self,
        db: AsyncSession,
        events: Optional[EventBus] = None,
        locks: Optional[SessionLocks] = None,
    ):
        self.db = db
        self.events = events if events is not None else event_bus
        self.locks = locks if locks is not None else session_locks
        self.registry = SessionRegistry(db, events=self.events, locks=self.locks)
        self.participants = ParticipantCoordinator(db, registry=self.registry, events=self.events, locks=self.locks)

    async def like(self, participant_id: UUID, reactor_name: str) -> Reaction:
        """Record a like. A reactor likes a topic at most once; repeats return the first like."""
        reactor_name = _clean(reactor_name, "Reactor name is required")
        participant = await self.participants.get(participant_id)

        async with self.locks.hold(participant.session_id):
            await self.registry.ensure_active(participant.session_id)

            result = await self.db.execute(
                select(Reaction)
                .where(Reaction.participant_id == participant.id)
                .where(Reaction.reactor_name == reactor_name)
                .where(Reaction.reaction_type == ReactionType.LIKE)
                .order_by(Reaction.created_at)
                .limit(1)
            )
            existing = result.scalar_one_or_none()
            if existing:
                return existing

            reaction = await self._append(participant, reactor_name, ReactionType.LIKE)

        await self._publish_reaction(participant, reaction=reaction)
        return reaction

    async def record_view(self, participant_id: UUID, viewer_name: str) -> Reaction:
        viewer_name = _clean(viewer_name, "Viewer name is required")
        participant = await self.participants.get(participant_id)

        async with self.locks.hold(participant.session_id):
            await self.registry.ensure_active(participant.session_id)
            reaction = await self._append(participant, viewer_name, ReactionType.VIEW)

        await self._publish_reaction(participant, reaction=reaction)
        return reaction

    async def _append(self, participant: Participant, reactor_name: str, reaction_type: ReactionType) -> Reaction:
        reaction = Reaction(
            participant_id=participant.id,
            reactor_name=reactor_name,
            reaction_type=reaction_type,
            created_at=datetime.utcnow(),
        )
        self.db.add(reaction)
        await self.db.commit()
        return reaction

    async def get_stats(self, participant_id: UUID) -> dict[str, int]:
        await self.participants.get(participant_id)
        result = await self.db.execute(
            select(Reaction.reaction_type, func.count(Reaction.id))
            .where(Reaction.participant_id == participant_id)
            .group_by(Reaction.reaction_type)
        )
        counts = dict(result.all())
        return {
            "likes": counts.get(ReactionType.LIKE, 0),
            "views": counts.get(ReactionType.VIEW, 0),
        }

    async def comment(self, participant_id: UUID, commenter_name: str, content: str) -> Comment:
        commenter_name = _clean(commenter_name, "Commenter name is required")
        content = _clean(content, "Comment content is required")
        if len(content) > settings.COMMENT_MAX_LENGTH:
            raise CommentTooLongError(
                f"Comments must be at most {settings.COMMENT_MAX_LENGTH} characters",
                details={"length": len(content)},
            )
        participant = await self.participants.get(participant_id)

        async with self.locks.hold(participant.session_id):
            await self.registry.ensure_active(participant.session_id)
            comment = Comment(
                participant_id=participant.id,
                commenter_name=commenter_name,
                content=content,
                created_at=datetime.utcnow(),
            )
            self.db.add(comment)
            await self.db.commit()

        await self._publish_reaction(participant, comment=comment)
        return comment

    async def list_comments(self, participant_id: UUID) -> list[Comment]:
        await self.participants.get(participant_id)
        result = await self.db.execute(
            select(Comment)
            .where(Comment.participant_id == participant_id)
            .order_by(Comment.created_at, Comment.id)
        )
        return list(result.scalars().all())

    async def count_comments(self, participant_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Comment.id)).where(Comment.participant_id == participant_id)
        )
        return result.scalar_one()

    async def _publish_reaction(
        self,
        participant: Participant,
        reaction: Optional[Reaction] = None,
        comment: Optional[Comment] = None,
    ) -> None:
        stats = await self.get_stats(participant.id)
        payload = {
            "participant_id": str(participant.id),
            "likes": stats["likes"],
            "views": stats["views"],
            "comment_count": await self.count_comments(participant.id),
        }
        if reaction is not None:
            payload["reaction"] = ReactionResponse.model_validate(reaction).model_dump(mode="json")
        if comment is not None:
            payload["comment"] = CommentResponse.model_validate(comment).model_dump(mode="json")
        self.events.publish(EventType.REACTION, participant.session_id, payload)


def _clean(value: Optional[str], message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(message)
    return value
