"""
Participant admission, seat claims and topic submission.

Seat and name uniqueness are checked and written while holding the owning
session's lock, so two requests for the same seat resolve to exactly one
winner. The unique constraints on ``participants`` catch writers from other
processes; their IntegrityError is translated back into the same conflicts.
"""

import logging
import random
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classroom.core.config import settings
from classroom.core.exceptions import (
    CapacityExceededError,
    ContentTooLongError,
    InvalidSeatError,
    NameAlreadySeatedError,
    NameTakenError,
    ParticipantNotFoundError,
    SeatTakenError,
    TitleTooLongError,
    ValidationError,
)
from classroom.core.locks import SessionLocks, session_locks
from classroom.core.metrics import SEAT_CLAIMS
from classroom.models.base import Comment, Participant, Reaction
from classroom.models.enums import EventType, ReactionType
from classroom.realtime.events import EventBus, event_bus
from classroom.schemas.participant import ParticipantResponse, ParticipantWithStats
from classroom.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def participant_payload(participant: Participant) -> dict:
    return ParticipantResponse.model_validate(participant).model_dump(mode="json")


class ParticipantCoordinator:
    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[SessionRegistry] = None,
        events: Optional[EventBus] = None,
        locks: Optional[SessionLocks] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.events = events if events is not None else event_bus
        self.locks = locks if locks is not None else session_locks
        self.registry = registry or SessionRegistry(db, events=self.events, locks=self.locks)
        self.rng = rng or random.SystemRandom()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, participant_id: UUID) -> Participant:
        result = await self.db.execute(
            select(Participant)
            .where(Participant.id == participant_id)
            .execution_options(populate_existing=True)
        )
        participant = result.scalar_one_or_none()
        if not participant:
            raise ParticipantNotFoundError(
                "Participant not found", details={"participant_id": str(participant_id)}
            )
        return participant

    async def _find_by_name(self, session_id: UUID, student_name: str) -> Optional[Participant]:
        result = await self.db.execute(
            select(Participant)
            .where(Participant.session_id == session_id)
            .where(Participant.student_name == student_name)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _find_by_seat(self, session_id: UUID, seat_position: int) -> Optional[Participant]:
        result = await self.db.execute(
            select(Participant)
            .where(Participant.session_id == session_id)
            .where(Participant.seat_position == seat_position)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _occupied_seats(self, session_id: UUID) -> set[int]:
        result = await self.db.execute(
            select(Participant.seat_position)
            .where(Participant.session_id == session_id)
            .where(Participant.seat_position.is_not(None))
        )
        return set(result.scalars().all())

    async def available_seats(self, session_id: UUID) -> list[int]:
        occupied = await self._occupied_seats(session_id)
        return [seat for seat in range(1, settings.MAX_SEATS + 1) if seat not in occupied]

    async def list_for_session(self, session_id: UUID) -> list[ParticipantWithStats]:
        """Participants in join order, with like/view/comment counts."""
        session_id = (await self.registry.get(session_id)).id

        result = await self.db.execute(
            select(Participant)
            .where(Participant.session_id == session_id)
            .order_by(Participant.joined_at, Participant.student_name)
            .execution_options(populate_existing=True)
        )
        participants = result.scalars().all()

        reaction_counts: dict[tuple[UUID, ReactionType], int] = {}
        result = await self.db.execute(
            select(Reaction.participant_id, Reaction.reaction_type, func.count(Reaction.id))
            .join(Participant, Participant.id == Reaction.participant_id)
            .where(Participant.session_id == session_id)
            .group_by(Reaction.participant_id, Reaction.reaction_type)
        )
        for participant_id, reaction_type, count in result.all():
            reaction_counts[(participant_id, reaction_type)] = count

        result = await self.db.execute(
            select(Comment.participant_id, func.count(Comment.id))
            .join(Participant, Participant.id == Comment.participant_id)
            .where(Participant.session_id == session_id)
            .group_by(Comment.participant_id)
        )
        comment_counts = dict(result.all())

        return [
            ParticipantWithStats(
                **ParticipantResponse.model_validate(p).model_dump(),
                like_count=reaction_counts.get((p.id, ReactionType.LIKE), 0),
                view_count=reaction_counts.get((p.id, ReactionType.VIEW), 0),
                comment_count=comment_counts.get(p.id, 0),
            )
            for p in participants
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def join(
        self,
        session_code: str,
        student_name: str,
        student_id: Optional[str] = None,
        auto_seat: bool = False,
    ) -> tuple[Participant, list[int]]:
        """Admit a student by session code.

        Without ``auto_seat`` the participant starts unseated and picks a seat
        later with ``select_seat``; with it a random free seat is assigned in
        the same critical section.
        """
        student_name = _clean_name(student_name)
        session = await self.registry.find_by_code(session_code)

        async with self.locks.hold(session.id):
            session = await self.registry.ensure_active(session.id)

            if await self._find_by_name(session.id, student_name):
                raise NameTakenError(
                    f"The name {student_name} is already in use",
                    details={"student_name": student_name},
                )

            occupied = await self._occupied_seats(session.id)
            free = [seat for seat in range(1, settings.MAX_SEATS + 1) if seat not in occupied]
            if not free:
                raise CapacityExceededError("All seats are taken", details={"max_seats": settings.MAX_SEATS})

            now = datetime.utcnow()
            participant = Participant(
                session_id=session.id,
                student_name=student_name,
                student_id=_clean_optional(student_id),
                seat_position=self.rng.choice(free) if auto_seat else None,
                joined_at=now,
                updated_at=now,
            )
            self.db.add(participant)
            await self._commit_claim(session.id, participant.seat_position, student_name)

            if participant.seat_position is not None:
                free.remove(participant.seat_position)

        logger.info(f"Participant joined: {student_name} session={session.id} seat={participant.seat_position}")
        self._publish(participant, "joined")
        return participant, free

    async def select_seat(
        self,
        session_id: UUID,
        seat_position: int,
        student_name: str,
        student_id: Optional[str] = None,
    ) -> Participant:
        if seat_position is None or not 1 <= seat_position <= settings.MAX_SEATS:
            SEAT_CLAIMS.labels(outcome="invalid").inc()
            raise InvalidSeatError(
                f"Seat position must be between 1 and {settings.MAX_SEATS}",
                details={"seat_position": seat_position},
            )
        student_name = _clean_name(student_name)

        async with self.locks.hold(session_id):
            session_id = (await self.registry.ensure_active(session_id)).id

            occupant = await self._find_by_seat(session_id, seat_position)
            participant = await self._find_by_name(session_id, student_name)

            if occupant and (participant is None or occupant.id != participant.id):
                SEAT_CLAIMS.labels(outcome="seat_taken").inc()
                logger.warning(
                    f"Seat #{seat_position} in session {session_id} already held by {occupant.student_name}"
                )
                raise SeatTakenError(seat_position, occupant.student_name)

            if participant and participant.seat_position is not None:
                if participant.seat_position == seat_position:
                    return participant
                SEAT_CLAIMS.labels(outcome="already_seated").inc()
                raise NameAlreadySeatedError(student_name, participant.seat_position)

            now = datetime.utcnow()
            if participant:
                participant.seat_position = seat_position
                participant.updated_at = now
                if student_id and not participant.student_id:
                    participant.student_id = _clean_optional(student_id)
                action = "seated"
            else:
                participant = Participant(
                    session_id=session_id,
                    student_name=student_name,
                    student_id=_clean_optional(student_id),
                    seat_position=seat_position,
                    joined_at=now,
                    updated_at=now,
                )
                self.db.add(participant)
                action = "joined"

            await self._commit_claim(session_id, seat_position, student_name)

        SEAT_CLAIMS.labels(outcome="claimed").inc()
        logger.info(f"Seat #{seat_position} claimed by {student_name} in session {session_id}")
        self._publish(participant, action)
        return participant

    async def submit_topic(
        self,
        participant_id: UUID,
        title: str,
        content: Optional[str] = None,
    ) -> Participant:
        """Store the participant's topic. Resubmitting overwrites the previous one."""
        title = (title or "").strip()
        content = (content or "").strip() or None
        if not title:
            raise ValidationError("Topic title is required")
        if len(title) > settings.TOPIC_TITLE_MAX_LENGTH:
            raise TitleTooLongError(
                f"Topic title must be at most {settings.TOPIC_TITLE_MAX_LENGTH} characters",
                details={"length": len(title)},
            )
        if content and len(content) > settings.TOPIC_CONTENT_MAX_LENGTH:
            raise ContentTooLongError(
                f"Topic content must be at most {settings.TOPIC_CONTENT_MAX_LENGTH} characters",
                details={"length": len(content)},
            )

        participant = await self.get(participant_id)

        async with self.locks.hold(participant.session_id):
            participant = await self.get(participant_id)
            await self.registry.ensure_active(participant.session_id)

            participant.topic_title = title
            participant.topic_content = content
            participant.updated_at = datetime.utcnow()
            await self.db.commit()

        logger.info(f"Topic submitted by {participant.student_name} in session {participant.session_id}")
        self._publish(participant, "topic_submitted")
        return participant

    async def _commit_claim(self, session_id: UUID, seat_position: Optional[int], student_name: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # Lost a race against a writer outside this process; report who won.
            occupant = await self._find_by_seat(session_id, seat_position) if seat_position else None
            if occupant and occupant.student_name != student_name:
                SEAT_CLAIMS.labels(outcome="seat_taken").inc()
                raise SeatTakenError(seat_position, occupant.student_name)
            existing = await self._find_by_name(session_id, student_name)
            if existing and existing.seat_position is not None and existing.seat_position != seat_position:
                raise NameAlreadySeatedError(student_name, existing.seat_position)
            raise NameTakenError(
                f"The name {student_name} is already in use",
                details={"student_name": student_name},
            )

    def _publish(self, participant: Participant, action: str) -> None:
        self.events.publish(
            EventType.PARTICIPANT,
            participant.session_id,
            {"action": action, "participant": participant_payload(participant)},
        )


def _clean_name(student_name: str) -> str:
    student_name = (student_name or "").strip()
    if not student_name:
        raise ValidationError("Student name is required")
    return student_name


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None
