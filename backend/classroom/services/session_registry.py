"""
Session registry: creation, code lookup and the active -> closed transition.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classroom.core.config import settings
from classroom.core.exceptions import (
    AlreadyClosedError,
    CodeGenerationExhaustedError,
    InvalidSessionCodeError,
    SessionClosedError,
    SessionNotFoundError,
    ValidationError,
)
from classroom.core.locks import CODE_GENERATION_KEY, SessionLocks, session_locks
from classroom.core.metrics import SESSIONS_CREATED
from classroom.core.security import generate_session_code, is_valid_session_code
from classroom.models.base import Participant, Session
from classroom.models.enums import EventType, SessionStatus
from classroom.realtime.events import EventBus, event_bus
from classroom.schemas.session import SessionResponse

logger = logging.getLogger(__name__)


def session_payload(session: Session) -> dict:
    return SessionResponse.model_validate(session).model_dump(mode="json")


class SessionRegistry:
    def __init__(
        self,
        db: AsyncSession,
        events: Optional[EventBus] = None,
        locks: Optional[SessionLocks] = None,
        code_generator: Callable[[], str] = generate_session_code,
    ):
        self.db = db
        self.events = events if events is not None else event_bus
        self.locks = locks if locks is not None else session_locks
        self.code_generator = code_generator

    async def create(
        self,
        class_name: str,
        date: str,
        period: int,
        teacher_topic_title: Optional[str] = None,
        teacher_topic_content: Optional[str] = None,
    ) -> Session:
        class_name = (class_name or "").strip()
        date = (date or "").strip()
        if not class_name or not date or not period:
            raise ValidationError("Class name, date and period are required")
        if period < 1:
            raise ValidationError("Period must be a positive number")

        async with self.locks.hold(CODE_GENERATION_KEY):
            for attempt in range(1, settings.CODE_GENERATION_ATTEMPTS + 1):
                code = self.code_generator()
                if await self._code_in_use(code):
                    logger.warning(f"Session code collision on attempt {attempt}: {code}")
                    continue

                session = Session(
                    session_code=code,
                    class_name=class_name,
                    date=date,
                    period=period,
                    teacher_topic_title=(teacher_topic_title or "").strip() or None,
                    teacher_topic_content=(teacher_topic_content or "").strip() or None,
                    status=SessionStatus.ACTIVE,
                    created_at=datetime.utcnow(),
                )
                self.db.add(session)
                try:
                    await self.db.commit()
                except IntegrityError:
                    # Another process claimed the code between check and insert.
                    await self.db.rollback()
                    logger.warning(f"Session code {code} taken concurrently, retrying")
                    continue

                SESSIONS_CREATED.inc()
                logger.info(f"Session created: {session.id} code={code} class={class_name}")
                return session

        raise CodeGenerationExhaustedError(
            f"Could not generate a unique session code after {settings.CODE_GENERATION_ATTEMPTS} attempts"
        )

    async def _code_in_use(self, code: str) -> bool:
        result = await self.db.execute(
            select(Session.id)
            .where(Session.session_code == code)
            .where(Session.status != SessionStatus.CLOSED)
        )
        return result.first() is not None

    async def get(self, session_id: UUID) -> Session:
        try:
            session_id = session_id if isinstance(session_id, UUID) else UUID(str(session_id))
        except ValueError:
            raise SessionNotFoundError("Session not found", details={"session_id": str(session_id)})

        result = await self.db.execute(
            select(Session)
            .where(Session.id == session_id)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if not session:
            raise SessionNotFoundError("Session not found", details={"session_id": str(session_id)})
        return session

    async def find_by_code(self, code: str) -> Session:
        code = (code or "").strip().upper()
        if not is_valid_session_code(code):
            raise InvalidSessionCodeError("Invalid session code format", details={"session_code": code})

        result = await self.db.execute(
            select(Session)
            .where(Session.session_code == code)
            .where(Session.status == SessionStatus.ACTIVE)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if not session:
            raise SessionNotFoundError(
                "Session not found or already closed", details={"session_code": code}
            )
        return session

    async def ensure_active(self, session_id: UUID) -> Session:
        session = await self.get(session_id)
        if not session.is_active:
            raise SessionClosedError("Session is closed", details={"session_id": str(session_id)})
        return session

    async def list_recent(self, limit: int = 20) -> list[Session]:
        result = await self.db.execute(
            select(Session).order_by(Session.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def count_participants(self, session_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Participant.id)).where(Participant.session_id == session_id)
        )
        return result.scalar_one()

    async def close(self, session_id: UUID) -> Session:
        async with self.locks.hold(session_id):
            session = await self.get(session_id)
            if not session.is_active:
                raise AlreadyClosedError(
                    "Session is already closed", details={"session_id": str(session_id)}
                )

            session.status = SessionStatus.CLOSED
            session.closed_at = datetime.utcnow()
            await self.db.commit()

        logger.info(f"Session closed: {session.id} code={session.session_code}")
        self.events.publish(
            EventType.SESSION,
            session.id,
            {"action": "closed", "session": session_payload(session)},
        )
        self.events.retire(session.id)
        self.locks.discard(session.id)
        return session
