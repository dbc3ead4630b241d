from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classroom.core.config import settings
from classroom.core.exceptions import EmptyMessageError, MessageNotFoundError, MessageTooLongError, ValidationError
from classroom.core.locks import SessionLocks, session_locks
from classroom.core.metrics import CHAT_MESSAGES
from classroom.models.base import ChatMessage
from classroom.models.enums import EventType
from classroom.realtime.events import EventBus, event_bus
from classroom.schemas.chat import ChatMessageResponse
from classroom.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def message_payload(message: ChatMessage) -> dict:
    return ChatMessageResponse.model_validate(message).model_dump(mode="json")


class ChatChannel:
    """Append-only chat log of one session.

    Messages are ordered by ``created_at`` then ``seq``. Both are assigned under
    the session lock, so arrival order at the server is the listing order.
    """

    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[SessionRegistry] = None,
        events: Optional[EventBus] = None,
        locks: Optional[SessionLocks] = None,
    ):
        self.db = db
        self.events = events if events is not None else event_bus
        self.locks = locks if locks is not None else session_locks
        self.registry = registry or SessionRegistry(db, events=self.events, locks=self.locks)

    async def send(
        self,
        session_id: UUID,
        sender_name: str,
        message: str,
        is_teacher: bool = False,
    ) -> ChatMessage:
        sender_name = (sender_name or "").strip()
        text = (message or "").strip()
        if not sender_name:
            raise ValidationError("Sender name is required")
        if not text:
            raise EmptyMessageError("Message is empty")
        if len(text) > settings.CHAT_MESSAGE_MAX_LENGTH:
            raise MessageTooLongError(
                f"Messages must be at most {settings.CHAT_MESSAGE_MAX_LENGTH} characters",
                details={"length": len(text)},
            )

        async with self.locks.hold(session_id):
            session_id = (await self.registry.ensure_active(session_id)).id

            result = await self.db.execute(
                select(ChatMessage.seq, ChatMessage.created_at)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.seq.desc())
                .limit(1)
            )
            last = result.first()

            created_at = datetime.utcnow()
            seq = 1
            if last is not None:
                seq = last.seq + 1
                if created_at <= last.created_at:
                    created_at = last.created_at + timedelta(microseconds=1)

            chat_message = ChatMessage(
                session_id=session_id,
                seq=seq,
                sender_name=sender_name,
                message=text,
                is_teacher=bool(is_teacher),
                created_at=created_at,
            )
            self.db.add(chat_message)
            await self.db.commit()

            self.events.publish(
                EventType.CHAT,
                session_id,
                {"action": "inserted", "message": message_payload(chat_message)},
            )

        CHAT_MESSAGES.labels(sender="teacher" if is_teacher else "student").inc()
        return chat_message

    async def recent(self, session_id: UUID, limit: Optional[int] = None) -> list[ChatMessage]:
        """The newest visible messages, oldest first."""
        limit = limit or settings.CHAT_PAGE_SIZE
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .where(ChatMessage.deleted_at.is_(None))
            .order_by(ChatMessage.created_at.desc(), ChatMessage.seq.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def list(
        self,
        session_id: UUID,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
        after_seq: Optional[int] = None,
    ) -> tuple[list[ChatMessage], bool]:
        """Visible messages in ascending order, plus whether more remain past this page."""
        session_id = (await self.registry.get(session_id)).id

        limit = limit or settings.CHAT_PAGE_SIZE
        limit = max(1, min(limit, settings.CHAT_MAX_PAGE_SIZE))

        query = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .where(ChatMessage.deleted_at.is_(None))
        )
        if since is not None:
            query = query.where(ChatMessage.created_at > _naive_utc(since))
        if after_seq is not None:
            query = query.where(ChatMessage.seq > after_seq)

        result = await self.db.execute(
            query.order_by(ChatMessage.created_at, ChatMessage.seq).limit(limit + 1)
        )
        messages = list(result.scalars().all())
        has_more = len(messages) > limit
        return messages[:limit], has_more

    async def latest_seq(self, session_id: UUID) -> int:
        result = await self.db.execute(
            select(func.max(ChatMessage.seq)).where(ChatMessage.session_id == session_id)
        )
        return result.scalar_one() or 0

    async def latest_hidden_at(self, session_id: UUID) -> Optional[datetime]:
        result = await self.db.execute(
            select(func.max(ChatMessage.deleted_at)).where(ChatMessage.session_id == session_id)
        )
        return result.scalar_one()

    async def list_hidden(self, session_id: UUID, since: Optional[datetime] = None) -> list[ChatMessage]:
        """Hidden messages in hide order, from ``since`` inclusive."""
        query = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .where(ChatMessage.deleted_at.is_not(None))
        )
        if since is not None:
            query = query.where(ChatMessage.deleted_at >= since)
        result = await self.db.execute(
            query.order_by(ChatMessage.deleted_at, ChatMessage.seq)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def hide(self, message_id: UUID) -> ChatMessage:
        """Soft-delete a message. Hiding twice is a no-op."""
        message = await self._get(message_id)

        async with self.locks.hold(message.session_id):
            message = await self._get(message_id)
            if message.deleted_at is not None:
                return message
            message.deleted_at = datetime.utcnow()
            await self.db.commit()

            self.events.publish(
                EventType.CHAT,
                message.session_id,
                {"action": "hidden", "message": message_payload(message)},
            )

        logger.info(f"Chat message hidden: {message.id} session={message.session_id}")
        return message

    async def _get(self, message_id: UUID) -> ChatMessage:
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.id == message_id)
            .execution_options(populate_existing=True)
        )
        message = result.scalar_one_or_none()
        if not message:
            raise MessageNotFoundError("Message not found", details={"message_id": str(message_id)})
        return message


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
