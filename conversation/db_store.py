"""
Database-backed ConversationStore for Ofie Assistant.

Implements the ConversationStore protocol using the repository layer.
One session per operation, so background jobs can share the store.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import Conversation, Message, User
from database.repositories import ActivityRepository, ConversationRepository, UserRepository

from .models import (
    ActivityKind,
    ConversationRecord,
    MessageRecord,
    SubjectEntity,
    UserRecord,
)
from .store import ConversationNotFound, UserNotFound

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_conversation(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        landlord_id=row.landlord_id,
        subject=SubjectEntity.from_dict(row.subject_json) if row.subject_json else None,
        status=row.status or "active",
        metadata=dict(row.metadata_json or {}),
        created_at=_as_utc(row.created_at),
        last_message_at=_as_utc(row.last_message_at),
    )


def _to_message(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_id=row.sender_id,
        content=row.content,
        message_type=row.message_type or "text",
        metadata=dict(row.metadata_json or {}),
        created_at=_as_utc(row.created_at),
    )


def _to_user(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        name=row.name,
        role=row.role or "tenant",
        email=row.email,
        created_at=_as_utc(row.created_at),
        preferences=dict(row.preferences_json or {}),
    )


class DbConversationStore:
    """Persistent conversation store backed by SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ── Seeding ───────────────────────────────────────────────

    async def add_user(self, user: UserRecord) -> UserRecord:
        async with self._session_factory() as session:
            await UserRepository(session).create(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                preferences_json=user.preferences,
                created_at=user.created_at,
            )
            await session.commit()
        return user

    async def add_conversation(self, conversation: ConversationRecord) -> ConversationRecord:
        async with self._session_factory() as session:
            await ConversationRepository(session).create(
                conversation_id=conversation.id,
                tenant_id=conversation.tenant_id,
                landlord_id=conversation.landlord_id,
                subject_json=conversation.subject.to_dict() if conversation.subject else None,
                status=conversation.status,
                metadata_json=conversation.metadata,
                created_at=conversation.created_at,
            )
            await session.commit()
        return conversation

    # ── Reads ─────────────────────────────────────────────────

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        async with self._session_factory() as session:
            row = await ConversationRepository(session).get_by_id(conversation_id)
            return _to_conversation(row) if row else None

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self._session_factory() as session:
            row = await UserRepository(session).get_by_id(user_id)
            return _to_user(row) if row else None

    async def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> List[MessageRecord]:
        async with self._session_factory() as session:
            rows = await ConversationRepository(session).get_messages(
                conversation_id, limit=limit, since=since
            )
            return [_to_message(r) for r in rows]

    async def get_message(self, message_id: str) -> Optional[MessageRecord]:
        async with self._session_factory() as session:
            row = await ConversationRepository(session).get_message(message_id)
            return _to_message(row) if row else None

    async def count_messages_sent(self, user_id: str, since: datetime) -> int:
        async with self._session_factory() as session:
            return await ConversationRepository(session).count_messages_by_sender(user_id, since)

    async def count_activity(
        self, user_id: str, kinds: Iterable[ActivityKind], since: datetime
    ) -> int:
        async with self._session_factory() as session:
            return await ActivityRepository(session).count(
                user_id, [k.value for k in kinds], since
            )

    # ── Writes ────────────────────────────────────────────────

    async def append_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        message_type: str = "text",
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        async with self._session_factory() as session:
            repo = ConversationRepository(session)
            if not await repo.get_by_id(conversation_id):
                raise ConversationNotFound(conversation_id)
            row = await repo.add_message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                metadata_json=metadata,
                created_at=created_at,
            )
            record = _to_message(row)
            await session.commit()
        return record

    async def update_conversation_metadata(
        self, conversation_id: str, updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        async with self._session_factory() as session:
            merged = await ConversationRepository(session).update_metadata(conversation_id, updates)
            if merged is None:
                raise ConversationNotFound(conversation_id)
            await session.commit()
        return merged

    async def update_user_preferences(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        async with self._session_factory() as session:
            merged = await UserRepository(session).update_preferences(user_id, updates)
            if merged is None:
                raise UserNotFound(user_id)
            await session.commit()
        return merged

    async def record_activity(
        self, user_id: str, kind: ActivityKind, occurred_at: Optional[datetime] = None
    ) -> None:
        async with self._session_factory() as session:
            await ActivityRepository(session).record(user_id, kind.value, occurred_at)
            await session.commit()
