"""
Repository classes for Ofie Assistant data access layer.

Each repository encapsulates the queries for a specific model.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Conversation, Message, User, UserActivity

logger = logging.getLogger(__name__)


class ConversationRepository:
    """Data access for conversations and messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, conversation_id: str, **kwargs) -> Conversation:
        conv = Conversation(id=conversation_id, **kwargs)
        self.session.add(conv)
        await self.session.flush()
        return conv

    async def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        result = await self.session.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def add_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        message_type: str = "text",
        metadata_json: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> Message:
        msg = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            metadata_json=metadata_json or {},
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.session.add(msg)
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(last_message_at=msg.created_at)
        )
        await self.session.flush()
        return msg

    async def get_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> List[Message]:
        """Messages oldest to newest; with ``limit``, the most recent ones."""
        stmt = select(Message).where(Message.conversation_id == conversation_id)
        if since is not None:
            stmt = stmt.where(Message.created_at >= since)
        if limit is not None:
            stmt = stmt.order_by(Message.created_at.desc()).limit(limit)
            result = await self.session.execute(stmt)
            return list(reversed(result.scalars().all()))
        result = await self.session.execute(stmt.order_by(Message.created_at))
        return list(result.scalars().all())

    async def get_message(self, message_id: str) -> Optional[Message]:
        result = await self.session.execute(select(Message).where(Message.id == message_id))
        return result.scalar_one_or_none()

    async def update_metadata(self, conversation_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        conv = await self.get_by_id(conversation_id)
        if not conv:
            return None
        merged = dict(conv.metadata_json or {})
        merged.update(updates)
        conv.metadata_json = merged
        await self.session.flush()
        return merged

    async def count_messages_by_sender(self, sender_id: str, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(Message.id)).where(
                Message.sender_id == sender_id,
                Message.created_at >= since,
            )
        )
        return result.scalar() or 0


class UserRepository:
    """Data access for users."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> User:
        user = User(**kwargs)
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def update_preferences(self, user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        user = await self.get_by_id(user_id)
        if not user:
            return None
        merged = dict(user.preferences_json or {})
        merged.update(updates)
        user.preferences_json = merged
        await self.session.flush()
        return merged


class ActivityRepository:
    """Data access for tracked user activity."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, user_id: str, kind: str, occurred_at: Optional[datetime] = None) -> UserActivity:
        activity = UserActivity(
            user_id=user_id,
            kind=kind,
            occurred_at=occurred_at or datetime.now(timezone.utc),
        )
        self.session.add(activity)
        await self.session.flush()
        return activity

    async def count(self, user_id: str, kinds: Iterable[str], since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(UserActivity.id)).where(
                UserActivity.user_id == user_id,
                UserActivity.kind.in_(list(kinds)),
                UserActivity.occurred_at >= since,
            )
        )
        return result.scalar() or 0
