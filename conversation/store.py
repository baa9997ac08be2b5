"""
ConversationStore protocol for Ofie Assistant.

Abstracts conversation, message and user-activity storage so the
assistant pipeline can work with either in-memory dicts or a
database backend.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .models import (
    ActivityKind,
    ConversationRecord,
    MessageRecord,
    UserRecord,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class ConversationNotFound(LookupError):
    """Raised when a conversation id is unknown to the store."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class UserNotFound(LookupError):
    """Raised when a user id is unknown to the store."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


@runtime_checkable
class ConversationStore(Protocol):
    """Protocol for conversation persistence."""

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        ...

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    async def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> List[MessageRecord]:
        """Messages oldest to newest; with ``limit``, the most recent ones."""
        ...

    async def get_message(self, message_id: str) -> Optional[MessageRecord]:
        ...

    async def append_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        message_type: str = "text",
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        ...

    async def update_conversation_metadata(
        self, conversation_id: str, updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge ``updates`` into the conversation metadata (last writer wins)."""
        ...

    async def update_user_preferences(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``updates`` into the user's stored preferences (last writer wins)."""
        ...

    async def count_messages_sent(self, user_id: str, since: datetime) -> int:
        ...

    async def count_activity(
        self, user_id: str, kinds: Iterable[ActivityKind], since: datetime
    ) -> int:
        ...

    async def record_activity(
        self, user_id: str, kind: ActivityKind, occurred_at: Optional[datetime] = None
    ) -> None:
        ...


class InMemoryConversationStore:
    """
    Process-local store.

    Used when no DATABASE_URL is configured and throughout the tests.
    """

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._conversations: Dict[str, ConversationRecord] = {}
        self._messages: Dict[str, List[MessageRecord]] = {}
        self._message_index: Dict[str, MessageRecord] = {}
        self._activities: List[tuple] = []  # (user_id, kind, occurred_at)

    # ── Seeding ───────────────────────────────────────────────

    async def add_user(self, user: UserRecord) -> UserRecord:
        self._users[user.id] = user
        return user

    async def add_conversation(self, conversation: ConversationRecord) -> ConversationRecord:
        self._conversations[conversation.id] = conversation
        self._messages.setdefault(conversation.id, [])
        return conversation

    # ── Reads ─────────────────────────────────────────────────

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationRecord]:
        conv = self._conversations.get(conversation_id)
        return copy.deepcopy(conv) if conv else None

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    async def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> List[MessageRecord]:
        messages = sorted(
            self._messages.get(conversation_id, []), key=lambda m: m.created_at
        )
        if since is not None:
            messages = [m for m in messages if m.created_at >= since]
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return list(messages)

    async def get_message(self, message_id: str) -> Optional[MessageRecord]:
        return self._message_index.get(message_id)

    async def count_messages_sent(self, user_id: str, since: datetime) -> int:
        return sum(
            1
            for messages in self._messages.values()
            for m in messages
            if m.sender_id == user_id and m.created_at >= since
        )

    async def count_activity(
        self, user_id: str, kinds: Iterable[ActivityKind], since: datetime
    ) -> int:
        wanted = set(kinds)
        return sum(
            1
            for uid, kind, occurred_at in self._activities
            if uid == user_id and kind in wanted and occurred_at >= since
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
        conv = self._conversations.get(conversation_id)
        if conv is None:
            raise ConversationNotFound(conversation_id)

        message = MessageRecord(
            id=new_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            metadata=dict(metadata or {}),
            created_at=created_at or utcnow(),
        )
        self._messages[conversation_id].append(message)
        self._message_index[message.id] = message
        if conv.last_message_at is None or message.created_at > conv.last_message_at:
            conv.last_message_at = message.created_at
        return message

    async def update_conversation_metadata(
        self, conversation_id: str, updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        conv = self._conversations.get(conversation_id)
        if conv is None:
            raise ConversationNotFound(conversation_id)
        merged = dict(conv.metadata)
        merged.update(updates)
        conv.metadata = merged
        return dict(merged)

    async def update_user_preferences(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        merged = dict(user.preferences or {})
        merged.update(updates)
        user.preferences = merged
        return dict(merged)

    async def record_activity(
        self, user_id: str, kind: ActivityKind, occurred_at: Optional[datetime] = None
    ) -> None:
        self._activities.append((user_id, kind, occurred_at or utcnow()))
        logger.debug(f"Activity recorded: {user_id} {kind.value}")
