"""
Conversation Context Aggregator for Ofie Assistant.

Assembles the bounded history, the referenced listing and a user
profile summary into one ConversationContext per request.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from .models import (
    ActivityCounts,
    ActivityKind,
    ConversationContext,
    ConversationRecord,
    SenderRole,
    Turn,
    UserProfile,
    UserRecord,
    utcnow,
)
from .store import ConversationStore

logger = logging.getLogger(__name__)


class ContextAggregator:
    """
    Builds ConversationContext objects from the conversation store.

    First contact (no prior turns) and conversations without a listing
    are ordinary states, not errors.
    """

    ACTIVITY_WINDOW = timedelta(days=7)

    def __init__(
        self,
        store: ConversationStore,
        bot_user_id: str,
        bot_name: str = "Ofie Assistant",
        max_turns: int = 10,
    ):
        """
        Args:
            store: Conversation store
            bot_user_id: Id that authors assistant messages
            bot_name: Display name for assistant turns
            max_turns: Bound on the history handed downstream
        """
        self.store = store
        self.bot_user_id = bot_user_id
        self.bot_name = bot_name
        self.max_turns = max_turns

    async def build(
        self,
        user: UserRecord,
        conversation: ConversationRecord,
        exclude_message_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ConversationContext:
        """
        Build the context for one request.

        Args:
            user: The human participant the reply is for
            conversation: Conversation being answered
            exclude_message_id: Message to leave out of the history
                (the one currently being answered)
            now: Reference time for account age and activity windows

        Returns:
            ConversationContext with turns ordered oldest to newest
        """
        now = now or utcnow()

        fetch = self.max_turns + (1 if exclude_message_id else 0)
        messages = await self.store.list_messages(conversation.id, limit=fetch)
        if exclude_message_id:
            messages = [m for m in messages if m.id != exclude_message_id]
        messages = messages[-self.max_turns:] if self.max_turns > 0 else []

        names: Dict[str, str] = {user.id: user.name, self.bot_user_id: self.bot_name}
        turns = []
        for message in messages:
            if message.sender_id not in names:
                sender = await self.store.get_user(message.sender_id)
                names[message.sender_id] = sender.name if sender else "User"
            role = SenderRole.ASSISTANT if message.sender_id == self.bot_user_id else SenderRole.USER
            turns.append(Turn(
                role=role,
                text=message.content,
                timestamp=message.created_at,
                sender_name=names[message.sender_id],
                metadata=dict(message.metadata),
            ))

        profile = await self._build_profile(user, now)

        return ConversationContext(
            conversation_id=conversation.id,
            profile=profile,
            turns=turns,
            subject=conversation.subject,
            conversation_metadata=dict(conversation.metadata),
            built_at=now,
        )

    async def _build_profile(self, user: UserRecord, now: datetime) -> UserProfile:
        since = now - self.ACTIVITY_WINDOW
        activity = ActivityCounts(
            messages_sent=await self.store.count_messages_sent(user.id, since),
            properties_viewed=await self.store.count_activity(user.id, [ActivityKind.VIEWING], since),
            applications_submitted=await self.store.count_activity(user.id, [ActivityKind.APPLICATION], since),
            favorites_added=await self.store.count_activity(user.id, [ActivityKind.FAVORITE], since),
        )
        return UserProfile(
            user_id=user.id,
            name=user.name,
            role=user.role,
            account_age=now - user.created_at,
            activity=activity,
            preferences=dict(user.preferences),
        )
