"""
Delivery Adapter for Ofie Assistant.

Pure transformations between internal types and the two external
contracts: the persisted message record and the real-time event.
"""

from typing import Any, Dict, List, Optional, Protocol

from conversation.engagement import HandoffSignal
from conversation.models import ConversationRecord, MessageRecord, UserRecord, utcnow
from llm.generator import GeneratedReply

from .events import Event, EventType


class Broadcaster(Protocol):
    """Anything that can push an event onto a conversation channel."""

    async def broadcast(self, conversation_id: str, event: Event) -> None:
        ...


class DeliveryAdapter:
    """Builds message records and events; holds no business logic."""

    ERROR_TYPE = "processing_error"

    def __init__(self, bot_user_id: str, bot_name: str):
        self.bot_user_id = bot_user_id
        self.bot_name = bot_name

    def serialize_message(
        self,
        message: MessageRecord,
        sender: Optional[UserRecord] = None,
    ) -> Dict[str, Any]:
        """Externally visible fields of a persisted message."""
        is_bot = message.sender_id == self.bot_user_id
        if is_bot:
            sender_name, sender_role = self.bot_name, "bot"
        elif sender is not None:
            sender_name, sender_role = sender.name, sender.role
        else:
            sender_name, sender_role = "", "user"

        return {
            "id": message.id,
            "conversation_id": message.conversation_id,
            "content": message.content,
            "sender_id": message.sender_id,
            "sender_name": sender_name,
            "sender_role": sender_role,
            "is_bot": is_bot,
            "message_type": message.message_type,
            "created_at": message.created_at.isoformat(),
            "metadata": message.metadata,
        }

    def to_message_record(self, reply: GeneratedReply) -> Dict[str, Any]:
        """Keyword arguments for ConversationStore.append_message."""
        metadata = dict(reply.metadata)
        metadata["source"] = reply.source.value
        metadata["cached"] = reply.cached
        return {
            "sender_id": self.bot_user_id,
            "content": reply.text,
            "message_type": "text",
            "metadata": metadata,
        }

    def to_payload(
        self,
        reply: GeneratedReply,
        conversation: ConversationRecord,
        message: MessageRecord,
        quick_actions: Optional[List[str]] = None,
        handoff: Optional[HandoffSignal] = None,
    ) -> Event:
        """
        Build the ``bot_response`` event for a persisted reply.

        Args:
            reply: The generated reply
            conversation: Conversation the reply belongs to
            message: The stored message created from the reply
            quick_actions: Suggested follow-up actions for the UI
            handoff: Handoff signal computed after the reply was stored

        Returns:
            Event for the conversation channel
        """
        data: Dict[str, Any] = {
            "message": self.serialize_message(message),
            "quick_actions": list(quick_actions or []),
            "source": reply.source.value,
            "cached": reply.cached,
        }
        if handoff is not None:
            data["requires_human_handoff"] = handoff.should_handoff
            data["handoff_reasons"] = sorted(r.value for r in handoff.reasons)
        return Event(type=EventType.BOT_RESPONSE, conversation_id=conversation.id, data=data)

    def typing_indicator(
        self,
        conversation: ConversationRecord,
        is_typing: bool,
        user: Optional[UserRecord] = None,
    ) -> Event:
        """Typing state for the assistant, or for ``user`` when given."""
        return Event(
            type=EventType.TYPING_INDICATOR,
            conversation_id=conversation.id,
            data={
                "user_id": user.id if user else self.bot_user_id,
                "user_name": user.name if user else self.bot_name,
                "action": "start" if is_typing else "stop",
                "is_typing": is_typing,
            },
        )

    def error_event(self, conversation_id: str, message: MessageRecord) -> Event:
        return Event(
            type=EventType.BOT_ERROR,
            conversation_id=conversation_id,
            data={
                "message": self.serialize_message(message),
                "error_type": self.ERROR_TYPE,
            },
        )

    def followup_event(self, conversation: ConversationRecord, message: MessageRecord, kind: str) -> Event:
        return Event(
            type=EventType.FOLLOWUP_MESSAGE,
            conversation_id=conversation.id,
            data={
                "message": self.serialize_message(message),
                "followup_kind": kind,
            },
        )

    def new_message_event(
        self,
        conversation: ConversationRecord,
        message: MessageRecord,
        sender: Optional[UserRecord] = None,
    ) -> Event:
        return Event(
            type=EventType.NEW_MESSAGE,
            conversation_id=conversation.id,
            data={"message": self.serialize_message(message, sender)},
        )

    def handoff_event(self, conversation: ConversationRecord, signal: HandoffSignal) -> Event:
        return Event(
            type=EventType.HANDOFF_STARTED,
            conversation_id=conversation.id,
            data={**signal.to_dict(), "initiated_at": utcnow().isoformat()},
        )
