"""
Real-time event contract for Ofie Assistant.

Every event sent on a conversation channel has the shape
``{"type": <event type>, "data": {...}}``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from conversation.models import utcnow


class EventType(Enum):
    NEW_MESSAGE = "new_message"
    BOT_RESPONSE = "bot_response"
    TYPING_INDICATOR = "typing_indicator"
    BOT_ERROR = "bot_error"
    FOLLOWUP_MESSAGE = "followup_message"
    HANDOFF_STARTED = "handoff_started"


@dataclass
class Event:
    """An event bound for one conversation channel."""
    type: EventType
    conversation_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def channel(self) -> str:
        return f"conversation_{self.conversation_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "data": {**self.data, "timestamp": self.timestamp.isoformat()},
        }
