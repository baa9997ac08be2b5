"""
Conversation data types for Ofie Assistant.

Plain records exchanged with the conversation store, plus the
per-request ConversationContext view built over them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class SenderRole(Enum):
    """Who authored a turn."""
    USER = "user"
    ASSISTANT = "assistant"


class ActivityKind(Enum):
    """User actions tracked outside the conversation."""
    VIEWING = "viewing"
    APPLICATION = "application"
    FAVORITE = "favorite"
    REVIEW = "review"


@dataclass
class SubjectEntity:
    """Summary of the listing a conversation is about."""
    id: str
    title: str = ""
    price: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    location: Optional[str] = None
    property_type: Optional[str] = None
    description: Optional[str] = None
    amenities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "location": self.location,
            "property_type": self.property_type,
            "description": self.description,
            "amenities": list(self.amenities),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubjectEntity":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            price=data.get("price"),
            bedrooms=data.get("bedrooms"),
            bathrooms=data.get("bathrooms"),
            location=data.get("location"),
            property_type=data.get("property_type"),
            description=data.get("description"),
            amenities=list(data.get("amenities") or []),
        )


@dataclass
class UserRecord:
    """User profile as read from the user collaborator."""
    id: str
    name: str
    role: str = "tenant"  # tenant | landlord | bot
    email: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    preferences: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConversationRecord:
    """A conversation between a tenant and a landlord (or the assistant)."""
    id: str
    tenant_id: str
    landlord_id: str
    subject: Optional[SubjectEntity] = None
    status: str = "active"
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_message_at: Optional[datetime] = None

    @property
    def participant_ids(self) -> List[str]:
        return [self.tenant_id, self.landlord_id]

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def other_participant(self, user_id: str) -> str:
        return self.landlord_id if user_id == self.tenant_id else self.tenant_id

    @property
    def channel(self) -> str:
        """Name of the real-time channel for this conversation."""
        return f"conversation_{self.id}"


@dataclass
class MessageRecord:
    """A persisted message."""
    id: str
    conversation_id: str
    sender_id: str
    content: str
    message_type: str = "text"
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Turn:
    """One entry of the bounded history handed to the classifier and generator."""
    role: SenderRole
    text: str
    timestamp: datetime
    sender_name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActivityCounts:
    """Rolling activity counters for a user."""
    messages_sent: int = 0
    properties_viewed: int = 0
    applications_submitted: int = 0
    favorites_added: int = 0

    @property
    def total(self) -> int:
        return (
            self.messages_sent + self.properties_viewed
            + self.applications_submitted + self.favorites_added
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "messages_sent": self.messages_sent,
            "properties_viewed": self.properties_viewed,
            "applications_submitted": self.applications_submitted,
            "favorites_added": self.favorites_added,
        }


@dataclass
class UserProfile:
    """Profile summary used for prompting and fallback wording."""
    user_id: str
    name: str
    role: str
    account_age: timedelta
    activity: ActivityCounts = field(default_factory=ActivityCounts)
    preferences: Dict[str, Any] = field(default_factory=dict)

    @property
    def account_age_days(self) -> int:
        return max(0, self.account_age.days)

    @property
    def is_new_user(self) -> bool:
        return self.account_age_days < 7


@dataclass
class ConversationContext:
    """
    Ephemeral view assembled per request.

    Never persisted. Turns are ordered oldest to newest.
    """
    conversation_id: str
    profile: UserProfile
    turns: List[Turn] = field(default_factory=list)
    subject: Optional[SubjectEntity] = None
    conversation_metadata: Dict[str, Any] = field(default_factory=dict)
    built_at: datetime = field(default_factory=utcnow)

    @property
    def is_first_contact(self) -> bool:
        return not self.turns

    @property
    def last_intent(self) -> Optional[str]:
        """Intent of the most recent assistant turn, if any."""
        for turn in reversed(self.turns):
            if turn.role == SenderRole.ASSISTANT and turn.metadata.get("intent"):
                return turn.metadata["intent"]
        return self.conversation_metadata.get("last_bot_intent")

    def user_turns(self) -> List[Turn]:
        return [t for t in self.turns if t.role == SenderRole.USER]
