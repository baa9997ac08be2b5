"""
Conversation Module for Ofie Assistant.

This module handles:
- Conversation / message / user records and the store protocol
- Per-request context aggregation
- Engagement analysis and the human handoff signal
- Conversation export
"""

from .models import (
    ActivityCounts,
    ActivityKind,
    ConversationContext,
    ConversationRecord,
    MessageRecord,
    SenderRole,
    SubjectEntity,
    Turn,
    UserProfile,
    UserRecord,
)
from .store import ConversationNotFound, ConversationStore, InMemoryConversationStore, UserNotFound
from .context_builder import ContextAggregator
from .engagement import EngagementAnalyzer, HandoffPolicy, HandoffReason, HandoffSignal
from .export import ConversationExporter

__all__ = [
    "ActivityCounts",
    "ActivityKind",
    "ConversationContext",
    "ConversationRecord",
    "MessageRecord",
    "SenderRole",
    "SubjectEntity",
    "Turn",
    "UserProfile",
    "UserRecord",
    "ConversationNotFound",
    "ConversationStore",
    "InMemoryConversationStore",
    "UserNotFound",
    "ContextAggregator",
    "EngagementAnalyzer",
    "HandoffPolicy",
    "HandoffReason",
    "HandoffSignal",
    "ConversationExporter",
]
