"""
Response Pipeline for Ofie Assistant.

Background job that answers one inbound user message:
context -> classify -> learn preferences -> generate -> deliver, then
handoff and follow-up bookkeeping. Any failure becomes a single
friendly error message.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from conversation.context_builder import ContextAggregator
from conversation.engagement import EngagementAnalyzer, HandoffSignal
from conversation.models import ConversationRecord, MessageRecord, utcnow
from conversation.store import ConversationStore
from delivery.adapter import Broadcaster, DeliveryAdapter
from llm.generator import ResponseGenerator
from monitoring.metrics import record_handoff, record_intent, record_pipeline_error
from nlp.entity_extractor import jsonable_entities
from nlp.intent_classifier import IntentClassifier

from .followup import FollowupKind, FollowupScheduler

logger = logging.getLogger(__name__)

RESPONSE_TASK = "generate_response"


class PipelineError(Exception):
    """Unrecoverable failure at a named pipeline stage."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage


QUICK_ACTIONS: Dict[str, List[str]] = {
    "property_search": ["Refine search", "Save search", "Schedule viewing"],
    "property_details": ["Schedule viewing", "Contact landlord", "Save to favorites"],
    "property_comparison": ["View favorites", "Compare properties"],
    "viewing_request": ["Schedule viewing", "My viewings", "Contact landlord"],
    "application_guidance": ["Start application", "Upload documents", "Check requirements"],
    "lease_consultation": ["View lease", "Contact landlord"],
    "maintenance_request": ["Submit request", "Emergency contact", "View history"],
    "payment_help": ["Make payment", "Set up auto-pay", "Payment history"],
    "legal_guidance": ["Contact support"],
    "contact_support": ["Contact support", "Email support"],
}
DEFAULT_QUICK_ACTIONS = ["Browse properties", "My dashboard", "Contact support"]


def quick_actions_for(intent: str) -> List[str]:
    return list(QUICK_ACTIONS.get(intent, DEFAULT_QUICK_ACTIONS))


SEARCH_HISTORY_LIMIT = 10
LOCATION_LIMIT = 5


def _listed(value: Any) -> List[Any]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def learned_preferences(
    intent: str,
    entities: Dict[str, Any],
    current: Dict[str, Any],
    query: str,
    now: datetime,
) -> Dict[str, Any]:
    """
    Preference updates implied by one classified message.

    Scalar criteria (budget, bedrooms, property type) replace the stored
    value. Amenities accumulate, locations keep the most recent few, and
    property searches are appended to a bounded search history.

    Args:
        intent: Intent label of the message
        entities: Extracted entities (native values)
        current: The user's stored preferences
        query: Message text
        now: Time of the message

    Returns:
        Keys to merge into the stored preferences (empty when nothing was learned)
    """
    found = jsonable_entities(entities)
    updates: Dict[str, Any] = {}

    budget = found.get("budget_max", found.get("budget"))
    if budget is not None:
        updates["max_budget"] = budget
    if "budget_min" in found:
        updates["min_budget"] = found["budget_min"]
    if "bedroom_count" in found:
        updates["bedrooms"] = found["bedroom_count"]
    if "property_type" in found:
        updates["property_type"] = found["property_type"]
    if found.get("amenities"):
        updates["amenities"] = sorted(set(_listed(current.get("amenities"))) | set(found["amenities"]))
    if found.get("location"):
        locations = [loc for loc in _listed(current.get("locations")) if loc != found["location"]]
        updates["locations"] = (locations + [found["location"]])[-LOCATION_LIMIT:]

    if intent == "property_search" and updates:
        history = _listed(current.get("search_history"))
        history.append({"query": query, "criteria": found, "searched_at": now.isoformat()})
        updates["search_history"] = history[-SEARCH_HISTORY_LIMIT:]
    return updates


def typing_delay_seconds(text: str, cap_seconds: float = 3.0) -> float:
    """
    Simulated typing time for a reply.

    Words at 150 wpm, clamped to [1, 5] seconds, then capped.
    """
    words = len(text.split())
    ms = words / 150 * 60_000
    ms = min(max(ms, 1000), 5000)
    return max(0.0, min(ms / 1000, cap_seconds))


class ResponsePipeline:
    """
    Answers user messages in conversations with the assistant.

    ``run`` holds a per-conversation lock, so queue workers answer the
    messages of one conversation one at a time. ``handle`` assumes its
    caller already serializes per conversation.
    """

    ERROR_MESSAGE = (
        "I'm having a bit of trouble processing that request right now. "
        "Could you try rephrasing your question, or would you like me to connect you with a human agent?"
    )

    def __init__(
        self,
        store: ConversationStore,
        aggregator: ContextAggregator,
        classifier: IntentClassifier,
        generator: ResponseGenerator,
        analyzer: EngagementAnalyzer,
        scheduler: FollowupScheduler,
        adapter: DeliveryAdapter,
        broadcaster: Broadcaster,
        bot_user_id: str,
        handoff_manager: Optional[Any] = None,
        typing_delay_cap: float = 3.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.aggregator = aggregator
        self.classifier = classifier
        self.generator = generator
        self.analyzer = analyzer
        self.scheduler = scheduler
        self.adapter = adapter
        self.broadcaster = broadcaster
        self.bot_user_id = bot_user_id
        self.handoff_manager = handoff_manager
        self.typing_delay_cap = typing_delay_cap
        self._sleep = sleep
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def run(self, payload: Dict[str, Any]):
        """Queue handler entry point; one reply per conversation at a time."""
        conversation_id = payload["conversation_id"]
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with lock:
                await self.handle(conversation_id, payload["message_id"])
        finally:
            self._lock_users[conversation_id] -= 1
            if not self._lock_users[conversation_id]:
                del self._lock_users[conversation_id]
                del self._locks[conversation_id]

    def in_flight(self) -> List[str]:
        """Conversations with a reply running or waiting."""
        return sorted(self._lock_users)

    async def handle(self, conversation_id: str, message_id: str) -> Optional[MessageRecord]:
        """
        Produce and deliver the assistant's reply to one message.

        Args:
            conversation_id: Conversation the message belongs to
            message_id: The user message to answer

        Returns:
            The persisted reply, or None when nothing was answered
        """
        stage = "load"
        conversation: Optional[ConversationRecord] = None
        typing = False
        try:
            conversation = await self.store.get_conversation(conversation_id)
            if conversation is None:
                raise PipelineError(stage, f"conversation {conversation_id} not found")
            if not conversation.has_participant(self.bot_user_id):
                logger.debug(f"Conversation {conversation_id} is not with the assistant, skipping")
                return None

            message = await self.store.get_message(message_id)
            if message is None or message.conversation_id != conversation.id:
                raise PipelineError(stage, f"message {message_id} not found in {conversation_id}")
            if message.sender_id == self.bot_user_id:
                return None

            user = await self.store.get_user(message.sender_id)
            if user is None:
                raise PipelineError(stage, f"user {message.sender_id} not found")

            await self.broadcaster.broadcast(conversation.id, self.adapter.typing_indicator(conversation, True))
            typing = True

            stage = "context"
            context = await self.aggregator.build(user, conversation, exclude_message_id=message.id)

            stage = "classify"
            intent = self.classifier.classify(message.content, context)
            record_intent(intent.label)

            stage = "preferences"
            learned = learned_preferences(
                intent.label, intent.entities, user.preferences or {}, message.content, message.created_at
            )
            if learned:
                await self.store.update_user_preferences(user.id, learned)
                logger.debug(f"Learned preferences for {user.id}: {sorted(learned)}")

            stage = "generate"
            reply = await self.generator.generate(user, message.content, conversation, context, intent)

            stage = "deliver"
            await self._sleep(typing_delay_seconds(reply.text, self.typing_delay_cap))
            actions = quick_actions_for(intent.label)
            record = self.adapter.to_message_record(reply)
            record["metadata"]["quick_actions"] = actions
            bot_message = await self.store.append_message(conversation.id, **record)

            await self.broadcaster.broadcast(conversation.id, self.adapter.typing_indicator(conversation, False))
            typing = False

            stage = "handoff"
            signal = await self.analyzer.handoff_signal(conversation)
            await self.broadcaster.broadcast(
                conversation.id,
                self.adapter.to_payload(reply, conversation, bot_message, actions, signal),
            )

            stage = "followup"
            if signal.should_handoff:
                await self._start_handoff(conversation, signal)
            else:
                self.scheduler.maybe_schedule(conversation, intent.label, intent.confidence)

            stage = "metadata"
            current = await self.store.get_conversation(conversation.id) or conversation
            count = int(current.metadata.get("bot_interaction_count", 0))
            await self.store.update_conversation_metadata(conversation.id, {
                "last_bot_intent": intent.label,
                "last_bot_confidence": intent.confidence,
                "bot_interaction_count": count + 1,
                "last_bot_response_at": utcnow().isoformat(),
            })

            logger.info(
                f"Replied in {conversation.id}: intent={intent.label} "
                f"source={reply.source.value} handoff={signal.should_handoff}"
            )
            return bot_message

        except Exception as e:
            record_pipeline_error(stage)
            logger.error(
                f"Response pipeline failed for conversation {conversation_id} "
                f"(message {message_id}, stage {stage}): {e}",
                exc_info=True,
            )
            if conversation is not None:
                await self._report_error(conversation, stage, typing)
            return None

    async def _start_handoff(self, conversation: ConversationRecord, signal: HandoffSignal):
        record_handoff(r.value for r in signal.reasons)
        if self.handoff_manager is not None:
            if self.handoff_manager.is_in_handoff(conversation.id):
                return
            self.handoff_manager.initiate_handoff(conversation.id, signal)
        await self.broadcaster.broadcast(conversation.id, self.adapter.handoff_event(conversation, signal))
        self.scheduler.schedule(conversation.id, FollowupKind.HUMAN_HANDOFF_FOLLOWUP)
        logger.warning(
            f"Human handoff requested for {conversation.id}: "
            f"{sorted(r.value for r in signal.reasons)} (score {signal.score})"
        )

    async def _report_error(self, conversation: ConversationRecord, stage: str, typing: bool):
        """Tell the user something went wrong; failures here are only logged."""
        try:
            if typing:
                await self.broadcaster.broadcast(
                    conversation.id, self.adapter.typing_indicator(conversation, False)
                )
            error_message = await self.store.append_message(
                conversation.id,
                sender_id=self.bot_user_id,
                content=self.ERROR_MESSAGE,
                message_type="text",
                metadata={
                    "is_error_message": True,
                    "error_stage": stage,
                    "error_timestamp": utcnow().isoformat(),
                },
            )
            await self.broadcaster.broadcast(
                conversation.id, self.adapter.error_event(conversation.id, error_message)
            )
        except Exception as e:
            logger.error(f"Could not deliver error message to {conversation.id}: {e}", exc_info=True)
