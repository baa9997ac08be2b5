"""
Follow-up scheduling and delivery for Ofie Assistant.

The scheduler decides whether an exchange deserves a delayed
re-engagement message; the worker re-checks user activity at run time
and stays silent if the user has moved on without us.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from conversation.models import (
    ActivityKind,
    ConversationRecord,
    MessageRecord,
    UserProfile,
    new_id,
    utcnow,
)
from conversation.store import ConversationStore
from delivery.adapter import Broadcaster, DeliveryAdapter
from llm.personality import Personalizer, first_name, profile_for_user
from monitoring.metrics import record_followup

from .queue import TaskQueue

logger = logging.getLogger(__name__)

FOLLOWUP_TASK = "send_followup"

TRACKED_ACTIVITY = [
    ActivityKind.VIEWING,
    ActivityKind.APPLICATION,
    ActivityKind.FAVORITE,
    ActivityKind.REVIEW,
]


class FollowupKind(Enum):
    PROPERTY_SEARCH = "property_search"
    APPLICATION_GUIDANCE = "application_guidance"
    MAINTENANCE_FOLLOWUP = "maintenance_followup"
    HUMAN_HANDOFF_FOLLOWUP = "human_handoff_followup"
    WEEKLY_CHECKIN = "weekly_checkin"
    ONBOARDING_COMPLETION = "onboarding_completion"
    GENERAL = "general"


@dataclass
class FollowupTask:
    """A scheduled re-engagement, consumed once by the worker."""
    conversation_id: str
    kind: FollowupKind
    scheduled_for: datetime
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "task_id": self.id,
            "conversation_id": self.conversation_id,
            "kind": self.kind.value,
            "scheduled_for": self.scheduled_for.isoformat(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "FollowupTask":
        return cls(
            id=payload["task_id"],
            conversation_id=payload["conversation_id"],
            kind=FollowupKind(payload["kind"]),
            scheduled_for=datetime.fromisoformat(payload["scheduled_for"]),
            created_at=datetime.fromisoformat(payload["created_at"]),
        )

    to_dict = to_payload


class FollowupScheduler:
    """
    Turns (intent, confidence) into an optional delayed task.

    Only allow-listed intents above the confidence threshold qualify.
    """

    INTENT_KINDS = {
        "property_search": FollowupKind.PROPERTY_SEARCH,
        "application_guidance": FollowupKind.APPLICATION_GUIDANCE,
        "maintenance_request": FollowupKind.MAINTENANCE_FOLLOWUP,
    }

    def __init__(
        self,
        queue: TaskQueue,
        confidence_threshold: float = 0.7,
        delays: Optional[Dict[FollowupKind, timedelta]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.queue = queue
        self.confidence_threshold = confidence_threshold
        self.delays = {
            FollowupKind.PROPERTY_SEARCH: timedelta(hours=24),
            FollowupKind.APPLICATION_GUIDANCE: timedelta(hours=72),
            FollowupKind.MAINTENANCE_FOLLOWUP: timedelta(hours=24),
            FollowupKind.HUMAN_HANDOFF_FOLLOWUP: timedelta(minutes=30),
            FollowupKind.WEEKLY_CHECKIN: timedelta(days=7),
            FollowupKind.ONBOARDING_COMPLETION: timedelta(days=7),
            FollowupKind.GENERAL: timedelta(hours=24),
        }
        if delays:
            self.delays.update(delays)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Any, queue: TaskQueue) -> "FollowupScheduler":
        return cls(
            queue=queue,
            confidence_threshold=settings.followup_confidence_threshold,
            delays={
                FollowupKind.PROPERTY_SEARCH: timedelta(hours=settings.followup_search_delay_hours),
                FollowupKind.APPLICATION_GUIDANCE: timedelta(hours=settings.followup_application_delay_hours),
                FollowupKind.MAINTENANCE_FOLLOWUP: timedelta(hours=settings.followup_maintenance_delay_hours),
                FollowupKind.HUMAN_HANDOFF_FOLLOWUP: timedelta(minutes=settings.followup_handoff_delay_minutes),
            },
        )

    def maybe_schedule(
        self,
        conversation: ConversationRecord,
        intent: str,
        confidence: float,
    ) -> Optional[FollowupTask]:
        """
        Schedule a follow-up when the intent qualifies.

        Args:
            conversation: Conversation the exchange happened in
            intent: Intent label of the user's message
            confidence: Classifier confidence

        Returns:
            The scheduled task, or None
        """
        kind = self.INTENT_KINDS.get(intent)
        if kind is None or confidence <= self.confidence_threshold:
            return None
        return self.schedule(conversation.id, kind)

    def schedule(
        self,
        conversation_id: str,
        kind: FollowupKind,
        delay: Optional[timedelta] = None,
    ) -> FollowupTask:
        """Schedule a follow-up of a given kind unconditionally."""
        now = self._clock()
        delay = self.delays[kind] if delay is None else delay
        task = FollowupTask(
            conversation_id=conversation_id,
            kind=kind,
            scheduled_for=now + delay,
            created_at=now,
        )
        self.queue.enqueue(FOLLOWUP_TASK, task.to_payload(), delay=delay, task_id=task.id)
        record_followup(kind.value, "scheduled")
        logger.info(f"Follow-up {kind.value} scheduled for {conversation_id} at {task.scheduled_for.isoformat()}")
        return task


class FollowupWorker:
    """
    Executes follow-up tasks.

    Skips (no message, no event) when the user sent a message or took a
    tracked action after the bot's last message, or when this task was
    already delivered. Errors are logged and the task is dropped.
    """

    SEARCH_LOOKBACK = timedelta(days=1)
    APPLICATION_LOOKBACK = timedelta(days=3)
    WEEK = timedelta(days=7)

    # Intent whose tone a follow-up carries
    KIND_INTENTS = {
        FollowupKind.PROPERTY_SEARCH: "property_search",
        FollowupKind.APPLICATION_GUIDANCE: "application_guidance",
        FollowupKind.MAINTENANCE_FOLLOWUP: "maintenance_request",
    }

    def __init__(
        self,
        store: ConversationStore,
        adapter: DeliveryAdapter,
        broadcaster: Broadcaster,
        bot_user_id: str,
        clock: Callable[[], datetime] = utcnow,
        personalizer: Optional[Personalizer] = None,
    ):
        self.store = store
        self.adapter = adapter
        self.broadcaster = broadcaster
        self.bot_user_id = bot_user_id
        self._clock = clock
        self.personalizer = personalizer or Personalizer(clock=clock)

    async def run(self, payload: Dict[str, Any]):
        """Queue handler entry point."""
        await self.execute(FollowupTask.from_payload(payload))

    async def execute(self, task: FollowupTask) -> Optional[MessageRecord]:
        """
        Run one follow-up task.

        Returns:
            The persisted follow-up message, or None when skipped or failed
        """
        try:
            conversation = await self.store.get_conversation(task.conversation_id)
            if conversation is None or not conversation.has_participant(self.bot_user_id):
                logger.info(f"Follow-up {task.id} dropped: conversation {task.conversation_id} unavailable")
                record_followup(task.kind.value, "skipped")
                return None

            messages = await self.store.list_messages(conversation.id)
            if self._already_delivered(task, messages):
                logger.info(f"Follow-up {task.id} already delivered, ignoring re-delivery")
                return None

            if await self.user_active_since_last_reply(conversation, task, messages):
                logger.info(
                    f"Follow-up {task.kind.value} skipped for {conversation.id}: user active since last reply"
                )
                record_followup(task.kind.value, "skipped")
                return None

            content = await self.compose(conversation, task.kind)
            message = await self.store.append_message(
                conversation.id,
                sender_id=self.bot_user_id,
                content=content,
                message_type="text",
                metadata={
                    "type": "followup_message",
                    "followup_kind": task.kind.value,
                    "task_id": task.id,
                    "generated_at": self._clock().isoformat(),
                },
            )
            await self.broadcaster.broadcast(
                conversation.id,
                self.adapter.followup_event(conversation, message, task.kind.value),
            )
            record_followup(task.kind.value, "sent")
            logger.info(f"Follow-up {task.kind.value} sent to {conversation.id}")
            return message

        except Exception as e:
            record_followup(task.kind.value, "failed")
            logger.error(
                f"Follow-up {task.id} for {task.conversation_id} failed: {e}", exc_info=True
            )
            return None

    @staticmethod
    def _already_delivered(task: FollowupTask, messages: List[MessageRecord]) -> bool:
        return any(m.metadata.get("task_id") == task.id for m in messages)

    def _reference_time(self, task: FollowupTask, messages: List[MessageRecord]) -> datetime:
        """Time of the bot's last message when the task was created."""
        bot_times = [
            m.created_at for m in messages
            if m.sender_id == self.bot_user_id and m.created_at <= task.created_at
        ]
        return max(bot_times) if bot_times else task.created_at

    async def user_active_since_last_reply(
        self,
        conversation: ConversationRecord,
        task: FollowupTask,
        messages: List[MessageRecord],
    ) -> bool:
        since = self._reference_time(task, messages)
        user_id = conversation.other_participant(self.bot_user_id)

        if any(m.sender_id == user_id and m.created_at > since for m in messages):
            return True
        return await self.store.count_activity(user_id, TRACKED_ACTIVITY, since) > 0

    # ── Templates ──

    async def compose(self, conversation: ConversationRecord, kind: FollowupKind) -> str:
        """Follow-up text for ``kind``, personalized for the conversation's user."""
        user_id = conversation.other_participant(self.bot_user_id)
        now = self._clock()
        user = await self.store.get_user(user_id)
        profile = profile_for_user(user, now) if user else None

        text = await self._template(user_id, profile, kind, now)
        if profile is None:
            return text
        return self.personalizer.personalize(text, profile, self.KIND_INTENTS.get(kind))

    async def _template(
        self,
        user_id: str,
        profile: Optional[UserProfile],
        kind: FollowupKind,
        now: datetime,
    ) -> str:
        if kind == FollowupKind.PROPERTY_SEARCH:
            explored = await self.store.count_activity(
                user_id, [ActivityKind.FAVORITE, ActivityKind.VIEWING], now - self.SEARCH_LOOKBACK
            )
            if explored:
                return (
                    "I see you've been exploring some properties! How's the search going? "
                    "Need help with anything specific? I'm here whenever you need guidance!"
                )
            return "\n".join([
                "Hey there! Just checking in on your property search. Still looking for the perfect place? "
                "I can help refine your criteria or point you to new listings.",
                "",
                "Quick options:",
                "- See new properties in your area",
                "- Refine your search criteria",
                "- Get neighborhood insights",
                "- Schedule property viewings",
            ])

        if kind == FollowupKind.APPLICATION_GUIDANCE:
            applied = await self.store.count_activity(
                user_id, [ActivityKind.APPLICATION], now - self.APPLICATION_LOOKBACK
            )
            if applied:
                return (
                    f"Quick check-in on your applications! You submitted {applied} recently. "
                    "Keep your phone handy in case landlords need additional info. "
                    "Need help with anything while you wait?"
                )
            return "\n".join([
                "How is your rental application going? I'm here if you need help with any part of the process!",
                "",
                "Application tips:",
                "- Follow up politely if you haven't heard back in 5-7 days",
                "- Keep working on backup options",
                "- Have your documents ready for quick responses",
            ])

        if kind == FollowupKind.MAINTENANCE_FOLLOWUP:
            return "\n".join([
                "Following up on our maintenance chat: is everything fixed and working well now?",
                "",
                "Maintenance tip: a few regular checks prevent bigger problems.",
                "- Test smoke detectors monthly",
                "- Check for small leaks before they become big ones",
                "- Report issues to your landlord early",
            ])

        if kind == FollowupKind.HUMAN_HANDOFF_FOLLOWUP:
            return (
                "Hi again! You asked to speak with someone from our team earlier. They will get back to you "
                "as soon as possible during business hours (9 AM - 6 PM EST).\n\n"
                "In the meantime, I'm still here if you have other questions.\n\n"
                "For urgent matters:\n- Email: support@ofie.com\n- Phone: 1-800-OFIE-HELP"
            )

        if kind == FollowupKind.WEEKLY_CHECKIN:
            return await self._weekly_checkin(user_id, profile, now)

        if kind == FollowupKind.ONBOARDING_COMPLETION:
            name = first_name(profile.name) if profile else ""
            return (
                f"Welcome to the Ofie community, {name or 'there'}!\n\n"
                "You've been with us for a week now. How has your experience been so far?\n\n"
                "Pro tip: set up search alerts so you're first to know about new properties that match your criteria.\n\n"
                "What can I help you with today?"
            )

        return (
            "Hey there! Just checking in to see how everything's going. "
            "I'm here whenever you need help with anything housing-related."
        )

    async def _weekly_checkin(self, user_id: str, profile: Optional[UserProfile], now: datetime) -> str:
        since = now - self.WEEK
        viewed = await self.store.count_activity(user_id, [ActivityKind.VIEWING], since)
        applied = await self.store.count_activity(user_id, [ActivityKind.APPLICATION], since)
        favorited = await self.store.count_activity(user_id, [ActivityKind.FAVORITE], since)

        opener = self.personalizer.greeting(profile, now) if profile else "Hello!"
        lines = [f"{opener} Here's your week in review:"]
        if viewed:
            lines.append(f"- You viewed {viewed} properties")
        if applied:
            lines.append(f"- You submitted {applied} applications")
        if favorited:
            lines.append(f"- You favorited {favorited} properties")
        if not (viewed or applied or favorited):
            lines.append("Looks like you took a break from house hunting this week, and that's totally fine!")
        lines.extend([
            "",
            "What would you like to focus on this week?",
            "- Find new properties",
            "- Follow up on applications",
            "- Schedule viewings",
        ])
        return "\n".join(lines)
