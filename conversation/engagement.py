"""
Engagement Analyzer for Ofie Assistant.

Read-side scoring over a conversation's persisted messages: sentiment
and confidence trends, engagement score, insights, and the human
handoff signal. Nothing here mutates the store.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from statistics import mean
from typing import Any, Dict, List, Optional, Sequence, Set

from nlp.sentiment import Sentiment, SentimentAnalyzer

from .models import ConversationRecord, MessageRecord, utcnow
from .store import ConversationStore

logger = logging.getLogger(__name__)


class HandoffReason(Enum):
    """Indicators that can trigger a human handoff."""
    LOW_BOT_CONFIDENCE = "low_bot_confidence"
    NEGATIVE_USER_SENTIMENT = "negative_user_sentiment"
    REPETITIVE_CONVERSATION = "repetitive_conversation"
    COMPLEX_QUERIES = "complex_queries"


class ResolutionStatus(Enum):
    RESOLVED = "resolved"
    STALE = "stale"
    ACTIVE = "active"


@dataclass
class HandoffPolicy:
    """Thresholds and weights for the handoff signal (hand-tuned)."""
    low_confidence_threshold: float = 0.5
    low_confidence_min_count: int = 2
    low_confidence_lookback: int = 3
    repetition_threshold: float = 0.5
    repetition_window_minutes: int = 30
    repetition_min_messages: int = 4
    recent_window_minutes: int = 10
    sentiment_lookback: int = 20
    weight_low_confidence: float = 0.4
    weight_negative_sentiment: float = 0.3
    weight_repetitive: float = 0.2
    weight_complex: float = 0.5

    @classmethod
    def from_settings(cls, settings: Any) -> "HandoffPolicy":
        return cls(
            low_confidence_threshold=settings.handoff_low_confidence_threshold,
            low_confidence_min_count=settings.handoff_low_confidence_min_count,
            low_confidence_lookback=settings.handoff_low_confidence_lookback,
            repetition_threshold=settings.handoff_repetition_threshold,
            repetition_window_minutes=settings.handoff_repetition_window_minutes,
            repetition_min_messages=settings.handoff_repetition_min_messages,
            recent_window_minutes=settings.handoff_recent_window_minutes,
            sentiment_lookback=settings.handoff_sentiment_lookback,
            weight_low_confidence=settings.handoff_weight_low_confidence,
            weight_negative_sentiment=settings.handoff_weight_negative_sentiment,
            weight_repetitive=settings.handoff_weight_repetitive,
            weight_complex=settings.handoff_weight_complex,
        )

    def weight(self, reason: HandoffReason) -> float:
        return {
            HandoffReason.LOW_BOT_CONFIDENCE: self.weight_low_confidence,
            HandoffReason.NEGATIVE_USER_SENTIMENT: self.weight_negative_sentiment,
            HandoffReason.REPETITIVE_CONVERSATION: self.weight_repetitive,
            HandoffReason.COMPLEX_QUERIES: self.weight_complex,
        }[reason]


@dataclass
class HandoffSignal:
    """Derived on demand, never persisted."""
    reasons: Set[HandoffReason] = field(default_factory=set)
    score: float = 0.0

    @property
    def should_handoff(self) -> bool:
        return bool(self.reasons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reasons": sorted(r.value for r in self.reasons),
            "score": self.score,
            "should_handoff": self.should_handoff,
        }


@dataclass
class TrendPoint:
    timestamp: datetime
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value}


@dataclass
class SentimentTrend:
    overall: Sentiment = Sentiment.NEUTRAL
    points: List[TrendPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.value,
            "points": [p.to_dict() for p in self.points],
        }


@dataclass
class ConversationInsights:
    """Summary statistics for a conversation."""
    conversation_id: str
    total_messages: int = 0
    user_messages: int = 0
    bot_messages: int = 0
    duration_minutes: float = 0.0
    average_response_seconds: Optional[float] = None
    intents_covered: List[str] = field(default_factory=list)
    resolution_status: ResolutionStatus = ResolutionStatus.ACTIVE
    engagement_score: int = 0
    sentiment: Sentiment = Sentiment.NEUTRAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "total_messages": self.total_messages,
            "user_messages": self.user_messages,
            "bot_messages": self.bot_messages,
            "duration_minutes": self.duration_minutes,
            "average_response_seconds": self.average_response_seconds,
            "intents_covered": self.intents_covered,
            "resolution_status": self.resolution_status.value,
            "engagement_score": self.engagement_score,
            "sentiment": self.sentiment.value,
        }


class EngagementAnalyzer:
    """
    Computes conversation-level signals from message history.

    Messages that trip the complexity indicator are scored by that
    indicator only: they are left out of the sentiment vote and the
    repetition ratio, so adding one can never lower the handoff score.
    """

    COMPLEXITY_KEYWORDS = [
        "legal", "lawsuit", "eviction", "evict", "evicted", "discrimination",
        "lawyer", "attorney", "court", "sue", "illegal", "violation",
        "emergency", "urgent", "immediately", "asap",
    ]

    RESOLUTION_KEYWORDS = ["thank you", "thanks", "solved", "resolved", "helpful", "perfect"]

    STALE_AFTER = timedelta(hours=24)
    HISTORY_LIMIT = 200

    def __init__(
        self,
        store: ConversationStore,
        bot_user_id: str,
        policy: Optional[HandoffPolicy] = None,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
    ):
        self.store = store
        self.bot_user_id = bot_user_id
        self.policy = policy or HandoffPolicy()
        self.sentiment = sentiment_analyzer or SentimentAnalyzer()
        self._complexity = re.compile(
            r"\b(" + "|".join(self.COMPLEXITY_KEYWORDS) + r")\b", re.IGNORECASE
        )
        self._resolution = re.compile(
            r"\b(" + "|".join(self.RESOLUTION_KEYWORDS) + r")\b", re.IGNORECASE
        )

    # ── Store-backed entry points ─────────────────────────────

    async def _messages(self, conversation: ConversationRecord) -> List[MessageRecord]:
        return await self.store.list_messages(conversation.id, limit=self.HISTORY_LIMIT)

    async def handoff_signal(
        self, conversation: ConversationRecord, now: Optional[datetime] = None
    ) -> HandoffSignal:
        return self.evaluate(await self._messages(conversation), now=now)

    async def sentiment_trend(self, conversation: ConversationRecord) -> SentimentTrend:
        return self.compute_sentiment_trend(await self._messages(conversation))

    async def confidence_trend(self, conversation: ConversationRecord) -> List[TrendPoint]:
        return self.compute_confidence_trend(await self._messages(conversation))

    async def engagement_score(self, conversation: ConversationRecord) -> int:
        return self.compute_engagement_score(await self._messages(conversation))

    async def insights(
        self, conversation: ConversationRecord, now: Optional[datetime] = None
    ) -> ConversationInsights:
        return self.compute_insights(conversation.id, await self._messages(conversation), now=now)

    # ── Pure computations ─────────────────────────────────────

    def is_bot(self, message: MessageRecord) -> bool:
        return message.sender_id == self.bot_user_id

    def is_complex(self, text: str) -> bool:
        return bool(self._complexity.search(text))

    def evaluate(
        self, messages: Sequence[MessageRecord], now: Optional[datetime] = None
    ) -> HandoffSignal:
        """
        Combine the four indicators into a HandoffSignal.

        Args:
            messages: Conversation messages, oldest to newest
            now: Reference time for the recent windows

        Returns:
            HandoffSignal with score = min(1.0, sum of triggered weights)
        """
        now = now or utcnow()
        p = self.policy
        recent_cutoff = now - timedelta(minutes=p.recent_window_minutes)
        human = [m for m in messages if not self.is_bot(m)]
        plain = [m for m in human if not self.is_complex(m.content)]

        reasons: Set[HandoffReason] = set()

        # Low confidence: assistant replies only
        scored_replies = [
            m for m in messages
            if self.is_bot(m) and m.created_at >= recent_cutoff and "confidence" in m.metadata
        ][-p.low_confidence_lookback:]
        low = sum(
            1 for m in scored_replies
            if float(m.metadata["confidence"]) < p.low_confidence_threshold
        )
        if low >= p.low_confidence_min_count:
            reasons.add(HandoffReason.LOW_BOT_CONFIDENCE)

        # Negative sentiment: majority vote over human messages
        votes = plain[-p.sentiment_lookback:] if p.sentiment_lookback > 0 else []
        if self.sentiment.majority(m.content for m in votes) == Sentiment.NEGATIVE:
            reasons.add(HandoffReason.NEGATIVE_USER_SENTIMENT)

        # Repetition within the short window: the minimum counts every
        # sender, the ratio only human messages
        repetition_cutoff = now - timedelta(minutes=p.repetition_window_minutes)
        window = [m for m in messages if m.created_at >= repetition_cutoff]
        texts = [
            " ".join(m.content.lower().split())
            for m in plain if m.created_at >= repetition_cutoff
        ]
        if len(window) >= p.repetition_min_messages and texts:
            ratio = 1 - len(set(texts)) / len(texts)
            if ratio > p.repetition_threshold:
                reasons.add(HandoffReason.REPETITIVE_CONVERSATION)

        # Legal / urgency keywords in recent human messages
        if any(m.created_at >= recent_cutoff and self.is_complex(m.content) for m in human):
            reasons.add(HandoffReason.COMPLEX_QUERIES)

        score = round(min(1.0, sum(p.weight(r) for r in reasons)), 4)
        signal = HandoffSignal(reasons=reasons, score=score)
        if signal.should_handoff:
            logger.debug(f"Handoff indicators: {sorted(r.value for r in reasons)} score={score}")
        return signal

    def compute_sentiment_trend(self, messages: Sequence[MessageRecord]) -> SentimentTrend:
        human = [m for m in messages if not self.is_bot(m)]
        overall = self.sentiment.majority(m.content for m in human)
        if len(human) < 2:
            return SentimentTrend(overall=overall)
        points = [
            TrendPoint(timestamp=m.created_at, value=self.sentiment.classify(m.content).score)
            for m in human
        ]
        return SentimentTrend(overall=overall, points=points)

    def compute_confidence_trend(self, messages: Sequence[MessageRecord]) -> List[TrendPoint]:
        return [
            TrendPoint(timestamp=m.created_at, value=float(m.metadata["confidence"]))
            for m in messages
            if self.is_bot(m) and "confidence" in m.metadata
        ]

    def compute_engagement_score(self, messages: Sequence[MessageRecord]) -> int:
        """
        Engagement on a 0-100 scale.

        Averages a length score (mean human message length / 50, capped
        at 10) and a frequency score (messages per hour, capped at 10).
        """
        human = [m for m in messages if not self.is_bot(m)]
        if not human:
            return 0

        length_score = min(mean(len(m.content) for m in human) / 50, 10)

        duration_hours = (messages[-1].created_at - messages[0].created_at).total_seconds() / 3600
        frequency_score = min(len(messages) / duration_hours, 10) if duration_hours > 0 else 0

        return round((length_score + frequency_score) / 2 * 10)

    def compute_insights(
        self,
        conversation_id: str,
        messages: Sequence[MessageRecord],
        now: Optional[datetime] = None,
    ) -> ConversationInsights:
        now = now or utcnow()
        insights = ConversationInsights(conversation_id=conversation_id)
        if not messages:
            return insights

        human = [m for m in messages if not self.is_bot(m)]
        bot = [m for m in messages if self.is_bot(m)]

        response_times = [
            (current.created_at - previous.created_at).total_seconds()
            for previous, current in zip(messages, messages[1:])
            if not self.is_bot(previous) and self.is_bot(current)
        ]

        insights.total_messages = len(messages)
        insights.user_messages = len(human)
        insights.bot_messages = len(bot)
        insights.duration_minutes = round(
            (messages[-1].created_at - messages[0].created_at).total_seconds() / 60, 1
        )
        insights.average_response_seconds = (
            round(mean(response_times), 2) if response_times else None
        )
        insights.intents_covered = sorted({m.metadata["intent"] for m in bot if m.metadata.get("intent")})
        insights.resolution_status = self._resolution_status(human, messages[-1], now)
        insights.engagement_score = self.compute_engagement_score(messages)
        insights.sentiment = self.sentiment.majority(m.content for m in human)
        return insights

    def _resolution_status(
        self, human: Sequence[MessageRecord], last: MessageRecord, now: datetime
    ) -> ResolutionStatus:
        if any(self._resolution.search(m.content) for m in human[-3:]):
            return ResolutionStatus.RESOLVED
        if now - last.created_at > self.STALE_AFTER:
            return ResolutionStatus.STALE
        return ResolutionStatus.ACTIVE
