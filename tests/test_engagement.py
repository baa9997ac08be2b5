"""Tests for the engagement analyzer and handoff signal."""

from datetime import timedelta
from itertools import count

import pytest

from conversation.engagement import (
    EngagementAnalyzer,
    HandoffPolicy,
    HandoffReason,
    ResolutionStatus,
)
from conversation.models import MessageRecord, utcnow
from nlp.sentiment import Sentiment

from conftest import BOT_ID, run

NOW = utcnow()
_ids = count()


def msg(sender, content, minutes_ago=1.0, **metadata):
    return MessageRecord(
        id=f"m{next(_ids)}",
        conversation_id="conv-bot",
        sender_id=sender,
        content=content,
        metadata=metadata,
        created_at=NOW - timedelta(minutes=minutes_ago),
    )


def user(content, minutes_ago=1.0):
    return msg("tenant-1", content, minutes_ago)


def bot(content="Here is what I found for you.", minutes_ago=1.0, **metadata):
    return msg(BOT_ID, content, minutes_ago, **metadata)


@pytest.fixture
def analyzer(store):
    return EngagementAnalyzer(store, BOT_ID)


def repetitive_history():
    return [user("where is my apartment", minutes_ago=m) for m in (8, 6, 4, 2)]


class TestHandoffSignal:
    def test_quiet_conversation(self, analyzer):
        signal = analyzer.evaluate([user("Do you have parking?"), bot(confidence=0.9)], now=NOW)
        assert not signal.should_handoff
        assert signal.score == 0.0

    def test_repetition_scores_point_two(self, analyzer):
        signal = analyzer.evaluate(repetitive_history(), now=NOW)
        assert signal.reasons == {HandoffReason.REPETITIVE_CONVERSATION}
        assert signal.score == 0.2
        assert signal.should_handoff

    def test_repetition_needs_enough_messages(self, analyzer):
        signal = analyzer.evaluate(repetitive_history()[:3], now=NOW)
        assert HandoffReason.REPETITIVE_CONVERSATION not in signal.reasons

    def test_repetition_counts_replies_toward_minimum(self, analyzer):
        messages = []
        for m in (18, 12, 6):
            messages += [user("where is my deposit", minutes_ago=m), bot(confidence=0.9, minutes_ago=m - 1)]
        signal = analyzer.evaluate(messages, now=NOW)
        assert signal.reasons == {HandoffReason.REPETITIVE_CONVERSATION}
        assert signal.score == 0.2

    def test_varied_questions_with_replies_not_repetitive(self, analyzer):
        messages = []
        for m, text in ((18, "where is my deposit"), (12, "can I paint the walls"), (6, "where is my deposit")):
            messages += [user(text, minutes_ago=m), bot(confidence=0.9, minutes_ago=m - 1)]
        assert HandoffReason.REPETITIVE_CONVERSATION not in analyzer.evaluate(messages, now=NOW).reasons

    def test_repetition_outside_window_ignored(self, analyzer):
        messages = [user("where is my apartment", minutes_ago=m) for m in (50, 45, 40, 35)]
        assert not analyzer.evaluate(messages, now=NOW).should_handoff

    def test_low_confidence(self, analyzer):
        messages = [
            user("what about the thing"), bot(confidence=0.3, minutes_ago=3),
            user("the other thing"), bot(confidence=0.4, minutes_ago=1),
        ]
        signal = analyzer.evaluate(messages, now=NOW)
        assert signal.reasons == {HandoffReason.LOW_BOT_CONFIDENCE}
        assert signal.score == 0.4

    def test_single_low_confidence_is_not_enough(self, analyzer):
        messages = [bot(confidence=0.9, minutes_ago=3), bot(confidence=0.2, minutes_ago=1)]
        assert not analyzer.evaluate(messages, now=NOW).should_handoff

    def test_old_low_confidence_ignored(self, analyzer):
        messages = [bot(confidence=0.2, minutes_ago=30), bot(confidence=0.1, minutes_ago=20)]
        assert HandoffReason.LOW_BOT_CONFIDENCE not in analyzer.evaluate(messages, now=NOW).reasons

    def test_negative_sentiment(self, analyzer):
        messages = [user("this is terrible"), user("what a useless answer"), user("ok")]
        signal = analyzer.evaluate(messages, now=NOW)
        assert signal.reasons == {HandoffReason.NEGATIVE_USER_SENTIMENT}
        assert signal.score == 0.3

    def test_complex_query(self, analyzer):
        signal = analyzer.evaluate([user("My landlord is trying to evict me")], now=NOW)
        assert signal.reasons == {HandoffReason.COMPLEX_QUERIES}
        assert signal.score == 0.5

    def test_old_complex_query_ignored(self, analyzer):
        signal = analyzer.evaluate([user("I need a lawyer", minutes_ago=60)], now=NOW)
        assert HandoffReason.COMPLEX_QUERIES not in signal.reasons

    def test_adding_complex_message_never_lowers_score(self, analyzer):
        base = repetitive_history()
        before = analyzer.evaluate(base, now=NOW)
        after = analyzer.evaluate(base + [user("this is terrible, I want a lawyer", minutes_ago=0.5)], now=NOW)
        assert after.score >= before.score
        assert before.reasons <= after.reasons
        assert HandoffReason.COMPLEX_QUERIES in after.reasons

    def test_score_capped_at_one(self, analyzer):
        messages = repetitive_history() + [
            user("this is terrible", minutes_ago=1.5),
            user("this is terrible", minutes_ago=1.2),
            bot(confidence=0.2, minutes_ago=1),
            bot(confidence=0.1, minutes_ago=0.8),
            user("this is urgent", minutes_ago=0.5),
        ]
        signal = analyzer.evaluate(messages, now=NOW)
        assert signal.reasons == set(HandoffReason)
        assert signal.score == 1.0

    def test_custom_policy_weights(self, store):
        policy = HandoffPolicy(weight_repetitive=0.35)
        signal = EngagementAnalyzer(store, BOT_ID, policy=policy).evaluate(repetitive_history(), now=NOW)
        assert signal.score == 0.35

    def test_to_dict(self, analyzer):
        data = analyzer.evaluate(repetitive_history(), now=NOW).to_dict()
        assert data == {"reasons": ["repetitive_conversation"], "score": 0.2, "should_handoff": True}

    def test_store_backed_signal(self, analyzer, store, bot_conversation, tenant):
        for text in ("where is my apartment",) * 4:
            run(store.append_message(bot_conversation.id, sender_id=tenant.id, content=text))
        signal = run(analyzer.handoff_signal(bot_conversation))
        assert signal.reasons == {HandoffReason.REPETITIVE_CONVERSATION}


class TestEngagementMetrics:
    def test_engagement_score(self, analyzer):
        messages = [user("x" * 100, minutes_ago=60), user("y" * 100, minutes_ago=0)]
        assert analyzer.compute_engagement_score(messages) == 20

    def test_engagement_score_without_user_messages(self, analyzer):
        assert analyzer.compute_engagement_score([bot()]) == 0

    def test_engagement_score_capped(self, analyzer):
        messages = [user("z" * 5000, minutes_ago=1), user("z" * 5000, minutes_ago=0)]
        assert analyzer.compute_engagement_score(messages) == 100

    def test_sentiment_trend(self, analyzer):
        trend = analyzer.compute_sentiment_trend([
            user("this is great", minutes_ago=3), bot(minutes_ago=2), user("thanks, perfect", minutes_ago=1),
        ])
        assert trend.overall == Sentiment.POSITIVE
        assert [p.value for p in trend.points] == [1, 1]

    def test_sentiment_trend_needs_two_messages(self, analyzer):
        trend = analyzer.compute_sentiment_trend([user("this is great")])
        assert trend.points == []

    def test_confidence_trend(self, analyzer):
        points = analyzer.compute_confidence_trend([
            user("hi"), bot(confidence=0.9, minutes_ago=2), bot(minutes_ago=1.5), bot(confidence=0.4),
        ])
        assert [p.value for p in points] == [0.9, 0.4]

    def test_insights(self, analyzer):
        messages = [
            user("I need a 2 bedroom apartment", minutes_ago=10),
            bot(minutes_ago=9.9, intent="property_search", confidence=0.9),
            user("thanks, that was helpful", minutes_ago=9),
        ]
        insights = analyzer.compute_insights("conv-bot", messages, now=NOW)
        assert insights.total_messages == 3
        assert insights.user_messages == 2
        assert insights.bot_messages == 1
        assert insights.duration_minutes == 1.0
        assert insights.average_response_seconds == 6.0
        assert insights.intents_covered == ["property_search"]
        assert insights.resolution_status == ResolutionStatus.RESOLVED

    def test_stale_conversation(self, analyzer):
        insights = analyzer.compute_insights("conv-bot", [user("hello", minutes_ago=60 * 30)], now=NOW)
        assert insights.resolution_status == ResolutionStatus.STALE

    def test_empty_insights(self, analyzer):
        insights = analyzer.compute_insights("conv-bot", [], now=NOW)
        assert insights.total_messages == 0
        assert insights.to_dict()["resolution_status"] == "active"
