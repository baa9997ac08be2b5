"""Tests for the response pipeline."""

import asyncio
from datetime import datetime, timezone

import pytest

from api.handoff.manager import HandoffManager
from conversation.context_builder import ContextAggregator
from conversation.engagement import EngagementAnalyzer
from delivery.adapter import DeliveryAdapter
from jobs.followup import FOLLOWUP_TASK, FollowupScheduler
from jobs.queue import TaskQueue
from jobs.response_job import (
    DEFAULT_QUICK_ACTIONS,
    RESPONSE_TASK,
    ResponsePipeline,
    learned_preferences,
    quick_actions_for,
    typing_delay_seconds,
)
from llm.generator import ResponseGenerator
from nlp.intent_classifier import IntentClassifier

from conftest import BOT_ID, BOT_NAME, run

NOW = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class BrokenGenerator:
    async def generate(self, *args, **kwargs):
        raise RuntimeError("generator exploded")


async def _noop(payload):
    return None


@pytest.fixture
def queue():
    q = TaskQueue()
    q.register(FOLLOWUP_TASK, _noop)
    return q


@pytest.fixture
def handoff_manager():
    return HandoffManager(agent_ids=["agent-1"])


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def make_pipeline(store, broadcaster, queue, handoff_manager, sleep):
    def factory(providers=None, generator=None):
        classifier = IntentClassifier()
        return ResponsePipeline(
            store=store,
            aggregator=ContextAggregator(store, BOT_ID, BOT_NAME),
            classifier=classifier,
            generator=generator or ResponseGenerator(
                providers=providers or [], classifier=classifier, bot_name=BOT_NAME
            ),
            analyzer=EngagementAnalyzer(store, BOT_ID),
            scheduler=FollowupScheduler(queue),
            adapter=DeliveryAdapter(BOT_ID, BOT_NAME),
            broadcaster=broadcaster,
            bot_user_id=BOT_ID,
            handoff_manager=handoff_manager,
            typing_delay_cap=3.0,
            sleep=sleep,
        )
    return factory


def post(store, conversation, sender_id, text):
    return run(store.append_message(conversation.id, sender_id=sender_id, content=text))


class TestResponsePipeline:
    def test_reply_is_persisted_and_broadcast(
        self, make_pipeline, store, broadcaster, queue, bot_conversation, tenant
    ):
        message = post(store, bot_conversation, tenant.id, "I need a 2 bedroom apartment under $2000")
        reply = run(make_pipeline().handle(bot_conversation.id, message.id))

        assert reply is not None
        assert reply.sender_id == BOT_ID
        assert "- 2 bedroom(s)" in reply.content
        assert reply.metadata["intent"] == "property_search"
        assert reply.metadata["source"] == "fallback"
        assert reply.metadata["cached"] is False
        assert reply.metadata["quick_actions"] == ["Refine search", "Save search", "Schedule viewing"]

        assert broadcaster.types() == ["typing_indicator", "typing_indicator", "bot_response"]
        start, stop = broadcaster.of_type("typing_indicator")
        assert start.data["is_typing"] is True
        assert stop.data["is_typing"] is False

        event = broadcaster.of_type("bot_response")[0].to_dict()
        assert event["type"] == "bot_response"
        assert event["data"]["message"]["id"] == reply.id
        assert event["data"]["message"]["is_bot"] is True
        assert event["data"]["requires_human_handoff"] is False
        assert event["data"]["handoff_reasons"] == []
        assert "timestamp" in event["data"]

    def test_conversation_metadata_updated(self, make_pipeline, store, bot_conversation, tenant):
        pipeline = make_pipeline()
        for text in ("Hello there", "Can I pay rent online with a card?"):
            message = post(store, bot_conversation, tenant.id, text)
            run(pipeline.handle(bot_conversation.id, message.id))

        metadata = run(store.get_conversation(bot_conversation.id)).metadata
        assert metadata["last_bot_intent"] == "payment_help"
        assert metadata["bot_interaction_count"] == 2
        assert "last_bot_response_at" in metadata

    def test_followup_scheduled_for_confident_search(
        self, make_pipeline, store, queue, bot_conversation, tenant
    ):
        message = post(store, bot_conversation, tenant.id, "I need a 2 bedroom apartment under $2000")
        run(make_pipeline().handle(bot_conversation.id, message.id))
        pending = queue.pending()
        assert len(pending) == 1
        assert pending[0].payload["kind"] == "property_search"

    def test_generated_reply(self, make_pipeline, store, broadcaster, good_provider, bot_conversation, tenant):
        message = post(store, bot_conversation, tenant.id, "Any 2 bedroom apartments downtown?")
        reply = run(make_pipeline(providers=[good_provider]).handle(bot_conversation.id, message.id))
        assert reply.content == good_provider.output
        assert reply.metadata["source"] == "generated"
        assert broadcaster.of_type("bot_response")[0].data["source"] == "generated"

    def test_typing_pause_is_capped(self, make_pipeline, store, sleep, bot_conversation, tenant):
        message = post(store, bot_conversation, tenant.id, "hello")
        run(make_pipeline().handle(bot_conversation.id, message.id))
        assert sleep.delays == [3.0]

    def test_ignores_human_conversation(self, make_pipeline, store, broadcaster, human_conversation, tenant):
        message = post(store, human_conversation, tenant.id, "Is the unit still available?")
        assert run(make_pipeline().handle(human_conversation.id, message.id)) is None
        assert broadcaster.events == []
        assert len(run(store.list_messages(human_conversation.id))) == 1

    def test_ignores_bot_messages(self, make_pipeline, store, broadcaster, bot_conversation):
        message = post(store, bot_conversation, BOT_ID, "Welcome!")
        assert run(make_pipeline().handle(bot_conversation.id, message.id)) is None
        assert broadcaster.events == []

    def test_generation_failure_sends_error_message(
        self, make_pipeline, store, broadcaster, bot_conversation, tenant
    ):
        message = post(store, bot_conversation, tenant.id, "find apartments")
        pipeline = make_pipeline(generator=BrokenGenerator())
        assert run(pipeline.handle(bot_conversation.id, message.id)) is None

        stored = run(store.list_messages(bot_conversation.id))
        assert len(stored) == 2
        error_message = stored[-1]
        assert error_message.content == ResponsePipeline.ERROR_MESSAGE
        assert error_message.metadata["is_error_message"] is True
        assert error_message.metadata["error_stage"] == "generate"

        assert broadcaster.types() == ["typing_indicator", "typing_indicator", "bot_error"]
        assert broadcaster.of_type("typing_indicator")[-1].data["is_typing"] is False
        assert broadcaster.of_type("bot_error")[0].data["error_type"] == "processing_error"

    def test_missing_message_reports_load_error(self, make_pipeline, store, broadcaster, bot_conversation):
        assert run(make_pipeline().handle(bot_conversation.id, "nope")) is None
        stored = run(store.list_messages(bot_conversation.id))
        assert stored[-1].metadata["error_stage"] == "load"
        assert broadcaster.types() == ["bot_error"]

    def test_missing_conversation_is_logged_only(self, make_pipeline, broadcaster):
        assert run(make_pipeline().handle("missing", "nope")) is None
        assert broadcaster.events == []

    def test_handoff_started_once(
        self, make_pipeline, store, broadcaster, queue, handoff_manager, bot_conversation, tenant
    ):
        pipeline = make_pipeline()
        for _ in range(3):
            post(store, bot_conversation, tenant.id, "where is my apartment")
        message = post(store, bot_conversation, tenant.id, "where is my apartment")
        run(pipeline.handle(bot_conversation.id, message.id))

        response = broadcaster.of_type("bot_response")[0]
        assert response.data["requires_human_handoff"] is True
        assert response.data["handoff_reasons"] == ["repetitive_conversation"]
        assert len(broadcaster.of_type("handoff_started")) == 1
        assert handoff_manager.is_in_handoff(bot_conversation.id)
        assert handoff_manager.get_session(bot_conversation.id).assigned_agent_id == "agent-1"
        assert [t.payload["kind"] for t in queue.pending()] == ["human_handoff_followup"]

        message = post(store, bot_conversation, tenant.id, "where is my apartment")
        run(pipeline.handle(bot_conversation.id, message.id))
        assert len(broadcaster.of_type("handoff_started")) == 1
        assert len(broadcaster.of_type("bot_response")) == 2
        assert len(queue) == 1

    def test_search_criteria_become_preferences(self, make_pipeline, store, bot_conversation, tenant):
        pipeline = make_pipeline()
        text = "I need a 2 bedroom apartment under $2000 with a gym"
        message = post(store, bot_conversation, tenant.id, text)
        run(pipeline.handle(bot_conversation.id, message.id))

        preferences = run(store.get_user(tenant.id)).preferences
        assert preferences["max_budget"] == 2000
        assert preferences["bedrooms"] == 2
        assert preferences["property_type"] == "apartment"
        assert preferences["amenities"] == ["gym", "parking"]
        assert [entry["query"] for entry in preferences["search_history"]] == [text]

        message = post(store, bot_conversation, tenant.id, "Actually my budget is $1800")
        run(pipeline.handle(bot_conversation.id, message.id))
        preferences = run(store.get_user(tenant.id)).preferences
        assert preferences["max_budget"] == 1800
        assert preferences["bedrooms"] == 2

    def test_run_entry_point(self, make_pipeline, store, bot_conversation, tenant):
        message = post(store, bot_conversation, tenant.id, "hello")
        run(make_pipeline().run({"conversation_id": bot_conversation.id, "message_id": message.id}))
        assert len(run(store.list_messages(bot_conversation.id))) == 2


class TestPipelineHelpers:
    def test_quick_actions(self):
        assert quick_actions_for("maintenance_request") == ["Submit request", "Emergency contact", "View history"]
        assert quick_actions_for("greeting") == DEFAULT_QUICK_ACTIONS

    def test_quick_actions_are_copies(self):
        quick_actions_for("greeting").append("x")
        assert "x" not in DEFAULT_QUICK_ACTIONS

    @pytest.mark.parametrize("words,cap,expected", [
        (1, 3.0, 1.0),
        (500, 3.0, 3.0),
        (500, 10.0, 5.0),
        (10, 0.0, 0.0),
    ])
    def test_typing_delay(self, words, cap, expected):
        assert typing_delay_seconds(" ".join(["word"] * words), cap) == expected

    def test_learned_locations_accept_stored_string(self):
        updates = learned_preferences("property_search", {"location": "Downtown"}, {"locations": "Midtown"}, "q", NOW)
        assert updates["locations"] == ["Midtown", "Downtown"]
        assert updates["search_history"][0]["searched_at"] == NOW.isoformat()

    def test_nothing_learned_from_plain_question(self):
        assert learned_preferences("payment_help", {}, {"max_budget": 1500}, "how do I pay?", NOW) == {}

    def test_search_history_is_bounded(self):
        current = {"search_history": [{"query": str(i)} for i in range(10)]}
        updates = learned_preferences("property_search", {"bedroom_count": 1}, current, "one bed", NOW)
        assert len(updates["search_history"]) == 10
        assert updates["search_history"][-1]["query"] == "one bed"
        assert updates["search_history"][0]["query"] == "1"


class PacedGenerator:
    """Wraps a generator, pausing inside each call and tracking overlap."""

    def __init__(self, inner, pause=0.05):
        self.inner = inner
        self.pause = pause
        self.active = 0
        self.max_active = 0

    async def generate(self, *args, **kwargs):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.pause)
            return await self.inner.generate(*args, **kwargs)
        finally:
            self.active -= 1


class TestWorkerPool:
    def test_one_reply_at_a_time_per_conversation(self, make_pipeline, store, bot_conversation, tenant):
        generator = PacedGenerator(
            ResponseGenerator(providers=[], classifier=IntentClassifier(), bot_name=BOT_NAME)
        )
        pipeline = make_pipeline(generator=generator)
        workers = TaskQueue(concurrency=2, poll_interval=0.01)
        workers.register(RESPONSE_TASK, pipeline.run)

        async def scenario():
            first = await store.append_message(bot_conversation.id, sender_id=tenant.id, content="Hello there")
            second = await store.append_message(
                bot_conversation.id, sender_id=tenant.id, content="Can I pay rent online with a card?"
            )
            await workers.start()
            for message in (first, second):
                workers.enqueue(RESPONSE_TASK, {"conversation_id": bot_conversation.id, "message_id": message.id})
            for _ in range(300):
                messages = await store.list_messages(bot_conversation.id)
                if len(messages) >= 4 and not pipeline.in_flight():
                    break
                await asyncio.sleep(0.01)
            await workers.stop()
            return messages, await store.get_conversation(bot_conversation.id)

        messages, conversation = run(scenario())
        assert generator.max_active == 1
        assert [m.metadata.get("intent") for m in messages[2:]] == ["greeting", "payment_help"]
        assert conversation.metadata["bot_interaction_count"] == 2
        assert pipeline.in_flight() == []
