"""Tests for reply generation, validation, caching and the fallback synthesizer."""

import pytest

from config.settings import Settings
from conversation.context_builder import ContextAggregator
from llm.fallback import RuleBasedSynthesizer
from llm.generator import ReplySource, ResponseGenerator
from llm.guardrails import ResponseValidator
from llm.providers import build_providers
from llm.response_cache import ResponseCache, normalize_query
from nlp.intent_classifier import Intent

from conftest import BOT_ID, BOT_NAME, FakeProvider, run


@pytest.fixture
def context(store, bot_conversation, tenant):
    return run(ContextAggregator(store, BOT_ID, BOT_NAME).build(tenant, bot_conversation))


def make_generator(providers, **kwargs):
    return ResponseGenerator(providers=providers, bot_name=BOT_NAME, **kwargs)


# ── Generator ─────────────────────────────────────────

class TestResponseGenerator:
    def test_first_valid_provider_wins(self, good_provider, tenant, bot_conversation, context):
        generator = make_generator([good_provider])
        reply = run(generator.generate(tenant, "Any 2 bedroom apartments under $2000?", bot_conversation, context))
        assert reply.source == ReplySource.GENERATED
        assert reply.text == good_provider.output
        assert reply.metadata["provider"] == "anthropic"
        assert reply.metadata["model"] == "fake-model"
        assert reply.metadata["intent"] == "property_search"
        assert not reply.cached

    def test_failing_provider_falls_through(
        self, failing_provider, good_provider, tenant, bot_conversation, context
    ):
        generator = make_generator([failing_provider, good_provider])
        reply = run(generator.generate(tenant, "any 2 bedroom units?", bot_conversation, context))
        assert reply.source == ReplySource.GENERATED
        assert failing_provider.calls == 1
        assert good_provider.calls == 1

    def test_invalid_output_is_rejected(
        self, disclaimer_provider, good_provider, tenant, bot_conversation, context
    ):
        generator = make_generator([disclaimer_provider, good_provider])
        reply = run(generator.generate(tenant, "show me apartments", bot_conversation, context))
        assert reply.text == good_provider.output
        assert "As an AI" not in reply.text

    def test_all_providers_fail_uses_fallback(
        self, failing_provider, disclaimer_provider, tenant, bot_conversation, context
    ):
        generator = make_generator([failing_provider, disclaimer_provider])
        reply = run(generator.generate(
            tenant, "I need a 2 bedroom apartment under $2000", bot_conversation, context
        ))
        assert reply.source == ReplySource.FALLBACK
        assert "- 2 bedroom(s)" in reply.text
        assert "- Maximum rent: $2,000" in reply.text
        assert reply.metadata["source"] == "fallback"

    def test_no_providers_uses_fallback(self, tenant, bot_conversation, context):
        reply = run(make_generator([]).generate(tenant, "hello", bot_conversation, context))
        assert reply.source == ReplySource.FALLBACK
        assert f"I'm {BOT_NAME}." in reply.text
        assert "Jane" in reply.text.splitlines()[0]

    def test_llm_disabled_skips_providers(self, good_provider, tenant, bot_conversation, context):
        generator = make_generator([good_provider], use_llm=False)
        reply = run(generator.generate(tenant, "find apartments", bot_conversation, context))
        assert reply.source == ReplySource.FALLBACK
        assert good_provider.calls == 0

    def test_timeout_falls_through(self, good_provider, tenant, bot_conversation, context):
        class SlowProvider(FakeProvider):
            def generate(self, prompt):
                import time
                time.sleep(0.5)
                return "This answer arrived much too late to be used."

        slow = SlowProvider(output="")
        generator = make_generator([slow, good_provider], timeout_seconds=0.05)
        reply = run(generator.generate(tenant, "find apartments", bot_conversation, context))
        assert reply.text == good_provider.output

    def test_cache_hit_skips_providers(self, good_provider, tenant, bot_conversation, context):
        generator = make_generator([good_provider])
        first = run(generator.generate(tenant, "Find apartments downtown", bot_conversation, context))
        second = run(generator.generate(tenant, "  find   APARTMENTS downtown ", bot_conversation, context))
        assert good_provider.calls == 1
        assert second.cached
        assert not first.cached
        assert second.text == first.text
        assert second.source == ReplySource.GENERATED

    def test_fallback_replies_are_not_cached(self, tenant, bot_conversation, context):
        generator = make_generator([])
        run(generator.generate(tenant, "hello", bot_conversation, context))
        assert len(generator.cache) == 0

    def test_cache_is_scoped_to_conversation(
        self, good_provider, tenant, bot_conversation, human_conversation, context
    ):
        generator = make_generator([good_provider])
        run(generator.generate(tenant, "find apartments", bot_conversation, context))
        run(generator.generate(tenant, "find apartments", human_conversation, context))
        assert good_provider.calls == 2

    def test_precomputed_intent_is_used(self, tenant, bot_conversation, context):
        generator = make_generator([])
        intent = generator.classifier.classify("My toilet is clogged")
        reply = run(generator.generate(tenant, "My toilet is clogged", bot_conversation, context, intent))
        assert intent.intent == Intent.MAINTENANCE_REQUEST
        assert reply.metadata["intent"] == "maintenance_request"

    def test_from_settings_without_credentials(self):
        settings = Settings(anthropic_api_key="", openai_api_key="", google_api_key="")
        assert build_providers(settings) == []
        generator = ResponseGenerator.from_settings(settings)
        assert generator.providers == []


# ── Validator ─────────────────────────────────────────

class TestResponseValidator:
    def test_valid_reply(self):
        result = ResponseValidator().verify("Here are three listings that match your budget.")
        assert result.passed
        assert result.flags == []

    @pytest.mark.parametrize("text,flag", [
        ("", "empty"),
        ("   \n ", "empty"),
        ("Ok.", "too_short"),
        ("x" * 2001, "too_long"),
        ("As an AI language model I think this is a nice flat.", "disclaimer:as an ai"),
    ])
    def test_rejections(self, text, flag):
        result = ResponseValidator().verify(text)
        assert not result.passed
        assert flag in result.flags

    def test_whitespace_normalized(self):
        result = ResponseValidator().verify("  Two   listings\n\n\n\nmatch.  ")
        assert result.sanitized_response == "Two listings\n\nmatch."


# ── Cache ─────────────────────────────────────────────

class TestResponseCache:
    def test_key_normalizes_query(self):
        assert ResponseCache.make_key("u", "Hello  World", "c") == ResponseCache.make_key("u", " hello world ", "c")
        assert ResponseCache.make_key("u", "hello", "c1") != ResponseCache.make_key("u", "hello", "c2")
        assert normalize_query("  A\tB  ") == "a b"

    def test_ttl_expiry(self):
        now = [0.0]
        cache = ResponseCache(ttl_seconds=10, clock=lambda: now[0])
        cache.set("k", "v")
        now[0] = 9.9
        assert cache.get("k") == "v"
        now[0] = 10.0
        assert cache.get("k") is None
        assert cache.hits == 1
        assert cache.misses == 1

    def test_live_entry_not_overwritten(self):
        cache = ResponseCache()
        cache.set("k", "first")
        cache.set("k", "second")
        assert cache.get("k") == "first"

    def test_lru_eviction(self):
        cache = ResponseCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3


# ── Fallback Synthesizer ──────────────────────────────

class TestRuleBasedSynthesizer:
    @pytest.fixture
    def synthesizer(self):
        return RuleBasedSynthesizer(bot_name=BOT_NAME)

    @pytest.mark.parametrize("intent", [i.value for i in Intent] + ["not_a_real_intent"])
    def test_every_intent_has_a_reply(self, synthesizer, intent):
        assert synthesizer.synthesize(intent, {}, None).strip()

    def test_search_without_criteria_asks_questions(self, synthesizer):
        reply = synthesizer.synthesize("property_search", {})
        assert "How many bedrooms do you need?" in reply

    def test_emergency_maintenance(self, synthesizer):
        reply = synthesizer.synthesize("maintenance_request", {"urgency": "emergency"})
        assert "EMERGENCY MAINTENANCE" in reply

    def test_landlord_greeting(self, synthesizer, context):
        context.profile.role = "landlord"
        reply = synthesizer.synthesize("greeting", {}, context)
        assert "manage your properties" in reply
        assert reply.endswith("What can I help you with today?")

    def test_income_for_rent_at_thirty_percent(self, synthesizer):
        reply = synthesizer.synthesize("financial_planning", {"budget": 2000})
        assert "30% of your gross monthly income" in reply
        assert "monthly income of about $6,667" in reply
