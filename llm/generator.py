"""
Response Generator for Ofie Assistant.

Cache check, then the ordered provider chain, then the rule-based
synthesizer. ``generate`` always returns a non-empty reply.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from conversation.models import ConversationContext, ConversationRecord, UserRecord
from monitoring.metrics import (
    record_cache_hit,
    record_cache_miss,
    record_llm_latency,
    record_provider_failure,
    record_reply_source,
)
from nlp.entity_extractor import jsonable_entities
from nlp.intent_classifier import IntentClassifier, IntentResult
from nlp.sentiment import SentimentAnalyzer

from .fallback import RuleBasedSynthesizer
from .guardrails import ResponseValidator
from .prompt_templates import PromptBuilder
from .providers import ProviderClient, build_providers, invoke
from .response_cache import ResponseCache
from .token_estimator import TokenEstimator

logger = logging.getLogger(__name__)


class ReplySource(Enum):
    GENERATED = "generated"
    FALLBACK = "fallback"


@dataclass
class GeneratedReply:
    """A reply ready for delivery."""
    text: str
    source: ReplySource
    cached: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "source": self.source.value,
            "cached": self.cached,
            "metadata": self.metadata,
        }


class ResponseGenerator:
    """
    Produces assistant replies.

    Flow:
    1. Cache lookup (hit returns immediately, providers untouched)
    2. Each configured provider in order, bounded by a timeout
    3. Validation of provider output; first valid reply wins and is cached
    4. Rule-based synthesizer when nothing usable came back
    """

    CACHE_TYPE = "response"

    def __init__(
        self,
        providers: Optional[List[ProviderClient]] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        validator: Optional[ResponseValidator] = None,
        cache: Optional[ResponseCache] = None,
        synthesizer: Optional[RuleBasedSynthesizer] = None,
        classifier: Optional[IntentClassifier] = None,
        use_llm: bool = True,
        timeout_seconds: float = 10.0,
        bot_name: str = "Ofie Assistant",
    ):
        self.providers = list(providers or [])
        self.prompt_builder = prompt_builder or PromptBuilder(bot_name=bot_name)
        self.validator = validator or ResponseValidator()
        self.cache = cache or ResponseCache()
        self.synthesizer = synthesizer or RuleBasedSynthesizer(bot_name=bot_name)
        self.classifier = classifier or IntentClassifier()
        self.sentiment = SentimentAnalyzer()
        self.use_llm = use_llm
        self.timeout_seconds = timeout_seconds

        logger.info(
            f"ResponseGenerator initialized: providers="
            f"{[p.kind.value for p in self.providers]}, use_llm={use_llm}"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        providers: Optional[List[ProviderClient]] = None,
        classifier: Optional[IntentClassifier] = None,
    ) -> "ResponseGenerator":
        """Build a generator wired from application settings."""
        if providers is None:
            providers = build_providers(settings) if settings.use_llm else []
        return cls(
            providers=providers,
            prompt_builder=PromptBuilder(
                bot_name=settings.bot_name,
                max_prompt_tokens=settings.max_prompt_tokens,
                max_response_tokens=settings.max_response_tokens,
                temperature=settings.llm_temperature,
                token_estimator=TokenEstimator(settings.token_estimator),
            ),
            validator=ResponseValidator(
                min_length=settings.response_min_length,
                max_length=settings.response_max_length,
            ),
            cache=ResponseCache(ttl_seconds=settings.response_cache_ttl_seconds),
            synthesizer=RuleBasedSynthesizer(bot_name=settings.bot_name),
            classifier=classifier,
            use_llm=settings.use_llm,
            timeout_seconds=settings.provider_timeout_seconds,
            bot_name=settings.bot_name,
        )

    async def generate(
        self,
        user: UserRecord,
        query: str,
        conversation: ConversationRecord,
        context: ConversationContext,
        intent: Optional[IntentResult] = None,
    ) -> GeneratedReply:
        """
        Generate a reply to a user message.

        Args:
            user: Author of the message
            query: Message text
            conversation: Conversation the message belongs to
            context: Context built for this request
            intent: Classification of the message; computed when omitted

        Returns:
            GeneratedReply (never raises on provider failure)
        """
        start = time.time()

        key = self.cache.make_key(user.id, query, conversation.id)
        cached = self.cache.get(key)
        if cached is not None:
            record_cache_hit(self.CACHE_TYPE)
            record_reply_source("cached")
            logger.info(f"Cache hit for conversation {conversation.id}")
            return replace(cached, cached=True, metadata=dict(cached.metadata))
        record_cache_miss(self.CACHE_TYPE)

        if intent is None:
            intent = self.classifier.classify(query, context)

        base_metadata = {
            "intent": intent.label,
            "confidence": intent.confidence,
            "entities": jsonable_entities(intent.entities),
        }

        if self.use_llm and self.providers:
            reply = await self._try_providers(query, context, intent, conversation.id)
            if reply is not None:
                text, provider = reply
                generated = GeneratedReply(
                    text=text,
                    source=ReplySource.GENERATED,
                    metadata={
                        **base_metadata,
                        "source": ReplySource.GENERATED.value,
                        "provider": provider.kind.value,
                        "model": provider.model_id,
                        "generation_time": round(time.time() - start, 3),
                    },
                )
                self.cache.set(key, generated)
                record_reply_source(ReplySource.GENERATED.value)
                return generated

        text = self.synthesizer.synthesize(
            intent.label, intent.entities, context, sentiment=self.sentiment.classify(query)
        )
        record_reply_source(ReplySource.FALLBACK.value)
        return GeneratedReply(
            text=text,
            source=ReplySource.FALLBACK,
            metadata={
                **base_metadata,
                "source": ReplySource.FALLBACK.value,
                "generation_time": round(time.time() - start, 3),
            },
        )

    async def _try_providers(
        self,
        query: str,
        context: ConversationContext,
        intent: IntentResult,
        conversation_id: str,
    ) -> Optional[tuple]:
        """Return (text, provider) from the first provider with valid output."""
        try:
            prompt = self.prompt_builder.build(query, context, intent.label, jsonable_entities(intent.entities))
        except Exception as e:
            logger.error(f"Prompt build failed for conversation {conversation_id}: {e}", exc_info=True)
            return None

        for provider in self.providers:
            name = provider.kind.value
            started = time.time()
            try:
                raw = await asyncio.wait_for(
                    asyncio.to_thread(invoke, provider, prompt),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Provider {name} timed out after {self.timeout_seconds}s "
                    f"(conversation {conversation_id})"
                )
                record_provider_failure(name, "timeout")
                continue
            except Exception as e:
                logger.warning(f"Provider {name} failed (conversation {conversation_id}): {e}")
                record_provider_failure(name, "error")
                continue
            finally:
                record_llm_latency(name, time.time() - started)

            result = self.validator.verify(raw)
            if not result.passed:
                logger.warning(
                    f"Provider {name} output rejected (conversation {conversation_id}): {result.flags}"
                )
                record_provider_failure(name, "invalid")
                continue

            return result.sanitized_response, provider

        return None
