"""
Service initialization and dependency injection for Ofie Assistant API.

Creates and manages all service instances used by the API and the
background workers.
"""

import logging
from typing import List, Optional

from api.handoff.manager import HandoffManager
from api.realtime.connection_manager import ConnectionManager
from config.settings import Settings, get_settings
from conversation.context_builder import ContextAggregator
from conversation.engagement import EngagementAnalyzer, HandoffPolicy
from conversation.export import ConversationExporter
from conversation.models import UserRecord
from conversation.store import ConversationStore, InMemoryConversationStore
from delivery.adapter import DeliveryAdapter
from jobs.followup import FOLLOWUP_TASK, FollowupScheduler, FollowupWorker
from jobs.queue import TaskQueue
from jobs.response_job import RESPONSE_TASK, ResponsePipeline
from llm.generator import ResponseGenerator
from llm.providers import ProviderClient
from nlp.intent_classifier import IntentClassifier

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.store: Optional[ConversationStore] = None
        self.aggregator: Optional[ContextAggregator] = None
        self.classifier: Optional[IntentClassifier] = None
        self.generator: Optional[ResponseGenerator] = None
        self.analyzer: Optional[EngagementAnalyzer] = None
        self.exporter: Optional[ConversationExporter] = None
        self.adapter: Optional[DeliveryAdapter] = None
        self.connections: Optional[ConnectionManager] = None
        self.handoff_manager: Optional[HandoffManager] = None
        self.queue: Optional[TaskQueue] = None
        self.scheduler: Optional[FollowupScheduler] = None
        self.followup_worker: Optional[FollowupWorker] = None
        self.pipeline: Optional[ResponsePipeline] = None
        self._initialized = False

    def initialize(
        self,
        store: Optional[ConversationStore] = None,
        providers: Optional[List[ProviderClient]] = None,
        force: bool = False,
    ):
        """
        Initialize all services.

        Args:
            store: Conversation store (in-memory when omitted)
            providers: Provider clients (built from settings when omitted)
            force: Rebuild even if already initialized
        """
        if self._initialized and not force:
            return

        s = self.settings = get_settings()
        logger.info(f"Initializing services with providers: {s.configured_providers or 'none'}")

        self.store = store or InMemoryConversationStore()
        self.classifier = IntentClassifier()
        self.aggregator = ContextAggregator(
            self.store, s.bot_user_id, s.bot_name, max_turns=s.max_history_turns
        )
        self.generator = ResponseGenerator.from_settings(
            s, providers=providers, classifier=self.classifier
        )
        self.analyzer = EngagementAnalyzer(
            self.store, s.bot_user_id, policy=HandoffPolicy.from_settings(s)
        )
        self.exporter = ConversationExporter(self.store, s.bot_user_id, s.bot_name)
        self.adapter = DeliveryAdapter(s.bot_user_id, s.bot_name)
        self.connections = ConnectionManager()
        self.handoff_manager = HandoffManager()

        self.queue = TaskQueue(concurrency=s.worker_concurrency)
        self.scheduler = FollowupScheduler.from_settings(s, self.queue)
        self.followup_worker = FollowupWorker(
            self.store, self.adapter, self.connections, s.bot_user_id
        )
        self.pipeline = ResponsePipeline(
            store=self.store,
            aggregator=self.aggregator,
            classifier=self.classifier,
            generator=self.generator,
            analyzer=self.analyzer,
            scheduler=self.scheduler,
            adapter=self.adapter,
            broadcaster=self.connections,
            bot_user_id=s.bot_user_id,
            handoff_manager=self.handoff_manager,
            typing_delay_cap=s.typing_delay_cap_seconds,
        )
        self.queue.register(RESPONSE_TASK, self.pipeline.run)
        self.queue.register(FOLLOWUP_TASK, self.followup_worker.run)

        self._initialized = True
        logger.info("All services initialized successfully")

    async def ensure_bot_user(self):
        """Make sure the assistant identity exists in the store."""
        s = self.settings
        if await self.store.get_user(s.bot_user_id) is None:
            await self.store.add_user(UserRecord(
                id=s.bot_user_id, name=s.bot_name, role="bot", email=s.bot_email,
            ))
            logger.info(f"Assistant user created: {s.bot_user_id}")

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.pipeline is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "store": type(self.store).__name__ if self.store else None,
            "providers": [p.kind.value for p in self.generator.providers] if self.generator else [],
            "queue_running": bool(self.queue and self.queue.is_running),
            "pending_tasks": len(self.queue) if self.queue else 0,
            "websocket_connections": self.connections.active_count if self.connections else 0,
            "active_handoffs": len(self.handoff_manager.get_active_sessions()) if self.handoff_manager else 0,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services(
    store: Optional[ConversationStore] = None,
    providers: Optional[List[ProviderClient]] = None,
    force: bool = False,
):
    """Initialize all services (called at startup)."""
    _services.initialize(store=store, providers=providers, force=force)
