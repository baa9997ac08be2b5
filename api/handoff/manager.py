"""
Human Handoff Manager for Ofie Assistant.

Tracks conversations that were escalated to the support team, assigns
agents round-robin, and resolves sessions when an agent is done.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from conversation.engagement import HandoffSignal
from conversation.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class HandoffSession:
    """Active handoff session."""
    conversation_id: str
    reasons: List[str]
    score: float
    assigned_agent_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "reasons": self.reasons,
            "score": self.score,
            "assigned_agent_id": self.assigned_agent_id,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "notes": self.notes,
        }


class HandoffManager:
    """
    Manages human handoff sessions.

    The decision to hand off comes from the engagement analyzer; this
    class only records who is handling the conversation.
    """

    def __init__(self, agent_ids: Optional[List[str]] = None):
        self._active_sessions: Dict[str, HandoffSession] = {}
        self._agent_queue: List[str] = list(agent_ids or [])
        self._agent_index = 0

    def initiate_handoff(self, conversation_id: str, signal: HandoffSignal) -> HandoffSession:
        """Create a handoff session and assign an agent."""
        existing = self._active_sessions.get(conversation_id)
        if existing:
            return existing

        agent_id = self._assign_agent()
        session = HandoffSession(
            conversation_id=conversation_id,
            reasons=sorted(r.value for r in signal.reasons),
            score=signal.score,
            assigned_agent_id=agent_id,
        )
        self._active_sessions[conversation_id] = session
        logger.info(
            f"Handoff initiated: {conversation_id} -> agent {agent_id} "
            f"({', '.join(session.reasons)}, score {session.score})"
        )
        return session

    def resolve_handoff(self, conversation_id: str, notes: str = "") -> Optional[HandoffSession]:
        """Resolve a handoff session (agent marks it done)."""
        session = self._active_sessions.pop(conversation_id, None)
        if session:
            session.resolved_at = utcnow()
            session.notes = notes
            logger.info(f"Handoff resolved: {conversation_id}")
        return session

    def is_in_handoff(self, conversation_id: str) -> bool:
        return conversation_id in self._active_sessions

    def get_session(self, conversation_id: str) -> Optional[HandoffSession]:
        return self._active_sessions.get(conversation_id)

    def set_agents(self, agent_ids: List[str]):
        """Set available agent IDs for round-robin assignment."""
        self._agent_queue = list(agent_ids)

    def _assign_agent(self) -> Optional[str]:
        """Round-robin agent assignment."""
        if not self._agent_queue:
            return None
        agent = self._agent_queue[self._agent_index % len(self._agent_queue)]
        self._agent_index += 1
        return agent

    def get_active_sessions(self) -> List[HandoffSession]:
        return list(self._active_sessions.values())
