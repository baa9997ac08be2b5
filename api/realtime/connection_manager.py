"""
WebSocket Connection Manager for Ofie Assistant.

Tracks active WebSocket connections per conversation and pushes
channel events to them.
"""

import logging
from typing import Dict, List

from fastapi import WebSocket

from delivery.events import Event

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages active WebSocket connections by conversation_id."""

    def __init__(self):
        self._connections: Dict[str, List[WebSocket]] = {}
        self.sent_events = 0

    async def connect(self, websocket: WebSocket, conversation_id: str):
        """Accept and register a WebSocket connection."""
        await websocket.accept()
        self._connections.setdefault(conversation_id, []).append(websocket)
        logger.info(f"WS connected: {conversation_id} (total: {self.active_count})")

    def disconnect(self, websocket: WebSocket, conversation_id: str):
        """Remove a WebSocket connection."""
        if conversation_id in self._connections:
            self._connections[conversation_id] = [
                ws for ws in self._connections[conversation_id] if ws != websocket
            ]
            if not self._connections[conversation_id]:
                del self._connections[conversation_id]
        logger.info(f"WS disconnected: {conversation_id}")

    async def send_message(self, conversation_id: str, message: dict):
        """Send a JSON message to all connections for a conversation."""
        connections = list(self._connections.get(conversation_id, []))
        dead = []
        for ws in connections:
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.debug(f"WS send failed on {conversation_id}: {e}")
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws, conversation_id)

    async def broadcast(self, conversation_id: str, event: Event):
        """Push an event onto a conversation channel."""
        self.sent_events += 1
        await self.send_message(conversation_id, event.to_dict())

    @property
    def active_count(self) -> int:
        return sum(len(conns) for conns in self._connections.values())

    def is_connected(self, conversation_id: str) -> bool:
        return bool(self._connections.get(conversation_id))
