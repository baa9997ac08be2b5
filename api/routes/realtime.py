"""
Real-time conversation channel (WebSocket) for Ofie Assistant.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services import get_services
from .conversations import post_user_message

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_channel(websocket: WebSocket, conversation_id: str):
    """
    WebSocket endpoint for one conversation channel.

    Receives:
        {"action": "send_message", "sender_id": "...", "content": "..."}
        {"action": "typing", "sender_id": "...", "is_typing": true}
    Sends: channel events, {"type": ..., "data": {...}}
    """
    services = get_services()
    conversation = await services.store.get_conversation(conversation_id)
    if conversation is None:
        await websocket.close(code=4404)
        return

    await services.connections.connect(websocket, conversation_id)
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "data": {"message": "Invalid JSON"}})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "data": {"message": "Expected a JSON object"}})
                continue

            action = data.get("action")
            sender_id = data.get("sender_id", "")

            if not conversation.has_participant(sender_id):
                await websocket.send_json({"type": "error", "data": {"message": "Unknown sender"}})
                continue

            if action == "send_message":
                content = (data.get("content") or "").strip()
                if not content:
                    await websocket.send_json({"type": "error", "data": {"message": "Empty message"}})
                    continue
                await post_user_message(
                    conversation, sender_id, content, data.get("message_type", "text")
                )

            elif action == "typing":
                sender = await services.store.get_user(sender_id)
                if sender is None:
                    continue
                await services.connections.broadcast(
                    conversation_id,
                    services.adapter.typing_indicator(
                        conversation, bool(data.get("is_typing", True)), user=sender
                    ),
                )

            else:
                await websocket.send_json({"type": "error", "data": {"message": f"Unknown action: {action}"}})

    except WebSocketDisconnect:
        logger.debug(f"Client left conversation channel {conversation_id}")
    finally:
        services.connections.disconnect(websocket, conversation_id)
