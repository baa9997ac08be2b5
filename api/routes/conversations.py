"""
Conversation API Routes for Ofie Assistant.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel, Field, field_validator

from ..services import get_services
from conversation.models import ConversationRecord
from jobs.followup import FollowupKind
from jobs.response_job import RESPONSE_TASK

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class SendMessageRequest(BaseModel):
    sender_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=5000)
    message_type: str = "text"

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message content must not be blank")
        return value


class SendMessageResponse(BaseModel):
    message: Dict[str, Any]
    response_queued: bool


class MessageList(BaseModel):
    conversation_id: str
    messages: List[Dict[str, Any]]
    count: int


class ScheduleFollowupRequest(BaseModel):
    kind: FollowupKind
    delay_minutes: Optional[int] = Field(default=None, ge=0)


# ── Helpers ───────────────────────────────────────────────────────

async def _get_conversation(conversation_id: str) -> ConversationRecord:
    conversation = await get_services().store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def _is_assistant_conversation(conversation: ConversationRecord) -> bool:
    return conversation.has_participant(get_services().settings.bot_user_id)


async def post_user_message(
    conversation: ConversationRecord,
    sender_id: str,
    content: str,
    message_type: str = "text",
) -> Tuple[Dict[str, Any], bool]:
    """
    Persist a participant message, announce it, and queue the reply.

    Returns:
        Serialized message and whether an assistant reply was queued
    """
    services = get_services()
    sender = await services.store.get_user(sender_id)
    message = await services.store.append_message(
        conversation.id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
    )
    await services.connections.broadcast(
        conversation.id, services.adapter.new_message_event(conversation, message, sender)
    )

    queued = False
    if _is_assistant_conversation(conversation) and sender_id != services.settings.bot_user_id:
        services.queue.enqueue(
            RESPONSE_TASK, {"conversation_id": conversation.id, "message_id": message.id}
        )
        queued = True
        logger.debug(f"Reply queued for message {message.id}")

    return services.adapter.serialize_message(message, sender), queued


# ── Endpoints ─────────────────────────────────────────────────────

@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=SendMessageResponse,
    status_code=202,
)
async def send_message(conversation_id: str, request: SendMessageRequest):
    """
    Store a user message and queue the assistant's reply.

    The reply is produced in the background and delivered on the
    conversation's WebSocket channel.
    """
    conversation = await _get_conversation(conversation_id)
    if not conversation.has_participant(request.sender_id):
        raise HTTPException(status_code=403, detail="Sender is not part of this conversation")

    message, queued = await post_user_message(
        conversation, request.sender_id, request.content, request.message_type
    )
    return SendMessageResponse(message=message, response_queued=queued)


@router.get("/conversations/{conversation_id}/messages", response_model=MessageList)
async def list_messages(
    conversation_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
):
    """Get conversation history, oldest first."""
    services = get_services()
    conversation = await _get_conversation(conversation_id)
    messages = await services.store.list_messages(conversation.id, limit=limit)

    senders = {}
    for m in messages:
        if m.sender_id not in senders:
            senders[m.sender_id] = await services.store.get_user(m.sender_id)

    return MessageList(
        conversation_id=conversation.id,
        messages=[services.adapter.serialize_message(m, senders[m.sender_id]) for m in messages],
        count=len(messages),
    )


@router.post("/conversations/{conversation_id}/welcome", status_code=201)
async def send_welcome(conversation_id: str):
    """Post the assistant's role-specific welcome message."""
    services = get_services()
    conversation = await _get_conversation(conversation_id)
    if not _is_assistant_conversation(conversation):
        raise HTTPException(status_code=400, detail="Conversation is not with the assistant")

    bot_id = services.settings.bot_user_id
    user = await services.store.get_user(conversation.other_participant(bot_id))
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    context = await services.aggregator.build(user, conversation)
    content = services.generator.synthesizer.synthesize("greeting", {}, context)
    message = await services.store.append_message(
        conversation.id,
        sender_id=bot_id,
        content=content,
        metadata={"type": "welcome_message", "intent": "greeting"},
    )
    await services.connections.broadcast(
        conversation.id, services.adapter.new_message_event(conversation, message)
    )
    return {"message": services.adapter.serialize_message(message)}


@router.get("/conversations/{conversation_id}/handoff")
async def get_handoff_signal(conversation_id: str):
    """Current human-handoff signal for a conversation."""
    services = get_services()
    conversation = await _get_conversation(conversation_id)
    signal = await services.analyzer.handoff_signal(conversation)
    session = services.handoff_manager.get_session(conversation.id)
    return {
        "conversation_id": conversation.id,
        **signal.to_dict(),
        "active_session": session.to_dict() if session else None,
    }


@router.get("/conversations/{conversation_id}/insights")
async def get_insights(conversation_id: str):
    """Conversation statistics, sentiment and confidence trends."""
    services = get_services()
    conversation = await _get_conversation(conversation_id)
    insights = await services.analyzer.insights(conversation)
    sentiment = await services.analyzer.sentiment_trend(conversation)
    confidence = await services.analyzer.confidence_trend(conversation)
    return {
        "insights": insights.to_dict(),
        "sentiment_trend": sentiment.to_dict(),
        "confidence_trend": [p.to_dict() for p in confidence],
        "engagement_score": insights.engagement_score,
    }


@router.get("/conversations/{conversation_id}/export")
async def export_conversation(
    conversation_id: str,
    format: str = Query(default="json"),
):
    """Download a conversation as json, csv or txt."""
    services = get_services()
    conversation = await _get_conversation(conversation_id)
    try:
        content, media_type = await services.exporter.export(conversation, format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    filename = f"conversation_{conversation.id}.{format.lower()}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/conversations/{conversation_id}/followups", status_code=202)
async def schedule_followup(conversation_id: str, request: ScheduleFollowupRequest):
    """Schedule a follow-up message of a given kind."""
    services = get_services()
    conversation = await _get_conversation(conversation_id)
    if not _is_assistant_conversation(conversation):
        raise HTTPException(status_code=400, detail="Conversation is not with the assistant")

    delay = timedelta(minutes=request.delay_minutes) if request.delay_minutes is not None else None
    task = services.scheduler.schedule(conversation.id, request.kind, delay=delay)
    return {"status": "scheduled", "task": task.to_dict()}
