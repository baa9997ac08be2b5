"""
Human handoff API routes for Ofie Assistant.
"""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..services import get_services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/handoff", tags=["handoff"])


class HandoffResolveRequest(BaseModel):
    notes: str = ""


@router.get("/active")
async def list_active_handoffs():
    """List all active handoff sessions."""
    services = get_services()
    sessions = services.handoff_manager.get_active_sessions()
    return {"sessions": [s.to_dict() for s in sessions]}


@router.post("/resolve/{conversation_id}")
async def resolve_handoff(conversation_id: str, request: HandoffResolveRequest):
    """Resolve a handoff session (agent marks it done)."""
    services = get_services()
    session = services.handoff_manager.resolve_handoff(conversation_id, request.notes)
    if not session:
        raise HTTPException(status_code=404, detail="No active handoff for this conversation")
    return {"status": "resolved", "conversation_id": conversation_id, "session": session.to_dict()}
