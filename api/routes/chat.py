"""
Chat API Routes for the Insurance Sales Assistant.
"""

import logging
from typing import List, Dict, Any, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    user_id: str = Field(..., min_length=1, max_length=128)
    context_hints: Optional[Dict[str, Any]] = None


class ChatResponse(BaseModel):
    user_id: str
    kind: str
    message: str
    confidence: float
    next_state: str
    recommendations: List[Dict[str, Any]] = []
    payload: Dict[str, Any] = {}
    lead_analysis: Optional[Dict[str, Any]] = None
    lead_id: Optional[str] = None
    delivery: Optional[Dict[str, Any]] = None
    processing_time_ms: float
    timestamp: str


class ConversationHistoryItem(BaseModel):
    role: str
    content: str
    timestamp: str


class ConversationHistory(BaseModel):
    user_id: str
    messages: List[ConversationHistoryItem]
    turn_count: int
    state: Optional[str] = None
    profile: Dict[str, Any] = {}


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, background_tasks: BackgroundTasks):
    """
    Process a chat message through the conversation pipeline.

    1. Analyze the customer  2. Quote, follow up or answer from knowledge
    3. Score for lead capture  4. Deliver and return the reply
    """
    services = get_services()
    if not services.is_ready:
        raise HTTPException(status_code=503, detail="Assistant is not ready")

    result = await services.orchestrator.process_message(
        request.message, request.user_id, request.context_hints
    )

    background_tasks.add_task(
        _log_chat_analytics,
        request.user_id,
        request.message,
        result.payload.kind.value,
        result.lead_analysis.get("score") if result.lead_analysis else None,
        result.lead_id,
    )

    return ChatResponse(**result.to_dict())


@router.get("/chat/stats")
async def get_chat_stats():
    """Get chat statistics."""
    services = get_services()
    if services.is_ready:
        return services.conversation_store.stats()
    return {"total_conversations": 0, "total_messages": 0, "profiles": 0}


@router.get("/chat/{user_id}/history", response_model=ConversationHistory)
async def get_conversation_history(user_id: str):
    """Get conversation history."""
    services = get_services()
    if not services.is_ready:
        raise HTTPException(status_code=404, detail="Conversation not found")

    store = services.conversation_store
    messages = await store.history(user_id)
    if not messages:
        raise HTTPException(status_code=404, detail="Conversation not found")

    profile = await store.get_profile(user_id)
    return ConversationHistory(
        user_id=user_id,
        messages=[ConversationHistoryItem(**m.to_dict()) for m in messages],
        turn_count=len([m for m in messages if m.role == "user"]),
        state=await store.get_state(user_id),
        profile=profile.to_dict(),
    )


@router.delete("/chat/{user_id}")
async def clear_conversation(user_id: str):
    """Clear a conversation."""
    services = get_services()
    if services.is_ready:
        await services.conversation_store.clear(user_id)
        return {"message": "Conversation cleared", "user_id": user_id}
    raise HTTPException(status_code=404, detail="Conversation not found")


def _log_chat_analytics(
    user_id: str,
    message: str,
    kind: str,
    lead_score: Optional[float],
    lead_id: Optional[str]
):
    """Log chat analytics (background task)."""
    logger.info(
        "Chat analytics",
        extra={
            "user_id": user_id,
            "message_length": len(message),
            "response_kind": kind,
            "lead_score": lead_score,
            "lead_captured": lead_id is not None,
        },
    )
