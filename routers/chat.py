"""
Router for AI tutoring chat.
"""
import uuid

from fastapi import APIRouter, Depends

from core.access_control import AccessContext, require_ai_chat_access
from core.logging import get_logger
from core.rate_limiting import rate_limit, validate_text_input
from schemas.practice import ChatRequest, ChatResponse
from services.practice_service import ChatService, get_chat_service

router = APIRouter(prefix="/chat", tags=["Chat"])

logger = get_logger("chat")


@router.post("/explain", response_model=ChatResponse, dependencies=[Depends(rate_limit("ai_generation"))])
async def explain(
    request: ChatRequest,
    access: AccessContext = Depends(require_ai_chat_access),
    chat: ChatService = Depends(get_chat_service),
):
    """Ask the AI tutor about a question. Counts one daily AI chat on success."""
    validate_text_input(request.message, max_length=2000)

    reply = await chat.explain(request)
    await access.record_usage()

    remaining = None
    if access.quota is not None and access.quota.remaining is not None:
        remaining = max(0, access.quota.remaining - 1)

    return ChatResponse(
        session_id=request.session_id or str(uuid.uuid4()),
        reply=reply,
        remaining=remaining,
    )
