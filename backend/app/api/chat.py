"""Chat completion API endpoint"""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.models.chat import ChatRequest
from app.services.completion_gateway import CompletionGateway, get_completion_gateway
from app.utils.auth import get_current_user_id
from app.utils.logger import get_logger

logger = get_logger()
router = APIRouter()


@router.post("/chat")
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    gateway: CompletionGateway = Depends(get_completion_gateway),
) -> StreamingResponse:
    """Stream a plain-text completion; provider failures degrade to a placeholder reply"""
    logger.info(f"Chat completion for user {user_id}: {len(request.messages)} messages, model {request.model}")

    return StreamingResponse(
        gateway.complete(request.messages, request.model),
        media_type="text/plain; charset=utf-8"
    )
