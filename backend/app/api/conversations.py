"""Conversation and message API endpoints"""

from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict

from app.models.chat import (
    DEFAULT_TITLE,
    AddMessageRequest,
    Conversation,
    CreateConversationRequest,
    EditMessageRequest,
    Message,
    MessageNotFound,
    UpdateConversationRequest,
    new_id,
)
from app.services.conversation_store import ConversationRepo, get_conversation_repo
from app.services.database import StoreUnavailable
from app.utils.auth import get_current_user_id
from app.utils.config_loader import get_config
from app.utils.logger import get_logger

logger = get_logger()
router = APIRouter()

LOCAL_ID_PREFIX = "local-"


def _offline_response(**extra: Any) -> Dict[str, Any]:
    return {"success": False, "offline": True, "error": "Conversation store unavailable", **extra}


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Conversation not found")


@router.get("/conversations")
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    """List the user's conversations, most recently updated first"""
    try:
        conversations = await repo.list_for_user(user_id)
    except StoreUnavailable:
        logger.warning("Listing conversations while offline, returning empty list")
        return {"success": True, "conversations": [], "offline": True}

    return {"success": True, "conversations": [c.to_api() for c in conversations]}


@router.post("/conversations", status_code=201)
async def create_conversation(
    request: CreateConversationRequest,
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    """Create a conversation; falls back to an unsaved local one when the store is down"""
    conversation = Conversation(
        user_id=user_id,
        title=request.title.strip() or DEFAULT_TITLE,
        model=request.model or get_config().get('llm.default_model', 'llama3-8b'),
        messages=[m.model_copy(update={"id": new_id()}) for m in request.messages],
    )

    try:
        saved = await repo.create(conversation)
    except StoreUnavailable:
        conversation.id = f"{LOCAL_ID_PREFIX}{new_id()}"
        logger.warning(f"Store offline, returning local conversation {conversation.id}")
        return {
            "success": True,
            "offline": True,
            "conversation": {**conversation.to_api(), "local": True, "offline": True},
        }

    logger.info(f"Conversation created: {saved.id}")
    return {"success": True, "conversation": saved.to_api()}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    try:
        conversation = await repo.get(user_id, conversation_id)
    except StoreUnavailable:
        return _offline_response(conversation=None)

    if conversation is None:
        raise _not_found()
    return {"success": True, "conversation": conversation.to_api()}


@router.put("/conversations/{conversation_id}")
async def rename_conversation(
    conversation_id: str,
    request: UpdateConversationRequest,
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    title = request.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")

    try:
        conversation = await repo.rename(user_id, conversation_id, title)
    except StoreUnavailable:
        return _offline_response()

    if conversation is None:
        raise _not_found()
    return {"success": True, "conversation": conversation.to_api()}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    try:
        deleted = await repo.delete(user_id, conversation_id)
    except StoreUnavailable:
        return _offline_response()

    if not deleted:
        raise _not_found()

    logger.info(f"Conversation deleted: {conversation_id}")
    return {"success": True, "message": "Conversation deleted successfully"}


@router.post("/conversations/{conversation_id}/messages")
async def add_message(
    conversation_id: str,
    request: AddMessageRequest,
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    """Append a message and return the full updated conversation"""
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="Content and role are required")

    message = Message(role=request.role, content=request.content, attachments=request.attachments)
    try:
        conversation = await repo.append_message(user_id, conversation_id, message)
    except StoreUnavailable:
        return _offline_response()

    if conversation is None:
        raise _not_found()
    return {"success": True, "conversation": conversation.to_api()}


@router.put("/conversations/{conversation_id}/messages")
async def edit_message(
    conversation_id: str,
    request: EditMessageRequest,
    user_id: str = Depends(get_current_user_id),
    repo: ConversationRepo = Depends(get_conversation_repo),
) -> Dict[str, Any]:
    """Edit a message; every message after it is discarded"""
    try:
        conversation = await repo.edit_message(user_id, conversation_id, request.message_id, request.new_content)
    except StoreUnavailable:
        return _offline_response()
    except MessageNotFound:
        raise HTTPException(status_code=404, detail="Message not found")

    if conversation is None:
        raise _not_found()
    return {"success": True, "conversation": conversation.to_api()}
