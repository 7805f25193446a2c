"""Client-side conversation state with optimistic sync against the API"""

from app.client.api_client import ApiError, ChatApiClient
from app.client.chat_state import ChatState, ClientConversation, SyncState

__all__ = ["ApiError", "ChatApiClient", "ChatState", "ClientConversation", "SyncState"]
