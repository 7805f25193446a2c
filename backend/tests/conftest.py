"""
Pytest configuration and fixtures for Chat Clone tests.
"""

import os
from pathlib import Path

# Set test environment variables before importing the app
os.environ["CHAT_CLONE_CONFIG"] = str(Path(__file__).parent / "config.test.toml")
os.environ["SESSION_SECRET"] = "test-secret"
for _var in (
    "DATABASE_URL", "GROQ_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY",
    "CDN_ENDPOINT", "CDN_ACCESS_KEY", "CDN_SECRET_KEY", "CDN_PUBLIC_URL",
):
    os.environ.pop(_var, None)

from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from app.main import app
from app.models.chat import Conversation, Message
from app.models.config import DatabaseConfig, LLMConfig
from app.models.file import FileRecord, ProcessingStatus
from app.services.completion_gateway import CompletionGateway, get_completion_gateway
from app.services.conversation_store import get_conversation_repo
from app.services.database import ConnectionManager, get_connection_manager
from app.services.file_store import get_file_repo
from app.utils.auth import create_session_token

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class InMemoryConversationRepo:
    """Stands in for ConversationRepo with the same methods and ownership rules"""

    def __init__(self):
        self.rows: Dict[str, Conversation] = {}

    def _owned(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        conversation = self.rows.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            return None
        return conversation

    async def list_for_user(self, user_id: str) -> List[Conversation]:
        owned = [c for c in self.rows.values() if c.user_id == user_id]
        owned.sort(key=lambda c: c.updated_at, reverse=True)
        return [c.model_copy(deep=True) for c in owned[:50]]

    async def get(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        conversation = self._owned(user_id, conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def create(self, conversation: Conversation) -> Conversation:
        self.rows[conversation.id] = conversation.model_copy(deep=True)
        return conversation.model_copy(deep=True)

    async def rename(self, user_id: str, conversation_id: str, title: str) -> Optional[Conversation]:
        conversation = self._owned(user_id, conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        return conversation.model_copy(deep=True)

    async def delete(self, user_id: str, conversation_id: str) -> bool:
        if self._owned(user_id, conversation_id) is None:
            return False
        del self.rows[conversation_id]
        return True

    async def append_message(self, user_id: str, conversation_id: str, message: Message) -> Optional[Conversation]:
        conversation = self._owned(user_id, conversation_id)
        if conversation is None:
            return None
        conversation.append_message(message)
        return conversation.model_copy(deep=True)

    async def edit_message(
        self, user_id: str, conversation_id: str, message_id: str, new_content: str
    ) -> Optional[Conversation]:
        conversation = self._owned(user_id, conversation_id)
        if conversation is None:
            return None
        conversation.edit_message(message_id, new_content)
        return conversation.model_copy(deep=True)


class InMemoryFileRepo:
    """Stands in for FileRepo; terminal updates only apply to records still processing"""

    def __init__(self):
        self.records: Dict[str, FileRecord] = {}

    async def create(self, record: FileRecord) -> FileRecord:
        self.records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def _finish(self, record: FileRecord) -> FileRecord:
        stored = self.records.get(record.id)
        if stored is None or stored.processing_status != ProcessingStatus.PROCESSING:
            return record
        self.records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def mark_completed(self, record: FileRecord) -> FileRecord:
        return await self._finish(record)

    async def mark_failed(self, record: FileRecord) -> FileRecord:
        return await self._finish(record)

    async def get(self, user_id: str, file_id: str) -> Optional[FileRecord]:
        record = self.records.get(file_id)
        if record is None or record.user_id != user_id:
            return None
        return record.model_copy(deep=True)


def auth_headers(user_id: str = USER_ID) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user_id)}"}


@pytest.fixture
def headers():
    return auth_headers()


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def conversation_repo():
    """In-memory conversation store wired into the app"""
    repo = InMemoryConversationRepo()
    app.dependency_overrides[get_conversation_repo] = lambda: repo
    return repo


@pytest.fixture
def file_repo():
    """In-memory file store wired into the app"""
    repo = InMemoryFileRepo()
    app.dependency_overrides[get_file_repo] = lambda: repo
    return repo


@pytest.fixture
def offline_manager():
    """A connection manager with nowhere to connect; the app runs offline against it"""
    manager = ConnectionManager(DatabaseConfig(url=""))
    app.dependency_overrides[get_connection_manager] = lambda: manager
    return manager


@pytest.fixture
def placeholder_gateway():
    """A gateway with no providers, so every completion is the placeholder reply"""
    gateway = CompletionGateway({}, LLMConfig(placeholder_delay=0.0))
    app.dependency_overrides[get_completion_gateway] = lambda: gateway
    return gateway


@pytest_asyncio.fixture
async def async_client():
    """Async HTTP client against the ASGI app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
