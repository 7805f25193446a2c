"""Conversation persistence"""

from typing import List, Optional

import asyncpg
from fastapi import Depends

from app.models.chat import Conversation, Message
from app.services.database import ConnectionManager, get_connection_manager

LIST_LIMIT = 50


def _row_to_conversation(row: asyncpg.Record) -> Conversation:
    """Convert a database row to a Conversation model"""
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        model=row["model"],
        messages=[Message.model_validate(m) for m in row["messages"] or []],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _dump_messages(messages: List[Message]) -> list:
    return [m.model_dump(mode="json") for m in messages]


class ConversationRepo:
    """All conversation-related database operations, scoped to the owning user"""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def list_for_user(self, user_id: str) -> List[Conversation]:
        """Most recently updated conversations first"""
        async with self.manager.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM conversations
                WHERE user_id = $1
                ORDER BY updated_at DESC
                LIMIT $2
                """,
                user_id,
                LIST_LIMIT,
            )
            return [_row_to_conversation(row) for row in rows]

    async def get(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )
            return _row_to_conversation(row) if row else None

    async def create(self, conversation: Conversation) -> Conversation:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO conversations (id, user_id, title, model, messages, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
                """,
                conversation.id,
                conversation.user_id,
                conversation.title,
                conversation.model,
                _dump_messages(conversation.messages),
                conversation.created_at,
                conversation.updated_at,
            )
            return _row_to_conversation(row)

    async def rename(self, user_id: str, conversation_id: str, title: str) -> Optional[Conversation]:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE conversations
                SET title = $3, updated_at = now()
                WHERE id = $1 AND user_id = $2
                RETURNING *
                """,
                conversation_id,
                user_id,
                title,
            )
            return _row_to_conversation(row) if row else None

    async def delete(self, user_id: str, conversation_id: str) -> bool:
        """True if a conversation owned by the user was deleted"""
        async with self.manager.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )
            return result == "DELETE 1"

    async def append_message(self, user_id: str, conversation_id: str, message: Message) -> Optional[Conversation]:
        """Append a message; returns the updated conversation or None if not found"""
        async with self.manager.acquire() as conn:
            conversation = await self._lock_row(conn, user_id, conversation_id)
            if conversation is None:
                return None
            conversation.append_message(message)
            return await self._save_messages(conn, conversation)

    async def edit_message(
        self, user_id: str, conversation_id: str, message_id: str, new_content: str
    ) -> Optional[Conversation]:
        """
        Edit a message and truncate the thread after it.

        Raises:
            MessageNotFound: if the conversation exists but has no such message
        """
        async with self.manager.acquire() as conn:
            conversation = await self._lock_row(conn, user_id, conversation_id)
            if conversation is None:
                return None
            conversation.edit_message(message_id, new_content)
            return await self._save_messages(conn, conversation)

    async def _lock_row(self, conn, user_id: str, conversation_id: str) -> Optional[Conversation]:
        row = await conn.fetchrow(
            "SELECT * FROM conversations WHERE id = $1 AND user_id = $2 FOR UPDATE",
            conversation_id,
            user_id,
        )
        return _row_to_conversation(row) if row else None

    async def _save_messages(self, conn, conversation: Conversation) -> Conversation:
        row = await conn.fetchrow(
            """
            UPDATE conversations
            SET messages = $2, title = $3, updated_at = $4
            WHERE id = $1
            RETURNING *
            """,
            conversation.id,
            _dump_messages(conversation.messages),
            conversation.title,
            conversation.updated_at,
        )
        return _row_to_conversation(row)


def get_conversation_repo(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> ConversationRepo:
    return ConversationRepo(manager)
