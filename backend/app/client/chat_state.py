"""
Client-side chat state with optimistic sync.

Every user action is applied to the in-memory state first and synchronously,
then persisted. Server replies are merged back only when they carry at least
as many messages as the local copy, so a slow reply cannot erase newer local
messages. An edit is the exception: its reply is the truncated thread and is
adopted as is, and replies to requests that were in flight when the edit was
made are dropped. When persisting fails, new messages are kept and queued for
retry; edits, renames and deletes are rolled back.
"""

import asyncio
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiofiles
from pydantic import Field, PrivateAttr

from app.client.api_client import ApiError, ChatApiClient
from app.models.chat import (
    DEFAULT_TITLE,
    ApiModel,
    AttachmentRef,
    ChatTurn,
    Message,
    apply_message_edit,
    derive_title,
    new_id,
    utcnow,
)
from app.utils.logger import get_logger

logger = get_logger()

TEMP_ID_PREFIX = "temp-"
RETRY_NOTICE = "Message saved locally; will retry when online."


class SyncState(str, Enum):
    NONE = "none"
    LOCAL_ONLY = "local-only"
    SYNCING = "syncing"
    SYNCED = "synced"


class ClientConversation(ApiModel):
    """The client's copy of a conversation"""
    id: str
    title: str = DEFAULT_TITLE
    model: str = "llama3-8b"
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    local: bool = False
    offline: bool = False
    sync_state: SyncState = SyncState.NONE

    _create_task: Optional[asyncio.Task] = PrivateAttr(default=None)
    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)
    # Bumped by every local edit; replies to requests sent before it are stale
    _edit_generation: int = PrivateAttr(default=0)


def _contains(items: list, item: Any) -> bool:
    return any(existing is item for existing in items)


def _message_for_model(message: Message) -> ChatTurn:
    """Inline attachment text so the model sees what was attached"""
    content = message.content
    for attachment in message.attachments:
        if attachment.extracted_text:
            content += f"\n\n[Attachment: {attachment.file_name}]\n{attachment.extracted_text}"
    return ChatTurn(role=message.role, content=content)


class ChatState:
    """Conversation list and current conversation, kept in step with the server"""

    def __init__(self, api: ChatApiClient, default_model: str = "llama3-8b"):
        self.api = api
        self.default_model = default_model
        self.conversations: List[ClientConversation] = []
        self.current: Optional[ClientConversation] = None
        self.pending_messages: List[Tuple[ClientConversation, Message]] = []
        self.notice: Optional[str] = None

    def find(self, conversation_id: str) -> Optional[ClientConversation]:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    def select_conversation(self, conversation_id: str) -> Optional[ClientConversation]:
        conversation = self.find(conversation_id)
        if conversation is not None:
            self.current = conversation
        return conversation

    def create_conversation(self, model: Optional[str] = None) -> "asyncio.Task[ClientConversation]":
        """
        Create a conversation locally and start persisting it.

        The conversation is at the head of the list and current as soon as this
        returns. The returned task resolves once the server has assigned an id
        (or the conversation has been marked local); anything that needs the
        real id awaits it.
        """
        conversation = ClientConversation(
            id=f"{TEMP_ID_PREFIX}{new_id()}",
            model=model or self.default_model,
            sync_state=SyncState.LOCAL_ONLY,
        )
        self.conversations.insert(0, conversation)
        self.current = conversation

        task = asyncio.get_running_loop().create_task(self._persist_new(conversation))
        conversation._create_task = task
        return task

    async def _persist_new(self, conversation: ClientConversation) -> ClientConversation:
        conversation.sync_state = SyncState.SYNCING
        try:
            remote = await self.api.create_conversation(conversation.title, conversation.model)
        except ApiError as e:
            logger.warning(f"Could not create conversation on server, keeping it local: {e}")
            remote = None

        if remote is None or remote.get("local"):
            conversation.local = True
            conversation.offline = remote is not None
            conversation.sync_state = SyncState.LOCAL_ONLY
            return conversation

        # Same object is referenced by the list and by `current`, so this renames it everywhere
        conversation.id = remote["id"]
        conversation.created_at = ClientConversation.model_validate(remote).created_at
        conversation.sync_state = SyncState.SYNCED
        return conversation

    async def _wait_for_create(self, conversation: ClientConversation) -> None:
        task = conversation._create_task
        if task is not None and not task.done():
            await task

    def _merge(self, conversation: ClientConversation, remote: Dict[str, Any]) -> None:
        """Adopt the server's copy unless it has fewer messages than ours"""
        remote_conversation = ClientConversation.model_validate(remote)
        if len(remote_conversation.messages) >= len(conversation.messages):
            conversation.messages = remote_conversation.messages
            conversation.title = remote_conversation.title
            conversation.updated_at = remote_conversation.updated_at
        else:
            logger.debug(
                f"Ignoring stale reply for {conversation.id}: "
                f"{len(remote_conversation.messages)} < {len(conversation.messages)} messages"
            )
        self._settle(conversation)

    def _settle(self, conversation: ClientConversation) -> None:
        if any(c is conversation for c, _ in self.pending_messages):
            conversation.sync_state = SyncState.LOCAL_ONLY
        else:
            conversation.sync_state = SyncState.SYNCED

    async def add_message(
        self,
        content: str,
        role: str = "user",
        attachments: Optional[List[AttachmentRef]] = None
    ) -> Message:
        """
        Append a message and persist it.

        If there is no current conversation one is created first, and the
        message is persisted only after the server has assigned the
        conversation its id. A message that cannot be persisted stays in the
        conversation and is queued for retry_pending().
        """
        if self.current is None:
            self.create_conversation()
        conversation = self.current

        message = Message(
            id=f"{TEMP_ID_PREFIX}{new_id()}",
            role=role,
            content=content,
            attachments=attachments or [],
        )
        conversation.messages.append(message)
        conversation.updated_at = utcnow()
        if role == "user" and sum(1 for m in conversation.messages if m.role == "user") == 1:
            conversation.title = derive_title(content)
        appended_generation = conversation._edit_generation

        await self._wait_for_create(conversation)
        if not conversation.local:
            await self._persist_message(conversation, message, appended_generation)
        return message

    async def _persist_message(
        self,
        conversation: ClientConversation,
        message: Message,
        appended_generation: Optional[int] = None
    ) -> bool:
        async with conversation._lock:
            generation = conversation._edit_generation
            edited_since = appended_generation is not None and appended_generation != generation
            if edited_since and not _contains(conversation.messages, message):
                logger.debug(f"Message {message.id} was edited away before it was sent")
                return False

            conversation.sync_state = SyncState.SYNCING
            try:
                remote = await self.api.add_message(
                    conversation.id, message.content, message.role, message.attachments
                )
            except ApiError as e:
                logger.warning(f"Message not saved to {conversation.id}, will retry: {e}")
                self.pending_messages.append((conversation, message))
                conversation.sync_state = SyncState.LOCAL_ONLY
                self.notice = RETRY_NOTICE
                return False

            if conversation._edit_generation != generation:
                logger.debug(f"Dropping reply for {conversation.id}: an edit was made while it was in flight")
                self._settle(conversation)
            else:
                self._merge(conversation, remote)
            return True

    async def edit_message(self, message_id: str, new_content: str) -> bool:
        """
        Rewrite a message of the current conversation and drop the messages after it.

        Rolled back if the server does not accept the edit.

        Raises:
            MessageNotFound: if the current conversation has no such message
        """
        conversation = self.current
        if conversation is None:
            return False

        before = conversation.messages
        before_updated_at = conversation.updated_at
        conversation.messages = apply_message_edit(before, message_id, new_content)
        conversation.updated_at = utcnow()
        conversation._edit_generation += 1
        generation = conversation._edit_generation
        edited_length = len(conversation.messages)

        await self._wait_for_create(conversation)
        if conversation.local:
            return True

        async with conversation._lock:
            conversation.sync_state = SyncState.SYNCING
            try:
                remote = await self.api.edit_message(conversation.id, message_id, new_content)
            except ApiError as e:
                logger.warning(f"Edit of {message_id} rejected, reverting: {e}")
                if conversation._edit_generation == generation:
                    # Keep anything typed after the edit was applied
                    added_since = conversation.messages[edited_length:]
                    conversation.messages = list(before) + added_since
                    conversation.updated_at = before_updated_at
                self._settle(conversation)
                self.notice = "Edit could not be saved."
                return False

            if conversation._edit_generation == generation:
                # The server's truncated thread wins even though it is shorter
                adopted = ClientConversation.model_validate(remote)
                conversation.messages = adopted.messages + conversation.messages[edited_length:]
                conversation.title = adopted.title
                conversation.updated_at = adopted.updated_at
            self._settle(conversation)
            return True

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation, selecting the next one if it was current; restored on failure"""
        conversation = self.find(conversation_id)
        if conversation is None:
            return False

        before_list = list(self.conversations)
        before_current = self.current
        before_pending = list(self.pending_messages)

        self.conversations.remove(conversation)
        self.pending_messages = [(c, m) for c, m in self.pending_messages if c is not conversation]
        if self.current is conversation:
            self.current = self.conversations[0] if self.conversations else None
        replacement = self.current

        await self._wait_for_create(conversation)
        if conversation.local:
            return True

        try:
            await self.api.delete_conversation(conversation.id)
        except ApiError as e:
            logger.warning(f"Delete of {conversation.id} failed, restoring: {e}")
            created_since = [c for c in self.conversations if not _contains(before_list, c)]
            self.conversations = created_since + before_list
            self.pending_messages = before_pending
            if self.current is replacement:
                self.current = before_current
            self.notice = "Conversation could not be deleted."
            return False

        return True

    async def update_conversation_title(self, conversation_id: str, title: str) -> bool:
        """Rename a conversation; the old title comes back if the server refuses"""
        conversation = self.find(conversation_id)
        if conversation is None:
            return False

        before = conversation.title
        new_title = title.strip() or DEFAULT_TITLE
        conversation.title = new_title

        await self._wait_for_create(conversation)
        if conversation.local:
            return True

        try:
            remote = await self.api.rename_conversation(conversation.id, new_title)
        except ApiError as e:
            logger.warning(f"Rename of {conversation.id} failed, reverting: {e}")
            if conversation.title == new_title:
                conversation.title = before
            self.notice = "Title could not be saved."
            return False

        if conversation.title == new_title:
            conversation.title = remote["title"]
        return True

    async def load_conversations(self) -> List[ClientConversation]:
        """
        Refresh the list from the server.

        Local-only conversations and unsynced messages survive the refresh.
        """
        try:
            remote_list, offline = await self.api.list_conversations()
        except ApiError as e:
            logger.warning(f"Could not load conversations: {e}")
            self.notice = "Working offline."
            return self.conversations

        if offline:
            self.notice = "Working offline."
            return self.conversations

        merged: List[ClientConversation] = []
        for remote in remote_list:
            existing = self.find(remote["id"])
            if existing is not None:
                self._merge(existing, remote)
                merged.append(existing)
            else:
                conversation = ClientConversation.model_validate(remote)
                conversation.sync_state = SyncState.SYNCED
                merged.append(conversation)

        unsaved = [c for c in self.conversations if c.local or c.sync_state == SyncState.SYNCING]
        self.conversations = [c for c in unsaved if not _contains(merged, c)] + merged
        if self.current is not None and not _contains(self.conversations, self.current):
            self.current = None
        self.notice = None
        return self.conversations

    async def retry_pending(self) -> int:
        """
        Push everything the server has not confirmed yet.

        Local-only conversations are created on the server together with their
        messages; queued messages are re-sent. Returns how many items synced.
        """
        synced = 0

        for conversation in [c for c in self.conversations if c.local]:
            await self._wait_for_create(conversation)
            try:
                remote = await self.api.create_conversation(
                    conversation.title, conversation.model, messages=conversation.messages
                )
            except ApiError as e:
                logger.warning(f"Conversation {conversation.id} still local: {e}")
                continue
            if remote.get("local"):
                continue

            conversation.id = remote["id"]
            conversation.local = False
            conversation.offline = False
            self._merge(conversation, remote)
            synced += 1

        pending, self.pending_messages = self.pending_messages, []
        for conversation, message in pending:
            if not _contains(self.conversations, conversation):
                continue
            if await self._persist_message(conversation, message):
                synced += 1

        if not self.pending_messages:
            self.notice = None
        return synced

    async def send(
        self,
        content: str,
        attachments: Optional[List[AttachmentRef]] = None,
        on_chunk: Optional[Callable[[str], None]] = None
    ) -> str:
        """Add a user message, stream the assistant's reply and add that too"""
        await self.add_message(content, "user", attachments)
        conversation = self.current

        turns = [_message_for_model(m) for m in conversation.messages]
        chunks: List[str] = []
        async for chunk in self.api.stream_chat(turns, conversation.model):
            chunks.append(chunk)
            if on_chunk is not None:
                on_chunk(chunk)

        reply = "".join(chunks)
        if reply:
            await self.add_message(reply, "assistant")
        return reply

    async def export_markdown(self, path: str) -> Path:
        """Write the current conversation to a Markdown file"""
        if self.current is None:
            raise ValueError("No conversation to export")

        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
            await f.write(generate_conversation_markdown(self.current))

        logger.info(f"Conversation exported to {file_path}")
        return file_path


def generate_conversation_markdown(conversation: ClientConversation) -> str:
    """Render a conversation as Markdown"""
    lines = [
        f"# {conversation.title}",
        f"**Started**: {conversation.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Model**: {conversation.model}",
        f"**Conversation ID**: {conversation.id}",
        "",
        "---",
        ""
    ]

    for i, msg in enumerate(conversation.messages, 1):
        lines.append(f"## Message {i}")
        label = msg.role.capitalize()
        suffix = " (edited)" if msg.edited else ""
        lines.append(f"**{label}** ({msg.timestamp.strftime('%Y-%m-%d %H:%M:%S')}){suffix}:")
        lines.append(msg.content)

        if msg.attachments:
            lines.append("")
            lines.append("**Attachments**:")
            for attachment in msg.attachments:
                lines.append(f"- [{attachment.file_name}]({attachment.file_url})")

        lines.append("")
        lines.append("---")
        lines.append("")

    return "\n".join(lines)
