"""Chat and messaging models"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime, timezone
from uuid import uuid4

TITLE_MAX_CHARS = 30
DEFAULT_TITLE = "New Chat"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class ApiModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self, **kwargs) -> dict:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class AttachmentRef(ApiModel):
    """Snapshot of a processed file, embedded in the message that carries it"""
    file_name: str
    file_url: str
    file_type: str
    extracted_text: Optional[str] = None


class EditRecord(ApiModel):
    """A previous version of an edited message"""
    content: str
    timestamp: datetime


class Message(ApiModel):
    """Chat message model"""
    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    edited: bool = False
    edit_history: List[EditRecord] = Field(default_factory=list)
    attachments: List[AttachmentRef] = Field(default_factory=list)


class MessageNotFound(LookupError):
    """Raised when an edit targets a message id the conversation does not hold"""


def derive_title(content: str) -> str:
    """Title for a conversation, taken from its first user message"""
    content = content.strip()
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + "..."
    return content or DEFAULT_TITLE


def apply_message_edit(messages: List[Message], message_id: str, new_content: str) -> List[Message]:
    """
    Rewrite one message and drop everything after it.

    The previous content is pushed onto the message's edit history before it is
    overwritten. Returns the new, truncated list; the input list is left alone.
    """
    for index, message in enumerate(messages):
        if message.id == message_id:
            break
    else:
        raise MessageNotFound(message_id)

    edited = message.model_copy(deep=True)
    edited.edit_history.append(EditRecord(content=edited.content, timestamp=utcnow()))
    edited.content = new_content
    edited.edited = True
    edited.timestamp = utcnow()
    return list(messages[:index]) + [edited]


class Conversation(ApiModel):
    """A titled, ordered sequence of messages owned by one user"""
    id: str = Field(default_factory=new_id)
    user_id: str
    title: str = DEFAULT_TITLE
    model: str = "llama3-8b"
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def append_message(self, message: Message) -> None:
        """Append a message, bump updated_at and auto-title on the first user message"""
        self.messages.append(message)
        self.updated_at = utcnow()
        if message.role == "user" and sum(1 for m in self.messages if m.role == "user") == 1:
            self.title = derive_title(message.content)

    def edit_message(self, message_id: str, new_content: str) -> Message:
        """Edit a message in place, truncating the thread after it"""
        self.messages = apply_message_edit(self.messages, message_id, new_content)
        self.updated_at = utcnow()
        return self.messages[-1]

    def to_api(self, **kwargs) -> dict:
        return super().to_api(exclude={"user_id"}, **kwargs)


class ChatTurn(BaseModel):
    """A role/content pair as sent to a completion provider"""
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Request model for the chat completion endpoint"""
    messages: List[ChatTurn] = Field(default_factory=list)
    model: Optional[str] = None


class CreateConversationRequest(ApiModel):
    """Request to create a conversation"""
    title: str = DEFAULT_TITLE
    model: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)


class UpdateConversationRequest(ApiModel):
    """Request to rename a conversation"""
    title: str


class AddMessageRequest(ApiModel):
    """Request to append a message"""
    content: str
    role: Literal["user", "assistant", "system"]
    attachments: List[AttachmentRef] = Field(default_factory=list)


class EditMessageRequest(ApiModel):
    """Request to edit a message"""
    message_id: str
    new_content: str
