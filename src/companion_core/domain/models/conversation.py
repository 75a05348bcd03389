"""Messages, archived conversations and the live session."""

from datetime import datetime
from typing import Any

from pydantic import Field

from .base import ExtensibleModel, SnapshotModel


class MessageRole:
    """Roles written by the bundled UI. Other values pass through untouched."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(ExtensibleModel):
    """A single message. Role and content are opaque to the core."""

    id: int | None = None
    role: str | None = None
    content: Any = None
    timestamp: int | None = None


class Conversation(SnapshotModel):
    """An archived, immutable conversation."""

    id: int
    created_at: datetime
    preview: str
    message_count: int
    messages: tuple[Message, ...] = ()


class Session(SnapshotModel):
    """The one active conversation. Replaced wholesale on clear/load."""

    id: int
    messages: tuple[Message, ...] = Field(default=())
    started_at: datetime
    loaded_from: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    @property
    def is_resumed(self) -> bool:
        return self.loaded_from is not None
