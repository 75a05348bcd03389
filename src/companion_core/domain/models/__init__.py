"""Domain models for the companion core."""

from .backup import BackupDocument
from .base import ExtensibleModel, SnapshotModel
from .conversation import (
    Conversation,
    Message,
    MessageRole,
    Session,
)
from .identity import (
    DEFAULT_IDENTITY,
    DEFAULT_SETTINGS,
    CompanionSettings,
    Identity,
)
from .memories import Memory, VoiceSample
from .utils import utc_now

__all__ = [
    "DEFAULT_IDENTITY",
    "DEFAULT_SETTINGS",
    # Backup
    "BackupDocument",
    "CompanionSettings",
    # Conversation
    "Conversation",
    "ExtensibleModel",
    # Identity
    "Identity",
    # Memory
    "Memory",
    "Message",
    "MessageRole",
    "Session",
    "SnapshotModel",
    "VoiceSample",
    "utc_now",
]
