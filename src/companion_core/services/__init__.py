"""Services layer for the companion core."""

from .companion import CompanionContext
from .entity_store import (
    COLLECTION_KEYS,
    CONVERSATIONS_KEY,
    IDENTITY_KEY,
    MEMORIES_KEY,
    SESSION_KEY,
    SETTINGS_KEY,
    VOICE_SAMPLES_KEY,
    EntityStore,
    PersistedSlot,
)
from .ids import MonotonicIdGenerator
from .session_manager import SessionManager

__all__ = [
    "COLLECTION_KEYS",
    "CONVERSATIONS_KEY",
    "IDENTITY_KEY",
    "MEMORIES_KEY",
    "SESSION_KEY",
    "SETTINGS_KEY",
    "VOICE_SAMPLES_KEY",
    "CompanionContext",
    "EntityStore",
    "MonotonicIdGenerator",
    "PersistedSlot",
    "SessionManager",
]
