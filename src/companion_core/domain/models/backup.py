"""Portable backup document written by export and read by import."""

from datetime import datetime

from pydantic import Field

from .base import SnapshotModel
from .conversation import Conversation
from .identity import CompanionSettings, Identity
from .memories import Memory, VoiceSample
from .utils import utc_now


class BackupDocument(SnapshotModel):
    """Every collection except the live session.

    A missing section means "leave that collection alone" on import.
    """

    identity: Identity | None = None
    memories: list[Memory] | None = None
    voice_samples: list[VoiceSample] | None = None
    conversations: list[Conversation] | None = None
    settings: CompanionSettings | None = None
    exported_at: datetime = Field(default_factory=utc_now)
