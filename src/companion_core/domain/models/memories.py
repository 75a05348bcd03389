"""Long-term memories and voice samples.

Both are unordered collections of records with an id assigned at creation
and never reused. Fields the core does not know about are kept as extension fields.
"""

from datetime import datetime

from .base import ExtensibleModel


class Memory(ExtensibleModel):
    id: int
    created_at: datetime
    updated_at: datetime | None = None
    type: str = "fact"
    content: str = ""
    source: str | None = None
    context: str | None = None


class VoiceSample(ExtensibleModel):
    id: int
    created_at: datetime
    text: str = ""
    # base64 encoded PCM
    audio: str | None = None
    format: str | None = None
    sample_rate: int | None = None
    duration: float | None = None
