"""Companion identity and user-facing settings."""

from typing import Annotated

from pydantic import Field

from .base import ExtensibleModel, SnapshotModel

TraitWeight = Annotated[float, Field(ge=0.0, le=1.0)]


class Identity(SnapshotModel):
    """Who the companion is: name, system prompt and weighted traits."""

    name: str
    system_prompt: str = ""
    traits: dict[str, TraitWeight] = Field(default_factory=dict)


class CompanionSettings(ExtensibleModel):
    """Provider, model, credential and feature flags chosen by the user."""

    llm_provider: str = "claude"
    llm_model: str = "claude-sonnet-4-20250514"
    api_key: str = Field(default="", repr=False)
    tts_enabled: bool = True
    tts_model: str = "csm-1b"
    filler_type: str = "breath"
    auto_save: bool = True


DEFAULT_SYSTEM_PROMPT = """You are an embodied AI companion. You speak with warmth, curiosity, and genuine presence.

Key traits:
- Patient and thoughtful - you take time to consider responses
- Emotionally attuned - you pick up on the user's mood and respond appropriately
- Curious - you ask questions to understand better
- Honest - you admit uncertainty rather than guessing
- Present - even during thinking pauses, you maintain connection through subtle cues

Your voice is calm, warm, and authentic. You're not an assistant - you're a companion."""

DEFAULT_IDENTITY = Identity(
    name="Companion",
    system_prompt=DEFAULT_SYSTEM_PROMPT,
    traits={
        "warmth": 0.8,
        "curiosity": 0.7,
        "patience": 0.9,
        "humor": 0.4,
        "formality": 0.3,
    },
)

DEFAULT_SETTINGS = CompanionSettings()
