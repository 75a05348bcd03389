"""Lifecycle of the active session and the conversation archive.

There is always exactly one active session. Replacing it (clear or load)
first archives it when it holds messages, unless the caller opted out on
clear. The archive is newest first and capped; entries past the cap are
dropped silently. Looking up an unknown conversation is a no-op.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from companion_core.core.logging import get_logger, update_log_context
from companion_core.domain.models import Conversation, Message, Session
from companion_core.services.entity_store import EntityStore

logger = get_logger(__name__)

DEFAULT_CONVERSATION_LIMIT = 50
DEFAULT_PREVIEW_LENGTH = 50
FALLBACK_PREVIEW = "New conversation"

MessageLike = Message | Mapping[str, Any]


def _as_message(message: MessageLike) -> Message:
    return message if isinstance(message, Message) else Message.model_validate(message)


class SessionManager:
    def __init__(
        self,
        entities: EntityStore,
        conversation_limit: int = DEFAULT_CONVERSATION_LIMIT,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
    ):
        self.entities = entities
        self.conversation_limit = conversation_limit
        self.preview_length = preview_length
        update_log_context("session_id", self.session.id)

    @property
    def session(self) -> Session:
        return self.entities.session

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self.entities.conversations

    def find_conversation(self, conversation_id: int) -> Conversation | None:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    def preview_for(self, messages: Sequence[Message]) -> str:
        content = messages[0].content if messages else None
        if isinstance(content, str) and content:
            return content[: self.preview_length]
        return FALLBACK_PREVIEW

    def append_message(self, message: MessageLike) -> Message:
        """Append to the active session with a fresh id. The archive is untouched."""
        stamped = _as_message(message).model_copy(update={"id": self.entities.ids()})
        session = self.session
        self.entities.session_slot.commit(session.model_copy(update={"messages": (*session.messages, stamped)}))
        return stamped

    def save_conversation(self, messages: Sequence[MessageLike]) -> Conversation | None:
        """Archive ``messages`` as the newest conversation; empty input is ignored."""
        if not messages:
            return None

        archived = tuple(_as_message(m) for m in messages)
        conversation = Conversation(
            id=self.entities.ids(),
            created_at=self.entities.clock(),
            preview=self.preview_for(archived),
            message_count=len(archived),
            messages=archived,
        )
        kept = (conversation, *self.conversations)[: self.conversation_limit]
        self.entities.conversations_slot.commit(kept)
        logger.info("Conversation archived", conversation_id=conversation.id, message_count=len(archived))
        return conversation

    def clear_session(self, save_first: bool = True) -> Session:
        """Start a fresh empty session, archiving the current one unless told not to."""
        current = self.session
        if save_first and current.messages:
            self.save_conversation(current.messages)

        fresh = self._replace(self.entities.new_session())
        logger.info("Session cleared", previous_session_id=current.id, archived=save_first and bool(current.messages))
        return fresh

    def load_conversation(self, conversation_id: int) -> Session | None:
        """Resume an archived conversation as the active session.

        The current session is archived first when it has messages. The
        archive entry itself is left in place. Returns None, changing
        nothing, when ``conversation_id`` is not in the archive.
        """
        conversation = self.find_conversation(conversation_id)
        if conversation is None:
            logger.debug("Conversation not found, nothing loaded", conversation_id=conversation_id)
            return None

        if self.session.messages:
            self.save_conversation(self.session.messages)

        resumed = self._replace(
            Session(
                id=conversation.id,
                messages=conversation.messages,
                started_at=conversation.created_at,
                loaded_from=conversation_id,
            )
        )
        logger.info("Conversation resumed", conversation_id=conversation_id)
        return resumed

    def _replace(self, session: Session) -> Session:
        self.entities.session_slot.commit(session)
        update_log_context("session_id", session.id)
        return session
