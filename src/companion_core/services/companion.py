"""One object exposing the connection, the collections and the session lifecycle.

Usage::

    async with CompanionContext.from_settings() as companion:
        companion.append_message({"role": "user", "content": "hi"})
        if companion.channel is not None:
            await companion.send({"type": "message", "text": "hi"})
"""

import json
from collections.abc import Awaitable, Callable, Mapping
from datetime import date
from pathlib import Path
from types import TracebackType
from typing import Any, Self

from companion_core.core.base import ErrorLevel
from companion_core.core.config import Settings, get_settings
from companion_core.core.decorators import with_error_handling
from companion_core.core.errors import BackupFormatError
from companion_core.core.logging import get_logger
from companion_core.core.retry import FixedInterval, ReconnectPolicy
from companion_core.domain.models import (
    BackupDocument,
    CompanionSettings,
    Conversation,
    Identity,
    Memory,
    Message,
    MessageRole,
    Session,
    VoiceSample,
)
from companion_core.infrastructure.connection import (
    AiohttpChannelFactory,
    Channel,
    ChannelFactory,
    ConnectionManager,
    ConnectionStatus,
)
from companion_core.infrastructure.persistence import JsonFileStore, SnapshotStore, to_snapshot
from companion_core.services.entity_store import EntityStore
from companion_core.services.ids import MonotonicIdGenerator
from companion_core.services.session_manager import MessageLike, SessionManager

logger = get_logger(__name__)


class CompanionContext:
    """Composition of EntityStore, SessionManager and ConnectionManager."""

    def __init__(
        self,
        entities: EntityStore,
        sessions: SessionManager,
        connection: ConnectionManager,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        self.entities = entities
        self.sessions = sessions
        self.connection = connection
        self._on_close = on_close

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        store: SnapshotStore | None = None,
        channel_factory: ChannelFactory | None = None,
        policy: ReconnectPolicy | None = None,
    ) -> Self:
        """Build a context from configuration, with overridable collaborators."""
        config = config or get_settings()
        store = store or JsonFileStore(config.storage_path, prefix=config.storage_prefix)

        on_close = None
        if channel_factory is None:
            factory = AiohttpChannelFactory()
            channel_factory = factory
            on_close = factory.aclose

        entities = EntityStore(store, ids=MonotonicIdGenerator())
        sessions = SessionManager(
            entities,
            conversation_limit=config.conversation_limit,
            preview_length=config.preview_length,
        )
        connection = ConnectionManager(
            config.agent_url,
            channel_factory,
            policy=policy or FixedInterval(config.reconnect_delay),
        )
        return cls(entities, sessions, connection, on_close=on_close)

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def start(self) -> None:
        self.connection.connect()

    async def aclose(self) -> None:
        await self.connection.teardown()
        if self._on_close is not None:
            await self._on_close()
        still_dirty = self.entities.flush()
        if still_dirty:
            logger.warning("Snapshots could not be written before shutdown", keys=still_dirty)

    # Connection

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def channel(self) -> Channel | None:
        return self.connection.channel

    def subscribe_status(self, listener: Callable[[ConnectionStatus, Channel | None], None]) -> Callable[[], None]:
        return self.connection.subscribe(listener)

    def add_message_listener(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        return self.connection.add_message_listener(listener)

    async def send(self, payload: Any) -> None:
        """Send through the connected channel.

        Raises:
            ChannelUnavailableError: not connected right now
        """
        await self.connection.send(payload)

    # Identity

    @property
    def identity(self) -> Identity:
        return self.entities.identity

    def set_identity(self, identity: Identity | Mapping[str, Any]) -> Identity:
        return self.entities.set_identity(identity)

    def update_identity(self, **changes: Any) -> Identity:
        return self.entities.update_identity(**changes)

    def set_trait(self, name: str, weight: float) -> Identity:
        return self.entities.set_trait(name, weight)

    # Memories

    @property
    def memories(self) -> tuple[Memory, ...]:
        return self.entities.memories

    def add_memory(self, memory: Mapping[str, Any] | None = None, **fields: Any) -> Memory:
        return self.entities.add_memory(memory, **fields)

    def update_memory(self, memory_id: int, patch: Mapping[str, Any] | None = None, **fields: Any) -> Memory | None:
        return self.entities.update_memory(memory_id, patch, **fields)

    def delete_memory(self, memory_id: int) -> bool:
        return self.entities.delete_memory(memory_id)

    def remember_message(self, message: Message | int, memory_type: str = "conversation") -> Memory | None:
        """Keep a session message as a long-term memory.

        ``message`` may be a message id from the active session; unknown ids
        are ignored.
        """
        if isinstance(message, int):
            found = next((m for m in self.session.messages if m.id == message), None)
            if found is None:
                return None
            message = found

        from_user = message.role == MessageRole.USER
        content = message.content if isinstance(message.content, str) else json.dumps(to_snapshot(message.content))
        return self.add_memory(
            type=memory_type,
            content=content,
            source="user_said" if from_user else "companion_said",
            context=(
                "Something the user shared"
                if from_user
                else "Something the companion said that may be worth remembering"
            ),
        )

    # Voice samples

    @property
    def voice_samples(self) -> tuple[VoiceSample, ...]:
        return self.entities.voice_samples

    def add_voice_sample(self, sample: Mapping[str, Any] | None = None, **fields: Any) -> VoiceSample:
        return self.entities.add_voice_sample(sample, **fields)

    def delete_voice_sample(self, sample_id: int) -> bool:
        return self.entities.delete_voice_sample(sample_id)

    # Conversations

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self.sessions.conversations

    def find_conversation(self, conversation_id: int) -> Conversation | None:
        return self.sessions.find_conversation(conversation_id)

    def save_conversation(self, messages: list[MessageLike] | tuple[MessageLike, ...]) -> Conversation | None:
        return self.sessions.save_conversation(messages)

    def load_conversation(self, conversation_id: int) -> Session | None:
        return self.sessions.load_conversation(conversation_id)

    # Current session

    @property
    def session(self) -> Session:
        return self.sessions.session

    def append_message(self, message: MessageLike) -> Message:
        return self.sessions.append_message(message)

    def clear_session(self, save_first: bool = True) -> Session:
        return self.sessions.clear_session(save_first)

    # Settings

    @property
    def settings(self) -> CompanionSettings:
        return self.entities.settings

    def set_settings(self, settings: CompanionSettings | Mapping[str, Any]) -> CompanionSettings:
        return self.entities.set_settings(settings)

    def update_settings(self, **changes: Any) -> CompanionSettings:
        return self.entities.update_settings(**changes)

    # Data management

    def export_backup(self) -> BackupDocument:
        return self.entities.export_backup()

    def import_backup(self, backup: BackupDocument | Mapping[str, Any]) -> list[str]:
        return self.entities.import_backup(backup)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    def write_backup(self, path: Path | str) -> Path:
        """Write a backup file; a directory gets ``companion-backup-<date>.json``."""
        target = Path(path).expanduser()
        if target.is_dir():
            target = target / f"companion-backup-{date.today().isoformat()}.json"
        backup = self.export_backup()
        target.write_text(json.dumps(to_snapshot(backup), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("Backup written", path=str(target))
        return target

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    def read_backup(self, path: Path | str) -> list[str]:
        """Import a backup file written by :meth:`write_backup`."""
        text = Path(path).expanduser().read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except ValueError as e:
            raise BackupFormatError(message=f"Backup file {path} is not valid JSON: {e}") from e
        return self.import_backup(data)

    def reset_all(self) -> None:
        self.entities.reset()
