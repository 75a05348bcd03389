"""The six independently persisted collections.

Each collection lives in a :class:`PersistedSlot`: the in-memory value is
committed first, then the full snapshot is written to the store. A failed
write never rolls back the in-memory value; the slot is marked dirty and
written again on its next commit or on :meth:`EntityStore.flush`.
"""

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from companion_core.core.base import ErrorLevel, ValidationErrorDetails
from companion_core.core.decorators import with_error_handling
from companion_core.core.errors import BackupFormatError, PersistenceError
from companion_core.core.logging import get_logger
from companion_core.domain.models import (
    DEFAULT_IDENTITY,
    DEFAULT_SETTINGS,
    BackupDocument,
    CompanionSettings,
    Conversation,
    Identity,
    Memory,
    Session,
    VoiceSample,
    utc_now,
)
from companion_core.infrastructure.persistence import LoadResult, SnapshotStore
from companion_core.services.ids import MonotonicIdGenerator

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)

IDENTITY_KEY = "identity"
MEMORIES_KEY = "memories"
VOICE_SAMPLES_KEY = "voice-samples"
CONVERSATIONS_KEY = "conversations"
SESSION_KEY = "current-session"
SETTINGS_KEY = "settings"

COLLECTION_KEYS = (
    IDENTITY_KEY,
    MEMORIES_KEY,
    VOICE_SAMPLES_KEY,
    CONVERSATIONS_KEY,
    SESSION_KEY,
    SETTINGS_KEY,
)

# Stamped by the store, never taken from callers
_STAMPED_FIELDS = {"id", "created_at", "updated_at"}


class PersistedSlot(Generic[T]):
    """One named collection: current value, persistence and change listeners."""

    def __init__(
        self,
        key: str,
        store: SnapshotStore,
        adapter: TypeAdapter[T],
        default_factory: Callable[[], T],
    ):
        self.key = key
        self._store = store
        self._default_factory = default_factory
        self._listeners: list[Callable[[T], None]] = []

        self.load_result: LoadResult[T] = store.try_load(key, default_factory(), parse=adapter.validate_python)
        self._value: T = self.load_result.value
        self.dirty = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def loaded_from_default(self) -> bool:
        return self.load_result.used_default

    def commit(self, value: T) -> T:
        """Replace the value, persist it, then notify listeners.

        Raises:
            SnapshotEncodeError: ``value`` has no JSON form; the slot is left unchanged
        """
        text = self._store.encode(self.key, value)
        self._value = value
        self._write(text)
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Collection listener failed", key=self.key)
        return value

    def persist(self) -> bool:
        return self._write(self._store.encode(self.key, self._value))

    def _write(self, text: str) -> bool:
        try:
            self._store.write(self.key, text)
        except PersistenceError as e:
            self.dirty = True
            logger.warning("Snapshot write failed, keeping in-memory state", key=self.key, error=e.message)
            return False
        self.dirty = False
        return True

    def reset(self) -> T:
        return self.commit(self._default_factory())

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def _field_names(model: type[BaseModel], data: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase aliases in ``data`` to field names; unknown keys pass through."""
    by_alias = {field.alias: name for name, field in model.model_fields.items() if field.alias}
    return {by_alias.get(key, key): value for key, value in data.items()}


class EntityStore:
    """Identity, memories, voice samples, conversations, current session and settings."""

    def __init__(
        self,
        store: SnapshotStore,
        ids: MonotonicIdGenerator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ids = ids or MonotonicIdGenerator()
        self.clock = clock

        self.identity_slot: PersistedSlot[Identity] = PersistedSlot(
            IDENTITY_KEY, store, TypeAdapter(Identity), lambda: DEFAULT_IDENTITY
        )
        self.memories_slot: PersistedSlot[tuple[Memory, ...]] = PersistedSlot(
            MEMORIES_KEY, store, TypeAdapter(tuple[Memory, ...]), tuple
        )
        self.voice_samples_slot: PersistedSlot[tuple[VoiceSample, ...]] = PersistedSlot(
            VOICE_SAMPLES_KEY, store, TypeAdapter(tuple[VoiceSample, ...]), tuple
        )
        self.conversations_slot: PersistedSlot[tuple[Conversation, ...]] = PersistedSlot(
            CONVERSATIONS_KEY, store, TypeAdapter(tuple[Conversation, ...]), tuple
        )
        # A default session must not reuse an id already held by a stored record
        self.ids.seed(self._record_ids())
        self.session_slot: PersistedSlot[Session] = PersistedSlot(
            SESSION_KEY, store, TypeAdapter(Session), self.new_session
        )
        self.settings_slot: PersistedSlot[CompanionSettings] = PersistedSlot(
            SETTINGS_KEY, store, TypeAdapter(CompanionSettings), lambda: DEFAULT_SETTINGS
        )

        self._seed_ids()
        fallbacks = {key: result.reason for key, result in self.load_report().items() if result.used_default}
        logger.info("Entity store loaded", fallbacks=fallbacks)

    @property
    def slots(self) -> dict[str, PersistedSlot[Any]]:
        return {
            IDENTITY_KEY: self.identity_slot,
            MEMORIES_KEY: self.memories_slot,
            VOICE_SAMPLES_KEY: self.voice_samples_slot,
            CONVERSATIONS_KEY: self.conversations_slot,
            SESSION_KEY: self.session_slot,
            SETTINGS_KEY: self.settings_slot,
        }

    def load_report(self) -> dict[str, LoadResult[Any]]:
        """How each collection was initialised."""
        return {key: slot.load_result for key, slot in self.slots.items()}

    def _record_ids(self) -> list[int | None]:
        ids: list[int | None] = [m.id for m in self.memories_slot.value]
        ids += [s.id for s in self.voice_samples_slot.value]
        for conversation in self.conversations_slot.value:
            ids.append(conversation.id)
            ids += [m.id for m in conversation.messages]
        return ids

    def _seed_ids(self) -> None:
        session = self.session_slot.value
        self.ids.seed([*self._record_ids(), session.id, *(m.id for m in session.messages)])

    def new_session(self) -> Session:
        return Session(id=self.ids(), messages=(), started_at=self.clock())

    # Current values

    @property
    def identity(self) -> Identity:
        return self.identity_slot.value

    @property
    def memories(self) -> tuple[Memory, ...]:
        return self.memories_slot.value

    @property
    def voice_samples(self) -> tuple[VoiceSample, ...]:
        return self.voice_samples_slot.value

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self.conversations_slot.value

    @property
    def session(self) -> Session:
        return self.session_slot.value

    @property
    def settings(self) -> CompanionSettings:
        return self.settings_slot.value

    def subscribe(self, key: str, listener: Callable[[Any], None]) -> Callable[[], None]:
        return self.slots[key].subscribe(listener)

    # Identity and settings: whole-object replace

    def set_identity(self, identity: Identity | Mapping[str, Any]) -> Identity:
        return self.identity_slot.commit(Identity.model_validate(identity))

    def update_identity(self, **changes: Any) -> Identity:
        merged = {**self.identity.model_dump(), **_field_names(Identity, changes)}
        return self.set_identity(merged)

    def set_trait(self, name: str, weight: float) -> Identity:
        return self.update_identity(traits={**self.identity.traits, name: weight})

    def set_settings(self, settings: CompanionSettings | Mapping[str, Any]) -> CompanionSettings:
        return self.settings_slot.commit(CompanionSettings.model_validate(settings))

    def update_settings(self, **changes: Any) -> CompanionSettings:
        merged = {**self.settings.model_dump(), **_field_names(CompanionSettings, changes)}
        return self.set_settings(merged)

    # Record collections

    def _add_record(self, slot: PersistedSlot[tuple[R, ...]], model: type[R], fields: Mapping[str, Any]) -> R:
        data = {k: v for k, v in _field_names(model, fields).items() if k not in _STAMPED_FIELDS}
        record = model.model_validate({**data, "id": self.ids(), "created_at": self.clock()})
        slot.commit((*slot.value, record))
        return record

    def _update_record(
        self, slot: PersistedSlot[tuple[R, ...]], model: type[R], record_id: int, patch: Mapping[str, Any]
    ) -> R | None:
        changes = {k: v for k, v in _field_names(model, patch).items() if k not in _STAMPED_FIELDS}
        updated: R | None = None
        records = []
        for record in slot.value:
            if record.id == record_id:
                updated = model.model_validate({**record.model_dump(), **changes, "updated_at": self.clock()})
                record = updated
            records.append(record)
        if updated is not None:
            slot.commit(tuple(records))
        return updated

    def _delete_record(self, slot: PersistedSlot[tuple[R, ...]], record_id: int) -> bool:
        remaining = tuple(r for r in slot.value if r.id != record_id)
        if len(remaining) == len(slot.value):
            return False
        slot.commit(remaining)
        return True

    def add_memory(self, memory: Mapping[str, Any] | None = None, **fields: Any) -> Memory:
        return self._add_record(self.memories_slot, Memory, {**(memory or {}), **fields})

    def update_memory(self, memory_id: int, patch: Mapping[str, Any] | None = None, **fields: Any) -> Memory | None:
        return self._update_record(self.memories_slot, Memory, memory_id, {**(patch or {}), **fields})

    def delete_memory(self, memory_id: int) -> bool:
        return self._delete_record(self.memories_slot, memory_id)

    def add_voice_sample(self, sample: Mapping[str, Any] | None = None, **fields: Any) -> VoiceSample:
        return self._add_record(self.voice_samples_slot, VoiceSample, {**(sample or {}), **fields})

    def delete_voice_sample(self, sample_id: int) -> bool:
        return self._delete_record(self.voice_samples_slot, sample_id)

    # Whole-store operations

    def flush(self) -> list[str]:
        """Retry every snapshot whose last write failed; return keys still dirty."""
        return [key for key, slot in self.slots.items() if slot.dirty and not slot.persist()]

    def reset(self) -> None:
        """Put every collection back to its default, including a fresh session."""
        for slot in self.slots.values():
            slot.reset()
        logger.info("All collections reset")

    def export_backup(self) -> BackupDocument:
        return BackupDocument(
            identity=self.identity,
            memories=list(self.memories),
            voice_samples=list(self.voice_samples),
            conversations=list(self.conversations),
            settings=self.settings,
            exported_at=self.clock(),
        )

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    def import_backup(self, backup: BackupDocument | Mapping[str, Any]) -> list[str]:
        """Replace every collection present in ``backup``; return the keys replaced.

        The live session is never part of a backup and stays as it is.
        """
        if not isinstance(backup, BackupDocument):
            try:
                backup = BackupDocument.model_validate(backup)
            except ValidationError as e:
                raise BackupFormatError(
                    message=f"Backup document is invalid: {e.error_count()} error(s)",
                    details=ValidationErrorDetails(
                        source="entity_store",
                        operation="import_backup",
                        field=".".join(str(p) for p in e.errors()[0]["loc"]) if e.errors() else None,
                    ),
                ) from e

        replaced: list[str] = []
        if backup.identity is not None:
            self.identity_slot.commit(backup.identity)
            replaced.append(IDENTITY_KEY)
        if backup.memories is not None:
            self.memories_slot.commit(tuple(backup.memories))
            replaced.append(MEMORIES_KEY)
        if backup.voice_samples is not None:
            self.voice_samples_slot.commit(tuple(backup.voice_samples))
            replaced.append(VOICE_SAMPLES_KEY)
        if backup.conversations is not None:
            self.conversations_slot.commit(tuple(backup.conversations))
            replaced.append(CONVERSATIONS_KEY)
        if backup.settings is not None:
            self.settings_slot.commit(backup.settings)
            replaced.append(SETTINGS_KEY)

        self._seed_ids()
        logger.info("Backup imported", collections=replaced)
        return replaced
