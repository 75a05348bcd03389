"""Unit tests for EntityStore."""

import json

import pytest
from pydantic import ValidationError

from companion_core.core.errors import BackupFormatError, SnapshotEncodeError
from companion_core.domain.models import DEFAULT_IDENTITY, DEFAULT_SETTINGS, Identity
from companion_core.infrastructure.persistence import InMemoryStore, JsonFileStore, to_snapshot
from companion_core.services import (
    COLLECTION_KEYS,
    CONVERSATIONS_KEY,
    IDENTITY_KEY,
    MEMORIES_KEY,
    SESSION_KEY,
    SETTINGS_KEY,
    VOICE_SAMPLES_KEY,
    EntityStore,
    MonotonicIdGenerator,
)

FROZEN_EPOCH = 1_700_000_000.0


def frozen_ids() -> MonotonicIdGenerator:
    return MonotonicIdGenerator(clock=lambda: FROZEN_EPOCH)


class TestInitialisation:
    """Loading collections from snapshots."""

    def test_empty_store_uses_defaults(self, entities):
        """With nothing stored every collection starts from its default."""
        assert entities.identity == DEFAULT_IDENTITY
        assert entities.settings == DEFAULT_SETTINGS
        assert entities.memories == ()
        assert entities.voice_samples == ()
        assert entities.conversations == ()
        assert entities.session.is_empty
        reasons = {key: r.reason for key, r in entities.load_report().items()}
        assert reasons == dict.fromkeys(COLLECTION_KEYS, "missing")

    def test_loading_writes_nothing(self, store, entities):
        """Initialisation never persists the defaults."""
        assert store.writes == []

    @pytest.mark.parametrize("key", COLLECTION_KEYS)
    def test_corrupt_snapshot_falls_back_to_default(self, key):
        """Any malformed collection yields its default instead of failing."""
        store = InMemoryStore(prefix="companion_", initial={key: "{not json"})
        entities = EntityStore(store, ids=frozen_ids())

        result = entities.load_report()[key]
        assert result.used_default
        assert result.reason == "corrupt"
        assert {r.reason for k, r in entities.load_report().items() if k != key} == {"missing"}

    @pytest.mark.parametrize("key", COLLECTION_KEYS)
    def test_undecodable_file_falls_back_to_default(self, key, tmp_path):
        """A snapshot file that is not UTF-8 never aborts initialisation."""
        store = JsonFileStore(tmp_path, prefix="companion_")
        store.path_for(key).write_bytes(b'[{"id": 1, "content": "\xff\xfe"}]')

        entities = EntityStore(store, ids=frozen_ids())

        result = entities.load_report()[key]
        assert result.used_default
        assert result.reason == "corrupt"
        assert entities.session.id is not None

    def test_wrong_shape_falls_back_and_keeps_others(self):
        """A snapshot of the wrong shape only affects its own collection."""
        store = InMemoryStore(
            prefix="companion_",
            initial={
                MEMORIES_KEY: json.dumps({"legacy": True}),
                IDENTITY_KEY: json.dumps({"name": "Ada", "systemPrompt": "Be brief.", "traits": {"warmth": 0.2}}),
            },
        )
        entities = EntityStore(store, ids=frozen_ids())

        assert entities.memories == ()
        assert entities.load_report()[MEMORIES_KEY].reason == "invalid"
        assert entities.identity.name == "Ada"
        assert not entities.load_report()[IDENTITY_KEY].used_default

    def test_stored_extension_fields_survive_a_save(self):
        """Fields unknown to the core are written back untouched."""
        stored = [{"id": 5, "createdAt": "2024-01-01T00:00:00Z", "content": "tea", "pinned": True}]
        store = InMemoryStore(prefix="companion_", initial={MEMORIES_KEY: json.dumps(stored)})
        entities = EntityStore(store, ids=frozen_ids())

        entities.add_memory(content="coffee")

        saved = json.loads(store.read(MEMORIES_KEY))
        assert saved[0]["pinned"] is True
        assert saved[1]["content"] == "coffee"

    def test_ids_are_seeded_from_stored_records(self):
        """New ids are larger than anything already stored."""
        far_future = int(FROZEN_EPOCH * 1000) + 10_000
        stored = [{"id": far_future, "createdAt": "2024-01-01T00:00:00Z"}]
        store = InMemoryStore(prefix="companion_", initial={MEMORIES_KEY: json.dumps(stored)})
        entities = EntityStore(store, ids=frozen_ids())

        assert entities.session.id > far_future
        assert entities.add_memory(content="x").id > entities.session.id


class TestRecords:
    """Memory and voice sample CRUD."""

    def test_add_stamps_id_and_creation_time(self, store, entities):
        """add assigns id and createdAt, ignoring caller supplied values."""
        memory = entities.add_memory({"content": "likes tea", "id": 1, "createdAt": "1999-01-01T00:00:00Z"})

        assert memory.id > 1
        assert memory.created_at.year > 1999
        assert entities.memories == (memory,)
        assert store.writes == [MEMORIES_KEY]

    def test_ids_are_unique_within_one_millisecond(self, entities):
        """Records created on the same clock tick get distinct, increasing ids."""
        first = entities.add_memory(content="a")
        second = entities.add_memory(content="b")
        sample = entities.add_voice_sample(text="hello")

        assert first.id < second.id < sample.id

    def test_update_merges_and_stamps(self, entities):
        """update merges the patch and sets updatedAt; id and createdAt stay."""
        memory = entities.add_memory(content="likes tea", type="preference")
        updated = entities.update_memory(memory.id, {"content": "likes green tea", "id": 1})

        assert updated.id == memory.id
        assert updated.created_at == memory.created_at
        assert updated.updated_at is not None
        assert updated.content == "likes green tea"
        assert updated.type == "preference"
        assert entities.memories == (updated,)

    def test_update_unknown_id_is_a_no_op(self, store, entities):
        """Updating a missing record changes and writes nothing."""
        entities.add_memory(content="a")
        writes = list(store.writes)

        assert entities.update_memory(42, content="b") is None
        assert store.writes == writes

    def test_delete(self, entities):
        """delete removes by id and reports whether anything was removed."""
        keep = entities.add_memory(content="keep")
        drop = entities.add_memory(content="drop")

        assert entities.delete_memory(drop.id) is True
        assert entities.delete_memory(drop.id) is False
        assert entities.memories == (keep,)

    def test_mutations_produce_new_values(self, entities):
        """Holders of an old collection value never see later changes."""
        before = entities.memories
        entities.add_memory(content="a")

        assert before == ()
        assert len(entities.memories) == 1

    def test_voice_samples(self, store, entities):
        """Voice samples persist under their own key."""
        sample = entities.add_voice_sample(text="hi", audio="AAAA", sampleRate=24000, duration=1.5)

        assert sample.sample_rate == 24000
        assert json.loads(store.read(VOICE_SAMPLES_KEY))[0]["sampleRate"] == 24000
        assert entities.delete_voice_sample(sample.id)
        assert entities.voice_samples == ()


class TestIdentityAndSettings:
    """Whole-object replacement."""

    def test_set_identity_replaces_whole_object(self, store, entities):
        identity = entities.set_identity({"name": "Ada"})

        assert identity == Identity(name="Ada")
        assert json.loads(store.read(IDENTITY_KEY))["name"] == "Ada"

    def test_update_identity_and_traits(self, entities):
        """Partial updates keep the untouched fields."""
        entities.update_identity(name="Ada")
        identity = entities.set_trait("warmth", 0.5)

        assert identity.name == "Ada"
        assert identity.system_prompt == DEFAULT_IDENTITY.system_prompt
        assert identity.traits["warmth"] == 0.5
        assert identity.traits["patience"] == 0.9

    def test_invalid_trait_leaves_identity_unchanged(self, entities):
        with pytest.raises(ValidationError):
            entities.set_trait("warmth", 2.0)

        assert entities.identity == DEFAULT_IDENTITY

    def test_update_settings_accepts_stored_key_names(self, store, entities):
        """Both snake_case and camelCase keys are accepted."""
        entities.update_settings(llmProvider="mock", tts_enabled=False)

        assert entities.settings.llm_provider == "mock"
        assert entities.settings.tts_enabled is False
        saved = json.loads(store.read(SETTINGS_KEY))
        assert saved["llmProvider"] == "mock"
        assert saved["ttsEnabled"] is False


class TestPersistenceFailures:
    """Best-effort writes."""

    def test_failed_write_keeps_in_memory_state(self, store, entities):
        """A write failure is a warning; the new value stays and is retried on flush."""
        store.fail_writes = True
        memory = entities.add_memory(content="offline")

        assert entities.memories == (memory,)
        assert entities.memories_slot.dirty
        assert store.read(MEMORIES_KEY) is None
        assert entities.flush() == [MEMORIES_KEY]

        store.fail_writes = False
        assert entities.flush() == []
        assert not entities.memories_slot.dirty
        assert json.loads(store.read(MEMORIES_KEY))[0]["content"] == "offline"

    def test_next_commit_rewrites_dirty_slot(self, store, entities):
        """Whole snapshots mean the next successful write catches up."""
        store.fail_writes = True
        entities.add_memory(content="a")
        store.fail_writes = False
        entities.add_memory(content="b")

        assert [m["content"] for m in json.loads(store.read(MEMORIES_KEY))] == ["a", "b"]
        assert not entities.memories_slot.dirty

    def test_unencodable_record_is_rejected_without_side_effects(self, store, entities):
        """A value with no JSON form changes nothing and notifies nobody."""
        seen = []
        entities.subscribe(MEMORIES_KEY, seen.append)

        with pytest.raises(SnapshotEncodeError):
            entities.add_memory(content="x", blob=object())

        assert entities.memories == ()
        assert not entities.memories_slot.dirty
        assert store.read(MEMORIES_KEY) is None
        assert seen == []
        assert entities.flush() == []

    def test_reload_from_same_store(self, store, entities):
        """A second store instance sees everything the first one wrote."""
        memory = entities.add_memory(content="likes tea")
        entities.set_identity({"name": "Ada"})

        reloaded = EntityStore(store, ids=frozen_ids())

        assert reloaded.memories == (memory,)
        assert reloaded.identity.name == "Ada"
        assert not reloaded.load_report()[MEMORIES_KEY].used_default


class TestWholeStore:
    """Listeners, backup and reset."""

    def test_subscribe_after_commit(self, entities):
        """Listeners run after the value is committed; unsubscribe stops them."""
        seen = []

        def listener(value):
            seen.append((value, entities.memories))

        unsubscribe = entities.subscribe(MEMORIES_KEY, listener)
        memory = entities.add_memory(content="a")
        unsubscribe()
        entities.add_memory(content="b")

        assert seen == [((memory,), (memory,))]

    def test_export_excludes_live_session(self, sessions, entities):
        sessions.append_message({"role": "user", "content": "hi"})
        entities.add_memory(content="a")

        exported = to_snapshot(entities.export_backup())

        assert set(exported) == {"identity", "memories", "voiceSamples", "conversations", "settings", "exportedAt"}
        assert exported["memories"][0]["content"] == "a"

    def test_import_replaces_present_sections_only(self, entities):
        """Missing sections leave their collection alone; the session is kept."""
        entities.add_voice_sample(text="keep me")
        session = entities.session

        replaced = entities.import_backup(
            {"identity": {"name": "Ada"}, "memories": [{"id": 3, "createdAt": "2024-01-01T00:00:00Z"}]}
        )

        assert replaced == [IDENTITY_KEY, MEMORIES_KEY]
        assert entities.identity.name == "Ada"
        assert [m.id for m in entities.memories] == [3]
        assert len(entities.voice_samples) == 1
        assert entities.session == session

    def test_import_rejects_malformed_backup(self, entities):
        """Invalid backups raise and change nothing."""
        with pytest.raises(BackupFormatError):
            entities.import_backup({"memories": "not a list"})

        assert entities.memories == ()

    def test_export_then_import_into_fresh_store(self, entities):
        entities.add_memory(content="a")
        entities.update_settings(llm_provider="mock")
        backup = entities.export_backup()

        other = EntityStore(InMemoryStore(prefix="companion_"), ids=frozen_ids())
        other.import_backup(to_snapshot(backup))

        assert other.memories == entities.memories
        assert other.settings == entities.settings
        assert other.add_memory(content="b").id > entities.memories[0].id

    def test_reset(self, store, entities, sessions):
        """reset restores every default and starts a fresh session."""
        sessions.append_message({"role": "user", "content": "hi"})
        entities.add_memory(content="a")
        entities.set_identity({"name": "Ada"})
        old_session = entities.session

        entities.reset()

        assert entities.memories == ()
        assert entities.identity == DEFAULT_IDENTITY
        assert entities.session.is_empty
        assert entities.session.id != old_session.id
        assert json.loads(store.read(SESSION_KEY))["messages"] == []
        assert json.loads(store.read(CONVERSATIONS_KEY)) == []
