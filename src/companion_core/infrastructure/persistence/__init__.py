from .store import (
    InMemoryStore,
    JsonFileStore,
    LoadResult,
    SnapshotStore,
    to_snapshot,
)

__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "LoadResult",
    "SnapshotStore",
    "to_snapshot",
]
