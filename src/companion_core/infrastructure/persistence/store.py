"""Snapshot storage: one whole-collection JSON document per key.

Reads and writes are synchronous and replace the full snapshot. There is no
cross-key atomicity and no schema version; a snapshot that cannot be read or
parsed is replaced by the caller's default through :meth:`SnapshotStore.try_load`.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Literal, TypeVar

from pydantic_core import PydanticSerializationError, to_jsonable_python

from companion_core.core.base import StorageErrorDetails
from companion_core.core.errors import PersistenceError, SnapshotCorruptError, SnapshotEncodeError
from companion_core.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FallbackReason = Literal["missing", "corrupt", "invalid", "unreadable"]


@dataclass(frozen=True)
class LoadResult(Generic[T]):
    """Outcome of :meth:`SnapshotStore.try_load`.

    ``used_default`` tells a clean load apart from a fallback; both are
    silent to the end user.
    """

    value: T
    used_default: bool = False
    reason: FallbackReason | None = None


def to_snapshot(value: Any) -> Any:
    """Convert models (and containers of models) to plain JSON data."""
    return to_jsonable_python(value, by_alias=True, exclude_none=True)


class SnapshotStore(ABC):
    """Persistence port. Subclasses only move raw text in and out."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Raw snapshot text, or None when the key was never written."""

    @abstractmethod
    def write(self, key: str, text: str) -> None:
        """Replace the snapshot for ``key``. Raises PersistenceError on failure."""

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> list[str]: ...

    def load(self, key: str) -> Any | None:
        """Parsed snapshot, or None when absent.

        Raises:
            SnapshotCorruptError: the stored text is not valid JSON
        """
        raw = self.read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise SnapshotCorruptError(
                message=f"Snapshot '{key}' is not valid JSON: {e.msg}",
                details=StorageErrorDetails(source="snapshot_store", operation="load", key=key),
            ) from e

    def try_load(
        self,
        key: str,
        default: T,
        parse: Callable[[Any], T] | None = None,
    ) -> LoadResult[T]:
        """Load ``key`` and fall back to ``default`` on any read problem.

        Args:
            key: Snapshot key
            default: Value used when the snapshot is missing or unusable
            parse: Optional converter from JSON data to the collection type;
                a ValueError/TypeError from it counts as an invalid snapshot
        """
        try:
            data = self.load(key)
        except SnapshotCorruptError as e:
            logger.warning("Snapshot corrupt, using default", key=key, error=e.message)
            return LoadResult(default, used_default=True, reason="corrupt")
        except PersistenceError as e:
            logger.warning("Snapshot unreadable, using default", key=key, error=e.message)
            return LoadResult(default, used_default=True, reason="unreadable")

        if data is None:
            return LoadResult(default, used_default=True, reason="missing")
        if parse is None:
            return LoadResult(data)

        try:
            return LoadResult(parse(data))
        except (ValueError, TypeError) as e:
            logger.warning("Snapshot does not match its model, using default", key=key, error=str(e))
            return LoadResult(default, used_default=True, reason="invalid")

    def encode(self, key: str, value: Any) -> str:
        """Snapshot text for ``value``.

        Raises:
            SnapshotEncodeError: ``value`` holds something that has no JSON form
        """
        try:
            return json.dumps(to_snapshot(value), ensure_ascii=False)
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise SnapshotEncodeError(
                message=f"Snapshot '{key}' cannot be encoded as JSON: {e}",
                details=StorageErrorDetails(source="snapshot_store", operation="encode", key=key),
            ) from e

    def save(self, key: str, value: Any) -> None:
        """Serialise ``value`` and overwrite the snapshot for ``key``."""
        self.write(key, self.encode(key, value))

    def clear(self) -> None:
        """Remove every snapshot owned by this store."""
        for key in self.keys():
            self.delete(key)


class JsonFileStore(SnapshotStore):
    """One ``<prefix><key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: Path | str, prefix: str = ""):
        super().__init__(prefix)
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        return self.directory / f"{self.prefix}{key}.json"

    def _error(self, key: str, operation: str, error: OSError) -> PersistenceError:
        return PersistenceError(
            message=f"Could not {operation} snapshot '{key}': {error}",
            details=StorageErrorDetails(
                source="json_file_store",
                operation=operation,
                key=key,
                path=str(self.path_for(key)),
            ),
        )

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise SnapshotCorruptError(
                message=f"Snapshot '{key}' is not valid UTF-8: {e.reason}",
                details=StorageErrorDetails(source="json_file_store", operation="read", key=key, path=str(path)),
            ) from e
        except OSError as e:
            raise self._error(key, "read", e) from e

    def write(self, key: str, text: str) -> None:
        path = self.path_for(key)
        tmp_name: str | None = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.directory, suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise self._error(key, "write", e) from e

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise self._error(key, "delete", e) from e

    def keys(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        start = len(self.prefix)
        return sorted(p.stem[start:] for p in self.directory.glob(f"{self.prefix}*.json"))


class InMemoryStore(SnapshotStore):
    """Dictionary backed store for tests and embedding."""

    def __init__(self, prefix: str = "", initial: dict[str, str] | None = None):
        super().__init__(prefix)
        self.data: dict[str, str] = {}
        for key, text in (initial or {}).items():
            self.data[f"{prefix}{key}"] = text
        # Simulates a full quota: every write raises
        self.fail_writes = False
        self.writes: list[str] = []

    def read(self, key: str) -> str | None:
        return self.data.get(f"{self.prefix}{key}")

    def write(self, key: str, text: str) -> None:
        if self.fail_writes:
            raise PersistenceError(
                message=f"Quota exceeded writing snapshot '{key}'",
                details=StorageErrorDetails(source="in_memory_store", operation="write", key=key),
            )
        self.data[f"{self.prefix}{key}"] = text
        self.writes.append(key)

    def delete(self, key: str) -> None:
        self.data.pop(f"{self.prefix}{key}", None)

    def keys(self) -> list[str]:
        start = len(self.prefix)
        return sorted(k[start:] for k in self.data if k.startswith(self.prefix))
