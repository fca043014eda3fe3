"""Durable local cache of project state.

Keys are namespaced per project:
  project-state:{P} → serialized ProjectState
  project-meta:{P}  → serialized SyncMetadata

Reads and writes are synchronous and best-effort. A failed write is returned
as an error value, never raised, and an unreadable payload reads as absent.
"""

import errno
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional, Protocol
from urllib.parse import quote

import pydantic

from designkit.core.errors import PersistenceError, PersistenceQuotaExceeded
from designkit.core.logging import get_logger
from designkit.core.schemas_project import ProjectState, SyncMetadata

logger = get_logger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, errno.EDQUOT}


def state_key(project_id: str) -> str:
    return f"project-state:{project_id}"


def meta_key(project_id: str) -> str:
    return f"project-meta:{project_id}"


# ============================================================================
# Backends
# ============================================================================


class StorageBackend(Protocol):
    """Raw string storage. ``set_item`` raises PersistenceError on failure."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryBackend:
    """In-process storage with a byte capacity across all keys."""

    def __init__(self, max_bytes: int = 5_000_000):
        self.max_bytes = max_bytes
        self._items: dict[str, str] = {}
        self._lock = threading.Lock()

    def _size(self, items: dict[str, str]) -> int:
        return sum(len(k.encode()) + len(v.encode()) for k, v in items.items())

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            candidate = {**self._items, key: value}
            used = self._size(candidate)
            if used > self.max_bytes:
                raise PersistenceQuotaExceeded(
                    f"Writing {key} needs {used} bytes, capacity is {self.max_bytes}"
                )
            self._items = candidate

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class FileBackend:
    """One JSON file per key under a cache directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Unreadable cache entry {key}: {e}")
            return None

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file in the same directory, then rename into place
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            if e.errno in _QUOTA_ERRNOS:
                raise PersistenceQuotaExceeded(f"No space left writing {key}") from e
            raise PersistenceError(f"Failed writing {key}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


# ============================================================================
# Store
# ============================================================================


class ProjectStore:
    """Key-value cache of project state and sync metadata."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def read(self, key: str) -> Optional[Any]:
        """Read and decode a value. Missing or corrupted payloads return None."""
        raw = self.backend.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Discarding corrupted cache entry {key}: {e}")
            return None

    def write(self, key: str, value: Any) -> Optional[PersistenceError]:
        """Encode and write a value. Returns the failure instead of raising it."""
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot serialize cache entry {key}: {e}")
            return PersistenceError(f"Cannot serialize {key}: {e}")

        try:
            self.backend.set_item(key, payload)
        except PersistenceError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return e
        return None

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    def load_state(self, project_id: str) -> Optional[ProjectState]:
        data = self.read(state_key(project_id))
        if data is None:
            return None
        try:
            return ProjectState.model_validate(data)
        except pydantic.ValidationError as e:
            logger.warning(f"Cached state for {project_id} failed validation, ignoring: {e.error_count()} errors")
            return None

    def load_meta(self, project_id: str) -> SyncMetadata:
        data = self.read(meta_key(project_id))
        if data is None:
            return SyncMetadata()
        try:
            return SyncMetadata.model_validate(data)
        except pydantic.ValidationError:
            logger.warning(f"Cached sync metadata for {project_id} failed validation, ignoring")
            return SyncMetadata()

    def save_state(self, project_id: str, state: ProjectState) -> Optional[PersistenceError]:
        return self.write(state_key(project_id), state.model_dump(mode="json"))

    def save_meta(self, project_id: str, meta: SyncMetadata) -> Optional[PersistenceError]:
        return self.write(meta_key(project_id), meta.model_dump(mode="json"))


def build_store(directory: str | Path | None = None, max_bytes: int | None = None) -> ProjectStore:
    """Store backed by ``directory`` when given, otherwise in memory."""
    if directory:
        return ProjectStore(FileBackend(directory))
    if max_bytes is not None:
        return ProjectStore(MemoryBackend(max_bytes=max_bytes))
    return ProjectStore(MemoryBackend())
