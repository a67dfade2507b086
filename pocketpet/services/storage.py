# pocketpet/services/storage.py
"""String key/value storage backends.

The roster is persisted the way a browser would keep it in local storage: a
handful of keys holding JSON text. Backends only move strings around; parsing
and repair live in ``persistence``.
"""
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from pymongo import ReplaceOne
from pymongo.errors import PyMongoError
from pocketpet.core.database import close_mongo_connection, connect_to_mongo
from pocketpet.core.exceptions import StorageConfigError, StorageError
from pocketpet.core.settings import Settings
import structlog

log = structlog.get_logger(__name__)


class StorageBackend(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored text for ``key``, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    def set_many(self, values: Dict[str, str]) -> None:
        """Store several keys in one write where the backend allows it."""
        for key, value in values.items():
            self.set(key, value)

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    def close(self) -> None:
        pass


class MemoryBackend(StorageBackend):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileBackend(StorageBackend):
    """All keys in one JSON object on disk, replaced atomically on write."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            self._move_aside(e)
            return {}
        except OSError as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict):
            log.error("Storage file does not hold an object, ignoring it.", path=str(self.path))
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _move_aside(self, error: json.JSONDecodeError) -> None:
        backup = self.path.with_name(self.path.name + ".corrupt")
        log.error("Storage file is not valid JSON, moving it aside.", path=str(self.path),
                  backup=str(backup), error=str(error))
        try:
            os.replace(self.path, backup)
        except OSError as e:
            raise StorageError(f"Could not move corrupt {self.path} aside: {e}") from e

    def _write(self, data: Dict[str, str]) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=directory)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e
        finally:
            # Only still there when the replace did not happen.
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, str]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class MongoBackend(StorageBackend):
    """One document per key: ``{"_id": key, "value": text}``."""

    def __init__(self, collection):
        self.collection = collection

    def get(self, key: str) -> Optional[str]:
        try:
            doc = self.collection.find_one({"_id": key})
        except PyMongoError as e:
            log.error("MongoDB read failed", key=key, error=str(e))
            raise StorageError(f"Could not read {key!r}: {e}", key=key) from e
        if doc is None:
            return None
        value = doc.get("value")
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        try:
            self.collection.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)
        except PyMongoError as e:
            log.error("MongoDB write failed", key=key, error=str(e))
            raise StorageError(f"Could not write {key!r}: {e}", key=key) from e

    def set_many(self, values: Dict[str, str]) -> None:
        requests = [ReplaceOne({"_id": key}, {"_id": key, "value": value}, upsert=True)
                    for key, value in values.items()]
        try:
            self.collection.bulk_write(requests, ordered=True)
        except PyMongoError as e:
            log.error("MongoDB write failed", keys=list(values), error=str(e))
            raise StorageError(f"Could not write {sorted(values)!r}: {e}", key=",".join(values)) from e

    def delete(self, key: str) -> None:
        try:
            self.collection.delete_one({"_id": key})
        except PyMongoError as e:
            log.error("MongoDB delete failed", key=key, error=str(e))
            raise StorageError(f"Could not delete {key!r}: {e}", key=key) from e

    def close(self) -> None:
        close_mongo_connection()


def build_storage_backend(config: Settings) -> StorageBackend:
    backend = config.STORAGE_BACKEND.strip().lower()
    if backend == "memory":
        return MemoryBackend()
    if backend == "file":
        return JsonFileBackend(config.STORAGE_PATH)
    if backend == "mongo":
        return MongoBackend(connect_to_mongo(config))
    raise StorageConfigError(f"Unknown STORAGE_BACKEND {config.STORAGE_BACKEND!r}; "
                             "expected memory, file or mongo")
