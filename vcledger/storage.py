"""
Collection storage for issuers, issue requests and published credentials.

The core only depends on the narrow CollectionStore contract: list, find,
upsert, insert and an atomic read-modify-write ``update``. Each collection
has a single writer lock, so concurrent callers never interleave a read and
a write of the same collection.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from vcledger.exceptions import StorageError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Updater = Callable[[Record], Record]


class CollectionStore(ABC):
    """Abstract interface for a keyed collection of JSON records."""

    def __init__(self, key_field: str):
        self.key_field = key_field
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """The collection's writer lock."""
        return self._lock

    @abstractmethod
    def _load(self) -> List[Record]:
        """Return every record, in insertion order."""
        pass

    @abstractmethod
    def _save(self, records: List[Record]) -> None:
        """Replace the whole collection."""
        pass

    def _index_of(self, records: List[Record], key: str) -> int:
        for i, record in enumerate(records):
            if record.get(self.key_field) == key:
                return i
        return -1

    def list(self) -> List[Record]:
        """All records, in insertion order."""
        with self._lock:
            return copy.deepcopy(self._load())

    def find(self, key: str) -> Optional[Record]:
        """The record stored under key, or None."""
        with self._lock:
            records = self._load()
            idx = self._index_of(records, key)
            return copy.deepcopy(records[idx]) if idx >= 0 else None

    def upsert(self, record: Record) -> Record:
        """Insert record, or replace the full record stored under the same key."""
        key = record[self.key_field]
        with self._lock:
            records = self._load()
            idx = self._index_of(records, key)
            if idx >= 0:
                records[idx] = copy.deepcopy(record)
            else:
                records.append(copy.deepcopy(record))
            self._save(records)
        return record

    def insert(self, record: Record) -> bool:
        """Insert record only if its key is absent. Returns False if it already exists."""
        key = record[self.key_field]
        with self._lock:
            records = self._load()
            if self._index_of(records, key) >= 0:
                return False
            records.append(copy.deepcopy(record))
            self._save(records)
        return True

    def update(self, key: str, fn: Updater) -> Optional[Record]:
        """
        Atomically apply fn to the record stored under key.

        fn receives a copy of the current record and returns the replacement.
        If fn raises, nothing is written and the exception propagates.

        Returns:
            The new record, or None if no record exists under key.
        """
        with self._lock:
            records = self._load()
            idx = self._index_of(records, key)
            if idx < 0:
                return None
            updated = fn(copy.deepcopy(records[idx]))
            if updated.get(self.key_field) != key:
                raise StorageError(f"update may not change {self.key_field}")
            records[idx] = copy.deepcopy(updated)
            self._save(records)
            return copy.deepcopy(updated)


class MemoryStore(CollectionStore):
    """
    In-process collection for tests and throwaway deployments.

    Example:
        >>> store = MemoryStore(key_field="issuerId")
        >>> store.upsert({"issuerId": "acme", "did": "did:ethr:..."})
        >>> store.find("acme")["did"]
        'did:ethr:...'
    """

    def __init__(self, key_field: str):
        super().__init__(key_field)
        self._records: List[Record] = []

    def _load(self) -> List[Record]:
        return self._records

    def _save(self, records: List[Record]) -> None:
        self._records = records


class JsonFileStore(CollectionStore):
    """
    Collection persisted as a JSON array in a single file.

    The file is re-read on every operation so that records written by an
    earlier process are visible, and written atomically (temp file followed
    by rename) so a crash never leaves a truncated collection behind.
    """

    def __init__(self, path: str, key_field: str):
        super().__init__(key_field)
        self.path = path

    def _load(self) -> List[Record]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}")
        if not isinstance(data, list):
            raise StorageError(f"{self.path} does not contain a JSON array")
        return data

    def _save(self, records: List[Record]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write {self.path}: {e}")
            raise StorageError(f"Failed to write {self.path}: {e}")
