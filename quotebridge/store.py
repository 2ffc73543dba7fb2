"""Thread-safe in-memory correlation store."""
import threading
from typing import Dict, Generic, Optional, TypeVar
from uuid import UUID

V = TypeVar("V")


class CorrelationStore(Generic[V]):
    """
    Mapping from a correlation identifier to the latest value seen for it.

    Every operation takes the internal lock for the duration of a single dict
    access, so callers never hold it and no lock is kept across an await.
    Entries live for the lifetime of the process.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[UUID, V] = {}
        self._lock = threading.Lock()

    def put(self, key: UUID, value: V) -> Optional[V]:
        """
        Insert or overwrite the value for ``key``.

        Returns:
            The value previously stored under ``key``, if any
        """
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = value
            return previous

    def get(self, key: UUID) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def discard(self, key: UUID) -> bool:
        """Remove ``key``; returns False when it was not present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def snapshot(self) -> Dict[UUID, V]:
        """Return a copy of all entries; mutating it leaves the store untouched."""
        with self._lock:
            return dict(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
