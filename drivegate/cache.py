"""
In-memory metadata cache.

Receives APIObjects from the gateway and the change poller. Stores are
upserts keyed by object id, so the same object reported twice replaces
the earlier copy.
"""

import threading
from typing import Optional, Protocol

from .drive.objects import APIObject


class Cache(Protocol):
    """What the gateway needs from a metadata cache."""

    def store(self, obj: APIObject) -> None:
        """Insert or replace obj by id. Raises on failure."""


class MemoryCache:
    """Thread-safe dict-backed Cache."""

    def __init__(self):
        self._lock = threading.Lock()
        self.objects: dict[str, APIObject] = {}  # id -> object

    def store(self, obj: APIObject):
        with self._lock:
            self.objects[obj.id] = obj

    def get(self, object_id: str) -> Optional[APIObject]:
        with self._lock:
            return self.objects.get(object_id)

    def children(self, parent_id: str) -> list[APIObject]:
        """Cached objects that list parent_id among their parents."""
        with self._lock:
            return [o for o in self.objects.values() if parent_id in o.parents]

    def clear(self):
        with self._lock:
            self.objects.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self.objects)
