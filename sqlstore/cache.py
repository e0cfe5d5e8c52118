"""Process-local cache of entity rows, keyed by Key."""

import threading
from collections import OrderedDict
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .key import Key


class Cache:
    """Thread-safe Key → row store.

    Rows are flat column → value mappings. Each ``put`` stores a read-only copy
    that replaces the previous entry as a whole, so a reader either sees the
    old row or the new one. With ``capacity`` set, the least recently used
    entry is evicted once the cache is full; ``capacity=None`` keeps everything.
    """

    def __init__(self, capacity: Optional[int] = None):
        if capacity is not None and capacity < 1:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._rows: OrderedDict[Key, Mapping[str, Any]] = OrderedDict()
        self._lock = threading.RLock()

    @property
    def capacity(self) -> Optional[int]:
        return self._capacity

    def get(self, key: Key) -> Optional[Mapping[str, Any]]:
        """Return the cached row for key, or None on a miss."""
        with self._lock:
            row = self._rows.get(key)
            if row is not None and self._capacity is not None:
                self._rows.move_to_end(key)
            return row

    def put(self, key: Key, row: Mapping[str, Any]) -> None:
        """Store (or replace) the row for key."""
        if not key.has_id():
            raise ValueError(f"Cannot cache a row for unsaved key {key!r}")
        frozen = MappingProxyType(dict(row))
        with self._lock:
            self._rows[key] = frozen
            self._rows.move_to_end(key)
            if self._capacity is not None:
                while len(self._rows) > self._capacity:
                    self._rows.popitem(last=False)

    def invalidate(self, key: Key) -> None:
        """Evict the entry for key, if any."""
        with self._lock:
            self._rows.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def __contains__(self, key: Key) -> bool:
        with self._lock:
            return key in self._rows

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
