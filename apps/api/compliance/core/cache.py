"""Process-local, time-expiring cache for read-heavy reference data.

Entries are evaluated lazily: an expired entry is deleted the first time it
is read and reported as absent. There is no background sweeper and no
automatic invalidation; writers of cached data call ``clear`` themselves.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

DEFAULT_TTL_SECONDS = 30 * 60

# Keys shared by the reference-data readers and their writers.
CATEGORIES_KEY = "categories"
VIOLATION_TYPES_KEY = "violation_types"
HEARING_OFFICERS_KEY = "hearing_officers"


@dataclass
class _Entry:
    value: Any
    expires_at: float


class EphemeralCache:
    """Key/value store with a per-entry time-to-live."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: dict[str, _Entry] = {}

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._store[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return default
        if self._clock() > entry.expires_at:
            del self._store[key]
            return default
        return entry.value

    def has(self, key: str) -> bool:
        marker = object()
        return self.get(key, marker) is not marker

    def clear(self, key: str) -> None:
        self._store.pop(key, None)

    def clear_all(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
