"""Time-bounded memoization of upstream lookups."""

import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class TtlCache(Generic[K, V]):
    """Key/value cache whose entries go stale after ``ttl`` seconds.

    The caller passes the current time on every access so expiry is
    deterministic under test. Entries are only replaced by a later ``put``;
    there is no other invalidation.
    """

    def __init__(self, ttl: float, name: str = "cache") -> None:
        if ttl < 0:
            raise ValueError(f"TTL must be non-negative, got {ttl}")
        self.ttl: float = ttl
        self.name: str = name
        self._entries: dict[K, tuple[V, float]] = {}

    def get(self, key: K, now: float) -> V | None:
        """Return the cached value if it is still fresh, otherwise None."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, stored_at = entry
        if now - stored_at < self.ttl:
            logger.debug(f"{self.name}: hit for {key!r}")
            return value
        return None

    def put(self, key: K, value: V, now: float) -> None:
        """Store a value fetched at ``now``."""
        self._entries[key] = (value, now)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
