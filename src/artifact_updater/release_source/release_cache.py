"""
Time-bounded in-memory cache of release metadata.
"""

import threading
import time
from typing import Callable, Dict, Optional

from artifact_updater.artifact_models.release import ReleaseMetadata

DEFAULT_TTL_SECONDS = 300.0


class CacheEntry:
    """A cached release and the time it was fetched."""

    __slots__ = ("release", "timestamp")

    def __init__(self, release: ReleaseMetadata, timestamp: float):
        self.release = release
        self.timestamp = timestamp


class ReleaseCache:
    """
    Memoizes release lookups per source repository.

    Entries expire ``ttl_seconds`` after they were stored and are evicted on
    the first lookup that finds them expired. All access goes through a lock
    so concurrent artifact checks can share one cache.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: How long an entry stays valid
            clock: Monotonic time source, replaceable in tests
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, source_id: str) -> Optional[ReleaseMetadata]:
        """
        Get the cached release for a source.

        Args:
            source_id: Repository identifier, e.g. "owner/repo"

        Returns:
            The cached release, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(source_id)
            if entry is None:
                return None

            if self._clock() - entry.timestamp >= self.ttl_seconds:
                del self._entries[source_id]
                return None

            return entry.release

    def put(self, source_id: str, release: ReleaseMetadata) -> None:
        """Store ``release`` for ``source_id``, replacing any previous entry."""
        with self._lock:
            self._entries[source_id] = CacheEntry(release, self._clock())

    def clear(self, source_id: Optional[str] = None) -> None:
        """
        Remove cached entries.

        Args:
            source_id: Entry to drop; all entries are dropped when omitted
        """
        with self._lock:
            if source_id is None:
                self._entries.clear()
            else:
                self._entries.pop(source_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, source_id: str) -> bool:
        return self.get(source_id) is not None
