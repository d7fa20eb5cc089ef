"""Single-use, time-bounded challenge storage.

Every ceremony files its challenge under a key (``reg_<user>``,
``auth_<user>`` or ``ceremony_<id>``). A finish step must find a
live entry under that key, which is the anti-replay gate: once consumed
or expired, the ceremony cannot complete.

Expiry is checked on every read, so an entry is dead at its deadline
even if nothing has evicted it yet.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGE_TTL_MS = 300000


@dataclass(frozen=True)
class ChallengeEntry:
    """A stored challenge and its absolute expiry (clock seconds)."""

    value: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ChallengeLedger(ABC):
    """Contract for challenge storage.

    Absence is a normal outcome; none of these methods raise for a
    missing or expired key.
    """

    @abstractmethod
    def issue(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Return the live challenge for ``key`` without consuming it."""

    @abstractmethod
    def consume(self, key: str) -> None:
        """Remove the entry for ``key``. No-op when absent."""

    @abstractmethod
    def take(self, key: str) -> ChallengeEntry | None:
        """Atomically read and remove the live entry for ``key``."""

    @abstractmethod
    def restore(self, key: str, entry: ChallengeEntry) -> bool:
        """Put back an entry returned by :meth:`take`.

        Only succeeds when the key is free and the entry has not expired,
        so a newer issue always wins over a restore.
        """


class InMemoryChallengeLedger(ChallengeLedger):
    """Process-local ledger for a single application instance.

    Thread-safe: all access goes through one lock so ``take`` cannot
    interleave with another ``take`` or ``read`` on the same key.

    Args:
        default_ttl_ms: TTL used when ``issue`` gets none
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_CHALLENGE_TTL_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._entries: dict[str, ChallengeEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def issue(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        now = self._clock()
        with self._lock:
            self._purge_locked(now)
            self._entries[key] = ChallengeEntry(value=value, expires_at=now + ttl / 1000)
        logger.debug("Challenge issued for %s (ttl=%dms)", key, ttl)

    def read(self, key: str) -> str | None:
        with self._lock:
            entry = self._live_entry_locked(key)
        return entry.value if entry else None

    def consume(self, key: str) -> None:
        with self._lock:
            removed = self._entries.pop(key, None)
        if removed is not None:
            logger.debug("Challenge consumed for %s", key)

    def take(self, key: str) -> ChallengeEntry | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is not None:
                del self._entries[key]
        return entry

    def restore(self, key: str, entry: ChallengeEntry) -> bool:
        now = self._clock()
        with self._lock:
            if key in self._entries and not self._entries[key].is_expired(now):
                return False
            if entry.is_expired(now):
                self._entries.pop(key, None)
                return False
            self._entries[key] = entry
        return True

    def purge_expired(self) -> int:
        """Evict every expired entry and return how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def clear(self) -> None:
        """Drop all entries (application shutdown, test teardown)."""
        with self._lock:
            self._entries.clear()

    def _live_entry_locked(self, key: str) -> ChallengeEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug("Challenge expired for %s", key)
            return None
        return entry

    def _purge_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)
