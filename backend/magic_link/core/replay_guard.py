"""One-time-use enforcement for single-use magic link signatures.

A ReplayGuard records consumed signatures with a time-to-live equal to the
token's remaining lifetime. consume_once() is an atomic check-then-set:
of any number of concurrent callers with the same signature, exactly one
sees True.

Store outages surface as ReplayStoreUnavailableError. LinkRedeemer treats
that as non-fatal and falls back to signature + expiry checks alone.
"""

import threading
import time
from collections.abc import Callable
from typing import Protocol


class ReplayStoreUnavailableError(Exception):
    """The backing store for consumed signatures could not be reached."""


def validate_ttl(ttl_seconds: int) -> None:
    """Reject TTLs below one second.

    Raises:
        ValueError: If ttl_seconds < 1.
    """
    if ttl_seconds < 1:
        msg = f"ttl_seconds must be at least 1, got {ttl_seconds}"
        raise ValueError(msg)


class ReplayGuard(Protocol):
    """Records consumed single-use signatures."""

    async def consume_once(self, signature: str, ttl_seconds: int) -> bool:
        """Mark signature consumed.

        Returns:
            True if this call consumed it, False if it was already consumed.

        Raises:
            ValueError: If ttl_seconds < 1.
            ReplayStoreUnavailableError: If the backing store is down.
        """
        ...

    async def purge_expired(self) -> int:
        """Forget records whose TTL has passed.

        Returns:
            Number of records removed.

        Raises:
            ReplayStoreUnavailableError: If the backing store is down.
        """
        ...


class InMemoryReplayGuard:
    """Process-local replay guard.

    Suitable for a single worker process. Entries expire lazily on access
    and via purge_expired().

    Args:
        clock: Monotonic seconds source. Injected by tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, float] = {}

    async def consume_once(self, signature: str, ttl_seconds: int) -> bool:
        validate_ttl(ttl_seconds)
        with self._lock:
            now = self._clock()
            expires = self._entries.get(signature)
            if expires is not None and expires > now:
                return False
            self._entries[signature] = now + ttl_seconds
            return True

    async def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [sig for sig, exp in self._entries.items() if exp <= now]
            for sig in expired:
                del self._entries[sig]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
