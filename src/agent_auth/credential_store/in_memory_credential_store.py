"""
In-Memory Credential Store

Default store for single-process deployments. State is lost on restart.
"""

import copy
import logging
import threading
import time
from typing import Any

from agent_auth.credential_store.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class InMemoryCredentialStore(CredentialStore):
    """
    Thread-safe in-memory credential store.

    Entries optionally expire ``ttl_seconds`` after they were last set.
    Expired entries read as a miss and are purged lazily.
    """

    def __init__(self, ttl_seconds: float | None = None):
        self.ttl_seconds = ttl_seconds
        # {key: (value, expires_at or None)}
        self._storage: dict[str, tuple[dict[str, Any], float | None]] = {}
        self._lock = threading.Lock()

    def _is_expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and time.monotonic() >= expires_at

    def set(self, key: str, value: dict[str, Any]) -> None:
        expires_at = time.monotonic() + self.ttl_seconds if self.ttl_seconds else None
        with self._lock:
            self._storage[key] = (copy.deepcopy(value), expires_at)

    def get(self, key: str) -> dict[str, Any]:
        with self._lock:
            entry = self._storage.get(key)
            if entry is None:
                return {}
            value, expires_at = entry
            if self._is_expired(expires_at):
                del self._storage[key]
                logger.debug(f"Evicted expired credential store entry: {key}")
                return {}
            return copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._storage.pop(key, None)

    def compare_and_set(
        self, key: str, expected: dict[str, Any], value: dict[str, Any]
    ) -> bool:
        expires_at = time.monotonic() + self.ttl_seconds if self.ttl_seconds else None
        with self._lock:
            entry = self._storage.get(key)
            if entry is None or self._is_expired(entry[1]) or entry[0] != expected:
                return False
            self._storage[key] = (copy.deepcopy(value), expires_at)
            return True

    def purge_expired(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            expired = [k for k, (_, exp) in self._storage.items() if self._is_expired(exp)]
            for key in expired:
                del self._storage[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired credential store entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._storage)
