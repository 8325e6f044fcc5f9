from abc import ABC, abstractmethod
from typing import Any


class CredentialStore(ABC):
    """
    Key/value store for transient authorization flow state.

    Values are JSON-compatible dicts. ``get`` has soft-miss semantics: an
    absent key yields an empty dict rather than an error. Implementations
    must tolerate concurrent access to independent keys.
    """

    @abstractmethod
    def set(self, key: str, value: dict[str, Any]) -> None:
        """Store a value under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def get(self, key: str) -> dict[str, Any]:
        """Return the value for ``key``, or ``{}`` if absent."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key``. Removing an absent key is not an error."""
        pass

    @abstractmethod
    def compare_and_set(
        self, key: str, expected: dict[str, Any], value: dict[str, Any]
    ) -> bool:
        """
        Atomically replace the value for ``key`` with ``value`` if the current
        value equals ``expected``.

        Returns:
            bool: True if the value was replaced
        """
        pass
