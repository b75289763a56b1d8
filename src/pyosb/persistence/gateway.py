"""Key-value gateway interface and the in-memory backend."""

from __future__ import annotations

from typing import Protocol


class KeyValueStore(Protocol):
    """Structural interface of a durable key-value backend.

    Every method raises :class:`pyosb.exceptions.PersistenceError` on
    failure.  Having a protocol here makes it easy to pass test doubles.
    """

    async def create_store(self, key: str) -> None:
        """Prepare the backend for *key*.  Must be idempotent."""
        ...

    async def load(self, key: str) -> str | None:
        """Return the stored value, or ``None`` when nothing is stored."""
        ...

    async def save(self, key: str, data: str) -> None:
        ...

    async def close(self) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local backend; state does not survive a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def create_store(self, key: str) -> None:
        return None

    async def load(self, key: str) -> str | None:
        return self._data.get(key)

    async def save(self, key: str, data: str) -> None:
        self._data[key] = data

    async def close(self) -> None:
        return None
