"""Protocol definitions for pluggable backends."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the raw ``{"t": epoch_ms, "v": value}`` entry for a key."""
        ...

    async def set(self, key: str, entry: dict[str, Any], ttl_ms: int | None = None) -> None:
        """Store a raw entry, replacing any previous one.

        Backends with native expiry may drop the entry after ``ttl_ms``.
        """
        ...
