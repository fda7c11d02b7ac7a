"""Key-value persistence port.

Registries persist their metadata snapshots and asset bytes through this port,
so the application core never depends on a concrete storage backend.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Asynchronous key-value store used for registry metadata and asset bytes."""

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        """Return a mapping of the requested keys which exist in the store."""
        ...

    async def set(self, items: Mapping[str, Any]) -> None:
        """Store every key/value pair of ``items``."""
        ...

    async def remove(self, keys: str | Iterable[str]) -> None:
        """Delete the given keys; missing keys are ignored."""
        ...


def normalize_keys(keys: str | Iterable[str]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)
