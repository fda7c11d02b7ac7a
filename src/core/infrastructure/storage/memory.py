"""In-process key-value store."""

import copy
from collections.abc import Iterable, Mapping
from typing import Any

from src.core.domain.ports.key_value_store import normalize_keys


class InMemoryKeyValueStore:
    """Dictionary-backed store.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store, mirroring a serializing backend.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        return {
            key: copy.deepcopy(self._data[key])
            for key in normalize_keys(keys)
            if key in self._data
        }

    async def set(self, items: Mapping[str, Any]) -> None:
        for key, value in items.items():
            self._data[key] = copy.deepcopy(value)

    async def remove(self, keys: str | Iterable[str]) -> None:
        for key in normalize_keys(keys):
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
