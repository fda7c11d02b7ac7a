"""Content codec port."""

from typing import Protocol


class Codec(Protocol):
    """Byte-level transform applied to stored content (e.g. compression)."""

    name: str

    def encode(self, data: bytes) -> bytes: ...

    def decode(self, data: bytes) -> bytes: ...
