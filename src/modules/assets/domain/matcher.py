"""Selection of asset keys for bulk cache operations."""

import re
from collections.abc import Callable, Iterable

KeyPredicate = Callable[[str], bool]


class Matcher:
    """Decide whether an asset key is selected.

    A matcher is one of: an exact key, membership in a key set, or an
    arbitrary predicate over the key (regular expressions are compiled into
    a predicate).
    """

    __slots__ = ("_predicate", "description")

    def __init__(self, predicate: KeyPredicate, description: str) -> None:
        self._predicate = predicate
        self.description = description

    @classmethod
    def exact(cls, asset_key: str) -> "Matcher":
        return cls(lambda key: key == asset_key, f"key={asset_key!r}")

    @classmethod
    def keys(cls, asset_keys: Iterable[str]) -> "Matcher":
        selected = frozenset(asset_keys)
        return cls(lambda key: key in selected, f"keys={sorted(selected)!r}")

    @classmethod
    def pattern(cls, regex: str | re.Pattern[str]) -> "Matcher":
        compiled = re.compile(regex) if isinstance(regex, str) else regex
        return cls(lambda key: compiled.search(key) is not None, f"re={compiled.pattern!r}")

    @classmethod
    def predicate(cls, func: KeyPredicate) -> "Matcher":
        return cls(func, f"predicate={getattr(func, '__name__', 'fn')}")

    @classmethod
    def everything(cls) -> "Matcher":
        return cls(lambda key: True, "*")

    def __call__(self, asset_key: str) -> bool:
        return bool(self._predicate(asset_key))

    def __repr__(self) -> str:
        return f"Matcher({self.description})"


MatcherLike = Matcher | str | re.Pattern[str] | Iterable[str] | KeyPredicate


def as_matcher(value: MatcherLike) -> Matcher:
    """Coerce the accepted matcher spellings into a :class:`Matcher`."""
    if isinstance(value, Matcher):
        return value
    if isinstance(value, str):
        return Matcher.exact(value)
    if isinstance(value, re.Pattern):
        return Matcher.pattern(value)
    if callable(value):
        return Matcher.predicate(value)
    return Matcher.keys(value)
