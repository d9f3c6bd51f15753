"""Mapping that compares string keys ignoring case."""

from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from typing import Any


class CaseInsensitiveDict(MutableMapping[str, Any]):
    """Ordered dict keyed by ``str.casefold()``.

    The spelling of the first insertion of a key is kept for iteration, so a
    later ``d["outputpath"] = ...`` updates ``OutputPath`` in place.
    """

    def __init__(
        self, data: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None
    ) -> None:
        """Initialize from an optional mapping or iterable of pairs."""
        self._store: dict[str, tuple[str, Any]] = {}
        if data is not None:
            self.update(data)

    def __setitem__(self, key: str, value: Any) -> None:
        folded = key.casefold()
        existing = self._store.get(folded)
        original = existing[0] if existing else key
        self._store[folded] = (original, value)

    def __getitem__(self, key: str) -> Any:
        return self._store[key.casefold()][1]

    def __delitem__(self, key: str) -> None:
        del self._store[key.casefold()]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._store

    def copy(self) -> "CaseInsensitiveDict":
        """Return a shallow copy."""
        return CaseInsensitiveDict(self.items())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"
