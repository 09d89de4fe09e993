from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, TypeVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Read-only mapping used for class-level registries and configuration.

    Model classes keep their relation factories in a ``frozendict`` so a
    subclass can't mutate the registry of its base, and ``MapperConfig``
    keeps engine options in one so the config stays immutable.

    The hash is computed lazily: a ``frozendict`` holding unhashable values
    (e.g. ``connect_args``) is still usable as long as nobody hashes it.

    Example:
        >>> fd = frozendict(posts=1)
        >>> fd.merge({"author": 2})
        <frozendict {'posts': 1, 'author': 2}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: object) -> bool:
        return key in self._dict

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def merge(self, *others: Mapping[K, V] | Iterable[tuple[K, V]]) -> Self:
        """Return a new instance with the items of *others* laid over this one.

        Later mappings win on key conflicts, insertion order of the first
        occurrence is kept.
        """
        merged = dict(self._dict)
        for other in others:
            merged.update(other)

        return type(self)(merged)

    def __or__(self, other: Mapping[K, V]) -> Self:
        return self.merge(other)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash
