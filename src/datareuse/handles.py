"""
handles.py — Canonical handle types

Callers never receive the store's internals, only handles:

  FrozenList  — immutable Sequence, the canonical form of list/tuple
  FrozenMap   — immutable Mapping, keys kept in canonical (sorted) order
  FrozenRef   — immutable single-value box, the canonical form of Ref

Handles are created exclusively by the engine. Each one is built as an
empty placeholder first (so cyclic input can point back at it), filled
once its children are canonical, then keyed and published. After that any
attempt to modify it raises ImmutableValueError.

``Ref`` is the mutable input-side box used to express a reference to a
single value (including a reference to itself).
"""

from __future__ import annotations
import reprlib
from collections.abc import Mapping, Sequence
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import ImmutableValueError

__all__ = [
    "Ref",
    "Canonical",
    "FrozenList",
    "FrozenMap",
    "FrozenRef",
    "children",
    "thaw",
]


class Ref:
    """Mutable single-value reference, the input form of a FrozenRef."""

    __slots__ = ("value",)

    def __init__(self, value: Any = None):
        self.value = value

    @reprlib.recursive_repr()
    def __repr__(self) -> str:
        return f"Ref({self.value!r})"


# ---------------------------------------------------------------------------
# Canonical handles
# ---------------------------------------------------------------------------

class Canonical:
    """Base for every handle the engine hands out.

    Equality and hashing follow the identity key: two handles are equal
    exactly when they canonicalize the same structure under the same
    identity scheme.
    """

    __slots__ = ("_key",)

    def __new__(cls, *args: Any, **kwargs: Any):
        raise TypeError(
            f"{cls.__name__} instances are produced by Reuser.reuse(), "
            "not constructed directly"
        )

    @classmethod
    def _placeholder(cls):
        node = object.__new__(cls)
        object.__setattr__(node, "_key", None)
        return node

    def _check_unpublished(self) -> None:
        if self._key is not None:
            raise ImmutableValueError(f"{type(self).__name__} is already published")

    def _set_key(self, key: bytes) -> None:
        self._check_unpublished()
        object.__setattr__(self, "_key", key)

    @property
    def key(self) -> Optional[bytes]:
        """Identity key under which this handle is stored."""
        return self._key

    def __setattr__(self, name: str, value: Any) -> None:
        raise ImmutableValueError(f"cannot set {type(self).__name__}.{name}")

    def __delattr__(self, name: str) -> None:
        raise ImmutableValueError(f"cannot delete {type(self).__name__}.{name}")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Canonical):
            return self._key == other._key
        return NotImplemented

    def __ne__(self, other: object) -> bool:
        if isinstance(other, Canonical):
            return self._key != other._key
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._key)

    # Immutable: copies are the same object, like tuple.
    def __copy__(self):
        return self

    def __deepcopy__(self, memo: Dict[int, Any]):
        return self


class FrozenList(Canonical, Sequence):
    """Canonical ordered sequence."""

    __slots__ = ("_items",)

    def _fill(self, items: Iterable[Any]) -> None:
        self._check_unpublished()
        object.__setattr__(self, "_items", tuple(items))

    def __getitem__(self, index):
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __setitem__(self, index, value) -> None:
        raise ImmutableValueError(f"cannot assign FrozenList[{index!r}]")

    def __delitem__(self, index) -> None:
        raise ImmutableValueError(f"cannot delete FrozenList[{index!r}]")

    @reprlib.recursive_repr()
    def __repr__(self) -> str:
        return f"FrozenList({list(self._items)!r})"


class FrozenMap(Canonical, Mapping):
    """Canonical key/value mapping. Iteration follows canonical key order."""

    __slots__ = ("_data",)

    def _fill(self, pairs: Iterable[Tuple[Any, Any]]) -> None:
        self._check_unpublished()
        object.__setattr__(self, "_data", dict(pairs))

    def __getitem__(self, key):
        return self._data[key]

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __setitem__(self, key, value) -> None:
        raise ImmutableValueError(f"cannot assign FrozenMap[{key!r}]")

    def __delitem__(self, key) -> None:
        raise ImmutableValueError(f"cannot delete FrozenMap[{key!r}]")

    @reprlib.recursive_repr()
    def __repr__(self) -> str:
        return f"FrozenMap({self._data!r})"


class FrozenRef(Canonical):
    """Canonical reference to exactly one value."""

    __slots__ = ("_value",)

    def _fill(self, items: Iterable[Any]) -> None:
        self._check_unpublished()
        (value,) = items
        object.__setattr__(self, "_value", value)

    @property
    def value(self) -> Any:
        return self._value

    @reprlib.recursive_repr()
    def __repr__(self) -> str:
        return f"FrozenRef({self._value!r})"


def children(node: Canonical) -> Iterator[Any]:
    """Yield a filled handle's children in canonical order.

    Map entries are flattened to ``key, value, key, value, ...``.
    """
    if isinstance(node, FrozenList):
        yield from node._items
    elif isinstance(node, FrozenMap):
        for key, value in node._data.items():
            yield key
            yield value
    else:
        yield node._value


# ---------------------------------------------------------------------------
# Copy-out
# ---------------------------------------------------------------------------

def thaw(value: Any) -> Any:
    """Return a mutable deep copy of ``value``.

    FrozenList/list/tuple become ``list``, FrozenMap/Mapping become ``dict``,
    FrozenRef/Ref become ``Ref``. Scalars and None are returned as-is.
    Shared sub-structures stay shared and cycles are reproduced.
    """
    memo: Dict[int, Tuple[Any, Any]] = {}
    pending: List[Tuple[Any, Any]] = []

    def shell(source: Any) -> Any:
        if isinstance(source, (FrozenList, list, tuple)):
            target: Any = []
        elif isinstance(source, Mapping):
            target = {}
        elif isinstance(source, (FrozenRef, Ref)):
            target = Ref()
        else:
            return source
        seen = memo.get(id(source))
        if seen is not None:
            return seen[1]
        memo[id(source)] = (source, target)
        pending.append((source, target))
        return target

    root = shell(value)
    while pending:
        source, target = pending.pop()
        if isinstance(target, list):
            target.extend(shell(item) for item in source)
        elif isinstance(target, dict):
            for key, item in source.items():
                target[key] = shell(item)
        else:
            target.value = shell(source.value)
    return root
