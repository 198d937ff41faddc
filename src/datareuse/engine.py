"""
engine.py — Traversal engine (``reuse``)

Walks arbitrarily nested input, canonicalizes children before parents and
returns handles bound to the store's single shared instance of each
structure.

Core invariants:
  1. A compound's key is computed only after all its children are canonical.
  2. Canonical handles never change once published.
  3. Cyclic input collapses to a canonical cyclic structure; the walk visits
     each input node once.
  4. Traversal is iterative: nesting depth is bounded by memory (or by
     ReuseConfig.max_depth), never by the interpreter's recursion limit.
  5. A batch either passes type validation as a whole or touches nothing.

The engine is not a cache with eviction and it does not deduplicate values
that never pass through it.
"""

from __future__ import annotations
import hashlib
import logging
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import DepthExceededError, UnsupportedTypeError
from .guard import RecursionGuard
from .handles import Canonical, FrozenList, FrozenMap, FrozenRef, Ref
from .identity import (
    DEFAULT_DIGEST,
    IdentityResolver,
    ScalarPolicy,
    is_scalar,
    tag_of,
)
from .store import CanonicalStore, StoreStats

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReuseConfig:
    digest: str = DEFAULT_DIGEST
    scalar_policy: ScalarPolicy = ScalarPolicy.TYPED
    verify_digests: bool = False
    max_depth: Optional[int] = None

    def __post_init__(self) -> None:
        hashlib.new(self.digest)  # ValueError on unknown algorithms
        object.__setattr__(self, "scalar_policy", ScalarPolicy(self.scalar_policy))
        if self.max_depth is not None and self.max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {self.max_depth}")


# Open depth of a node that refers to no ancestor under construction.
_CLOSED = sys.maxsize

_LIST, _MAP, _REF = "list", "map", "ref"
_NODE_TYPES = {_LIST: FrozenList, _MAP: FrozenMap, _REF: FrozenRef}

_END = object()
_PUSHED = object()
_MISSING = object()


def _kind_of(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple, FrozenList)):
        return _LIST
    if isinstance(value, Mapping):
        return _MAP
    if isinstance(value, (Ref, FrozenRef)):
        return _REF
    return None


def _describe(value: Any) -> str:
    name = f"{type(value).__module__}.{type(value).__qualname__}"
    for base in (int, float, complex, str, bytes):
        if isinstance(value, base):
            # Enum members and other scalar subclasses are not interned as-is.
            return f"{name} (subclass of {base.__name__}; pass {base.__name__}(value) or .value)"
    return name


# ---------------------------------------------------------------------------
# Per-call traversal state
# ---------------------------------------------------------------------------

class _Visit:
    """Result of a finished input node, remembered for the rest of the call."""

    __slots__ = ("source", "handle", "open_depth")

    def __init__(self, source: Any, handle: Any, open_depth: int):
        self.source = source
        self.handle = handle
        self.open_depth = open_depth


class _Frame:
    """One compound input under construction."""

    __slots__ = ("source", "kind", "depth", "node", "handles", "open_depth",
                 "_items", "_key")

    def __init__(self, source: Any, kind: str, depth: int):
        self.source = source
        self.kind = kind
        self.depth = depth
        self.node = _NODE_TYPES[kind]._placeholder()
        self.handles: List[Any] = []
        self.open_depth = _CLOSED
        self._key: Any = None
        if kind == _LIST:
            self._items: Iterator[Any] = iter(source)
        elif kind == _MAP:
            self._items = iter(source.items())
        else:
            self._items = iter((source.value,))

    def next_child(self, intern_key) -> Any:
        item = next(self._items, _END)
        if item is _END or self.kind != _MAP:
            return item
        key, value = item
        self._key = intern_key(key)
        return value

    def accept(self, handle: Any, open_depth: int) -> None:
        if self.kind == _MAP:
            self.handles.append((self._key, handle))
        else:
            self.handles.append(handle)
        if open_depth < self.open_depth:
            self.open_depth = open_depth


class _Traversal:
    """Canonicalizes the values of a single reuse() call."""

    def __init__(self, reuser: "Reuser"):
        self.reuser = reuser
        self.resolver = reuser.resolver
        self.store = reuser.store
        self.max_depth = reuser.config.max_depth
        self.verify = reuser.config.verify_digests
        self.guard = RecursionGuard()
        self.visits: Dict[int, _Visit] = {}
        self.open_visits: Dict[int, _Visit] = {}

    def run(self, value: Any) -> Any:
        stack: List[_Frame] = []
        handle, _ = self._resolve(value, stack)
        if handle is not _PUSHED:
            return handle
        try:
            while True:
                frame = stack[-1]
                child = frame.next_child(self._intern_key)
                if child is _END:
                    stack.pop()
                    handle, open_depth = self._finish(frame)
                    if not stack:
                        return handle
                    stack[-1].accept(handle, open_depth)
                    continue
                handle, open_depth = self._resolve(child, stack)
                if handle is not _PUSHED:
                    frame.accept(handle, open_depth)
        finally:
            for frame in reversed(stack):
                self.guard.leave(frame.source)

    def _intern_key(self, key: Any) -> Any:
        return None if key is None else self.reuser._intern(key)

    def _resolve(self, value: Any, stack: List[_Frame]) -> Tuple[Any, int]:
        """Return ``(handle, open_depth)``, or push a frame and return _PUSHED."""
        if value is None:
            return None, _CLOSED
        if is_scalar(value):
            return self.reuser._intern(value), _CLOSED
        if isinstance(value, Canonical) and self.reuser.is_canonical(value):
            return value, _CLOSED

        kind = _kind_of(value)
        if kind is None:
            raise UnsupportedTypeError(_describe(value))
        if kind == _REF and value.value is None:
            return None, _CLOSED

        depth = self.guard.depth_of(value)
        if depth is not None:
            return stack[depth].node, depth
        visit = self.visits.get(id(value))
        if visit is not None:
            return visit.handle, visit.open_depth

        depth = len(stack)
        if self.max_depth is not None and depth >= self.max_depth:
            raise DepthExceededError(f"depth {depth + 1} > max_depth {self.max_depth}")
        self.guard.enter(value, depth)
        stack.append(_Frame(value, kind, depth))
        return _PUSHED, _CLOSED

    def _finish(self, frame: _Frame) -> Tuple[Any, int]:
        self.guard.leave(frame.source)
        node = frame.node
        if frame.kind == _MAP:
            key_of = self.resolver.key_of
            frame.handles.sort(key=lambda pair: key_of(pair[0]))
        if frame.kind == _REF and frame.handles[0] is None:
            # Ref whose target canonicalized to Null is Null itself.
            self.visits[id(frame.source)] = _Visit(frame.source, None, _CLOSED)
            return None, _CLOSED
        node._fill(frame.handles)

        if frame.open_depth < frame.depth:
            # Still points at an unfinished ancestor; keyed when that closes.
            visit = _Visit(frame.source, node, frame.open_depth)
            self.visits[id(frame.source)] = visit
            self.open_visits[id(node)] = visit
            return node, frame.open_depth

        winner = self._commit(node)
        self.visits[id(frame.source)] = _Visit(frame.source, winner, _CLOSED)
        return winner, _CLOSED

    def _commit(self, node: Canonical) -> Any:
        resolver = self.resolver
        order: List[Canonical] = []
        chunks = list(resolver.region_chunks(node, order))
        key = resolver.compound_key(tag_of(node), chunks)
        members = [
            (resolver.derived_key(member, key, index), member)
            for index, member in enumerate(order[1:], 1)
        ]
        for member_key, member in members:
            member._set_key(member_key)
        node._set_key(key)

        preimage = b"".join(chunks) if self.verify else None
        winner = self.store.insert_if_absent(key, node, preimage, members)

        for member_key, member in members:
            visit = self.open_visits.pop(id(member))
            visit.handle = member if winner is node else self.store.lookup(member_key)
            visit.open_depth = _CLOSED
        if members:
            logger.debug(
                "closed cyclic region of %d nodes (%s)",
                len(order), "new" if winner is node else "existing",
            )
        return winner


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class Reuser:
    """Canonicalization service bound to one CanonicalStore.

    Stores are injectable so that tests (or subsystems that want their own
    sharing domain) can use isolated instances.
    """

    def __init__(
        self,
        store: Optional[CanonicalStore] = None,
        config: Optional[ReuseConfig] = None,
    ):
        self.store = store if store is not None else CanonicalStore()
        self.config = config or ReuseConfig()
        self.resolver = IdentityResolver(self.config.digest, self.config.scalar_policy)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reuse(self, *values: Any) -> Tuple[Any, ...]:
        """Canonicalize every value and return the handles in the same order.

        Raises:
            UnsupportedTypeError: If any input contains a value that is not
                None, a scalar, a list/tuple, a mapping with scalar keys or a
                Ref. Raised before the store is touched.
            DepthExceededError: If nesting exceeds ``config.max_depth``.
            DigestCollisionError: With ``verify_digests``, if two different
                structures share a digest.
        """
        self._validate(values)
        traversal = _Traversal(self)
        handles = tuple(traversal.run(value) for value in values)
        logger.debug("reused %d value(s); store holds %d entries", len(values), len(self.store))
        return handles

    def reuse_one(self, value: Any) -> Any:
        (handle,) = self.reuse(value)
        return handle

    def prime(self, *values: Any) -> None:
        """Canonicalize ``values`` for later sharing, discarding the handles.

        Safe to call with temporaries: stored handles are always new objects
        built by the engine, never the caller's containers.
        """
        self.reuse(*values)

    def fold(self, container: Any) -> Any:
        """Replace the contents of a caller-owned list, dict or Ref in place.

        The container itself stays mutable and owned by the caller; only its
        items (and, for dicts, its keys) become canonical handles.
        """
        if isinstance(container, list):
            container[:] = self.reuse(*container)
        elif isinstance(container, dict):
            keys = list(container)
            self._check_map_keys(keys)
            handles = self.reuse(*keys, *container.values())
            container.clear()
            container.update(zip(handles[:len(keys)], handles[len(keys):]))
        elif isinstance(container, Ref):
            container.value = self.reuse_one(container.value)
        else:
            raise UnsupportedTypeError(f"cannot fold {_describe(container)} in place")
        return container

    def is_canonical(self, value: Any) -> bool:
        """True if ``value`` is the instance this store holds for its key."""
        if value is None:
            return True
        if is_scalar(value):
            return self.store.lookup(self.resolver.scalar_key(value), _MISSING) is value
        if isinstance(value, Canonical) and value.key is not None:
            return self.store.lookup(value.key, _MISSING) is value
        return False

    def snapshot(self):
        return self.store.snapshot()

    def stats(self) -> StoreStats:
        return self.store.stats()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _intern(self, value: Any) -> Any:
        return self.store.insert_if_absent(self.resolver.scalar_key(value), value)

    def _validate(self, values: Tuple[Any, ...]) -> None:
        """Reject unsupported input anywhere in ``values`` before any insert."""
        seen: Dict[int, Any] = {}
        pending = list(values)
        while pending:
            value = pending.pop()
            if value is None or is_scalar(value):
                continue
            if id(value) in seen:
                continue
            if isinstance(value, Canonical) and self.is_canonical(value):
                continue
            kind = _kind_of(value)
            if kind is None:
                raise UnsupportedTypeError(_describe(value))
            seen[id(value)] = value
            if kind == _LIST:
                pending.extend(value)
            elif kind == _REF:
                pending.append(value.value)
            else:
                self._check_map_keys(value.keys())
                pending.extend(value.values())

    def _check_map_keys(self, keys: Iterable[Any]) -> None:
        """Keys must be scalars or None and must stay distinct once keyed.

        Under the textual policy 1 and "1" render alike and would collapse
        into one entry, with the survivor depending on insertion order.
        """
        textual = self.resolver.scalar_policy is ScalarPolicy.TEXTUAL
        keyed: Dict[bytes, Any] = {}
        for key in keys:
            if key is None:
                continue
            if not is_scalar(key):
                raise UnsupportedTypeError(f"mapping key of type {_describe(key)}")
            if textual:
                scalar_key = self.resolver.scalar_key(key)
                if scalar_key in keyed:
                    raise UnsupportedTypeError(
                        f"mapping keys {keyed[scalar_key]!r} and {key!r} collide under textual scalar policy"
                    )
                keyed[scalar_key] = key


# ---------------------------------------------------------------------------
# Process-wide default
# ---------------------------------------------------------------------------

_default_reuser: Optional[Reuser] = None
_default_lock = threading.Lock()


def get_default_reuser() -> Reuser:
    global _default_reuser
    with _default_lock:
        if _default_reuser is None:
            _default_reuser = Reuser()
        return _default_reuser


def reset_default_reuser() -> None:
    """Drop the process-wide store. Handles already returned stay valid."""
    global _default_reuser
    with _default_lock:
        _default_reuser = None


def reuse(*values: Any) -> Tuple[Any, ...]:
    return get_default_reuser().reuse(*values)


def reuse_one(value: Any) -> Any:
    return get_default_reuser().reuse_one(value)


def prime(*values: Any) -> None:
    get_default_reuser().prime(*values)


def fold(container: Any) -> Any:
    return get_default_reuser().fold(container)


def snapshot():
    return get_default_reuser().snapshot()
