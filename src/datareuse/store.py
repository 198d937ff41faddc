"""
store.py — Canonical store

Append-only, process-lifetime map from identity key to the single canonical
instance for that key. Starts with one entry, the Null sentinel.

There is no update, delete or eviction. Growth is unbounded: every distinct
structure ever canonicalized stays reachable until the store itself is
dropped.

Reads are lock-free; insert_if_absent serializes its check-then-insert on a
single lock, so concurrent writers of the same key all receive the first
writer's instance.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import DigestCollisionError
from .identity import NULL_KEY

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class StoreStats:
    entries: int
    hits: int
    inserts: int

    def to_dict(self) -> Dict[str, int]:
        return {"entries": self.entries, "hits": self.hits, "inserts": self.inserts}


class CanonicalStore:
    """Content-addressed store of canonical values.

    ``hits`` counts insert_if_absent calls answered by an existing entry and
    is approximate under concurrent use.
    """

    def __init__(self) -> None:
        self._entries: Dict[bytes, Any] = {NULL_KEY: None}
        self._preimages: Dict[bytes, bytes] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._inserts = 0

    def lookup(self, key: bytes, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def insert_if_absent(
        self,
        key: bytes,
        value: Any,
        preimage: Optional[bytes] = None,
        members: Iterable[Tuple[bytes, Any]] = (),
    ) -> Any:
        """Install ``value`` under ``key`` unless the key is taken.

        Returns whichever instance ends up stored. ``members`` are extra
        (key, value) entries published together with ``value`` only when it
        wins; they become visible no later than ``key`` itself.

        ``preimage``, when given, is remembered for the key and compared
        against the preimage of any later insert under the same key.
        """
        existing = self._entries.get(key, _MISSING)
        if existing is _MISSING:
            with self._lock:
                existing = self._entries.get(key, _MISSING)
                if existing is _MISSING:
                    for member_key, member in members:
                        self._entries[member_key] = member
                    if preimage is not None:
                        self._preimages[key] = preimage
                    self._entries[key] = value
                    self._inserts += 1
                    return value
        if preimage is not None:
            self._check_preimage(key, preimage)
        self._hits += 1
        return existing

    def _check_preimage(self, key: bytes, preimage: bytes) -> None:
        known = self._preimages.get(key)
        if known is not None and known != preimage:
            logger.warning("digest collision on identity key %s", key.hex())
            raise DigestCollisionError(f"key {key.hex()}")

    def snapshot(self) -> Mapping[bytes, Any]:
        """Read-only copy of the current entries, for inspection and tests."""
        with self._lock:
            return MappingProxyType(dict(self._entries))

    def stats(self) -> StoreStats:
        return StoreStats(len(self._entries), self._hits, self._inserts)
