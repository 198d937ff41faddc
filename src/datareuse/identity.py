"""
identity.py — Structural identity keys

Every canonical value is stored under a byte-string identity key:

  Null      NULL_KEY
  scalar    SCALAR_TAG + [type marker] + raw content
  compound  kind tag + digest(preimage)

A compound's preimage is a stream of netstring-framed tokens (``<len>:``
followed by the token bytes), so no scalar content can ever fake a token
boundary. A plain compound serializes as its tag followed by its children's keys.

Cyclic input produces *open* nodes: nodes that point back to an ancestor
still under construction. They have no key of their own until the closing
ancestor is finished. That ancestor serializes the whole open region in
preorder, writing back edges as ``@<index>``, so its key describes the
complete rooted graph. Each open node then gets the derived key
``tag + digest(closing key + "@" + index)``.

The digest is trusted: two distinct structures with colliding digests are
treated as the same value unless the engine runs with verify_digests.
"""

from __future__ import annotations
import hashlib
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional

from .handles import Canonical, FrozenList, FrozenMap, FrozenRef, children

# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

NULL_TAG = b"\x01U\x01"
SCALAR_TAG = b"\x01S\x01"
LIST_TAG = b"\x01A\x01"
MAP_TAG = b"\x01H\x01"
REF_TAG = b"\x01R\x01"

NULL_KEY = NULL_TAG

DEFAULT_DIGEST = "sha256"

SCALAR_TYPES = frozenset({str, bytes, int, float, bool, complex})

_TAGS = {FrozenList: LIST_TAG, FrozenMap: MAP_TAG, FrozenRef: REF_TAG}

_END = object()


class ScalarPolicy(str, Enum):
    """How scalars are compared.

    TYPED:   the Python type is part of the key; 1, 1.0, True and "1" differ.
    TEXTUAL: only the textual rendering counts; 1 and "1" are one value and
             whichever was stored first is returned for both.
    """
    TYPED = "typed"
    TEXTUAL = "textual"


def is_scalar(value: Any) -> bool:
    return type(value) in SCALAR_TYPES


def tag_of(node: Canonical) -> bytes:
    return _TAGS[type(node)]


def frame_token(token: bytes) -> bytes:
    return b"%d:%s" % (len(token), token)


def _typed_content(value: Any) -> bytes:
    kind = type(value)
    if kind is str:
        return b"s" + value.encode("utf-8", "surrogatepass")
    if kind is bytes:
        return b"b" + value
    if kind is bool:
        return b"?1" if value else b"?0"
    if kind is int:
        return b"i" + format(value, "x").encode("ascii")
    if kind is float:
        return b"f" + value.hex().encode("ascii")
    return b"c" + f"{value.real.hex()},{value.imag.hex()}".encode("ascii")


def _textual_content(value: Any) -> bytes:
    kind = type(value)
    if kind is bytes:
        return value
    if kind is str:
        return value.encode("utf-8", "surrogatepass")
    return str(value).encode("ascii")


class IdentityResolver:
    """Computes identity keys. Stateless apart from its configuration."""

    def __init__(
        self,
        digest: str = DEFAULT_DIGEST,
        scalar_policy: ScalarPolicy = ScalarPolicy.TYPED,
    ):
        hashlib.new(digest)  # fail fast on unknown algorithms
        self.digest = digest
        self.scalar_policy = ScalarPolicy(scalar_policy)
        if self.scalar_policy is ScalarPolicy.TYPED:
            self._content = _typed_content
        else:
            self._content = _textual_content

    def scalar_key(self, value: Any) -> bytes:
        return SCALAR_TAG + self._content(value)

    def key_of(self, handle: Any) -> Optional[bytes]:
        """Key of a canonical handle, or None for an open node."""
        if handle is None:
            return NULL_KEY
        if isinstance(handle, Canonical):
            return handle.key
        return self.scalar_key(handle)

    def compound_key(self, tag: bytes, chunks: Iterable[bytes]) -> bytes:
        h = hashlib.new(self.digest)
        for chunk in chunks:
            h.update(chunk)
        return tag + h.digest()

    def derived_key(self, node: Canonical, root_key: bytes, index: int) -> bytes:
        """Key of the ``index``-th open node in the region closed by ``root_key``."""
        return self.compound_key(tag_of(node), (root_key, b"@%d" % index))

    def region_chunks(self, root: Canonical, order: List[Canonical]) -> Iterator[bytes]:
        """Serialize ``root`` and every open node reachable from it.

        Nodes are appended to ``order`` in preorder; ``order[0]`` is ``root``.
        Iterative so that long cyclic chains do not hit the recursion limit.
        """
        index = {id(root): 0}
        order.append(root)
        yield frame_token(b"(" + tag_of(root))
        stack = [children(root)]
        while stack:
            child = next(stack[-1], _END)
            if child is _END:
                stack.pop()
                yield frame_token(b")")
                continue
            key = self.key_of(child)
            if key is not None:
                yield frame_token(key)
                continue
            position = index.get(id(child))
            if position is not None:
                yield frame_token(b"@%d" % position)
                continue
            index[id(child)] = len(order)
            order.append(child)
            yield frame_token(b"(" + tag_of(child))
            stack.append(children(child))

