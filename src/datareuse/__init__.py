"""Data Reuse public API.

Canonicalizes repeated immutable values so that structurally identical
data collapses to one shared, read-only instance.

Example:
    from datareuse import reuse

    row_a, row_b = reuse(["2024-01-01", "BAR", 120], ["2024-01-01", "BAR", 120])
    assert row_a is row_b
"""

from .engine import (
    Reuser,
    ReuseConfig,
    fold,
    get_default_reuser,
    prime,
    reset_default_reuser,
    reuse,
    reuse_one,
    snapshot,
)
from .errors import (
    DepthExceededError,
    DigestCollisionError,
    ImmutableValueError,
    ReuseError,
    UnsupportedTypeError,
)
from .guard import RecursionGuard
from .handles import Canonical, FrozenList, FrozenMap, FrozenRef, Ref, thaw
from .identity import IdentityResolver, ScalarPolicy
from .store import CanonicalStore, StoreStats

__version__ = "0.5.0"
__all__ = [
    "Reuser",
    "ReuseConfig",
    "reuse",
    "reuse_one",
    "prime",
    "fold",
    "snapshot",
    "get_default_reuser",
    "reset_default_reuser",
    "Ref",
    "Canonical",
    "FrozenList",
    "FrozenMap",
    "FrozenRef",
    "thaw",
    "CanonicalStore",
    "StoreStats",
    "IdentityResolver",
    "ScalarPolicy",
    "RecursionGuard",
    "ReuseError",
    "UnsupportedTypeError",
    "DepthExceededError",
    "DigestCollisionError",
    "ImmutableValueError",
]
