"""
guard.py — Recursion guard for cyclic input

Tracks the compound inputs whose canonicalization is currently in progress,
keyed by object identity (not content), together with the depth of the
frame building them. A reference found here while walking is a back edge:
the engine points it at the pending placeholder instead of descending.

One guard belongs to one reuse() call and is never shared between threads.
A strong reference to each registered object is held so its id() cannot be
recycled while it is registered.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Tuple


class RecursionGuard:

    def __init__(self) -> None:
        self._active: Dict[int, Tuple[Any, int]] = {}

    def enter(self, obj: Any, depth: int) -> bool:
        """Register ``obj`` at ``depth``. False if it is already registered."""
        if id(obj) in self._active:
            return False
        self._active[id(obj)] = (obj, depth)
        return True

    def leave(self, obj: Any) -> None:
        """Deregister ``obj``. Raises KeyError if it was never entered."""
        del self._active[id(obj)]

    def depth_of(self, obj: Any) -> Optional[int]:
        entry = self._active.get(id(obj))
        return None if entry is None else entry[1]

    def __contains__(self, obj: object) -> bool:
        return id(obj) in self._active

    def __len__(self) -> int:
        return len(self._active)
