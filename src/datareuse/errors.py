"""
errors.py — Data Reuse Error Taxonomy

Coded errors raised by the canonicalization engine. Every error carries a
stable code, a fixed message, and optional free-form context naming the
offending value or key.
"""

from typing import Optional

__all__ = [
    "ReuseError",
    "UnsupportedTypeError",
    "DepthExceededError",
    "DigestCollisionError",
    "ImmutableValueError",
]


class ReuseError(Exception):
    """Base class for all data-reuse errors."""
    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.context = context

        full_msg = f"[{code}] {message}"
        if context:
            full_msg += f" Context: {context}"

        super().__init__(full_msg)


# Input Errors (E1xx)
class UnsupportedTypeError(ReuseError, TypeError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("REUSE_E100", "Value is not a scalar, list, mapping, Ref or None and cannot be reused.", context)

class DepthExceededError(ReuseError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("REUSE_E101", "Nesting depth exceeds the configured max_depth.", context)

# Store Errors (E2xx)
class DigestCollisionError(ReuseError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("REUSE_E200", "Two structurally different values produced the same identity key.", context)

# Handle Errors (E3xx)
class ImmutableValueError(ReuseError, TypeError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("REUSE_E300", "Canonical values are read-only and cannot be modified.", context)
