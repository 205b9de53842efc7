"""Exceptions raised by the expand service."""

from __future__ import annotations


class ExpandError(Exception):
    """Base class for expand service errors."""
    pass


class SchemaDocumentError(ExpandError):
    """Raised at boot when the schema document cannot be indexed."""
    pass


class DispatchError(ExpandError):
    """Raised by a dispatcher when an internal call cannot be delivered."""
    def __init__(self, method: str, path: str, reason: str):
        super().__init__(f"Internal dispatch {method} {path} failed: {reason}")
        self.method = method
        self.path = path
        self.reason = reason
