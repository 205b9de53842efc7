"""Caller identity and credential propagation."""

from .extractor import CallerContextExtractor, extract_caller
from .types import CallerContext, CallerIdentity

__all__ = [
    "CallerContext",
    "CallerContextExtractor",
    "CallerIdentity",
    "extract_caller",
]
