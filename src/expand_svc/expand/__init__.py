"""Expand path parsing and the expansion engine."""

from .engine import MAX_EXPAND_DEPTH, ExpansionEngine
from .parser import group_by_first_segment, max_depth, parse_expand_param, parse_expand_values
from .types import ExpandPath, ExpansionRequest, FallbackToIdentifier, Resolved, ResolutionOutcome

__all__ = [
    "MAX_EXPAND_DEPTH",
    "ExpandPath",
    "ExpansionEngine",
    "ExpansionRequest",
    "FallbackToIdentifier",
    "Resolved",
    "ResolutionOutcome",
    "group_by_first_segment",
    "max_depth",
    "parse_expand_param",
    "parse_expand_values",
]
