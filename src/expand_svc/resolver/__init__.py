"""Internal resolution of referenced resources."""

from .dispatch import AsgiDispatcher, DispatchResult, InternalDispatcher
from .internal import InternalResolver
from .marker import InternalMarker

__all__ = [
    "AsgiDispatcher",
    "DispatchResult",
    "InternalDispatcher",
    "InternalMarker",
    "InternalResolver",
]
