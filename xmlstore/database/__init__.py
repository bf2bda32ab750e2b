"""Storage engine for xmlstore."""

from .errors import StoreStructureError
from .cursor import CursorState, StreamingCursor
from .meta import MetaTracker
from .query import QueryEngine, RecordModel
from .manager import XMLDatabase

__all__ = [
    "StoreStructureError",
    "CursorState",
    "StreamingCursor",
    "MetaTracker",
    "QueryEngine",
    "RecordModel",
    "XMLDatabase"
]
