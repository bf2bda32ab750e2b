"""Data models for xmlstore."""

from .records import Leaf, Node, Record, RecordValue, ComplexField, scalar_text
from .meta import StoreMeta

__all__ = [
    "Leaf",
    "Node",
    "Record",
    "RecordValue",
    "ComplexField",
    "StoreMeta",
    "scalar_text"
]
