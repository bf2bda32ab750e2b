"""
xmlstore: A flat-file record store kept in a single XML document.

Records are appended with auto-incrementing identifiers, scanned with a
streaming cursor and looked up by id or field value.
"""

__version__ = "0.1.0"
__author__ = "xmlstore Project"

# Import main components
from .database import XMLDatabase, RecordModel, StoreStructureError
from .models import Record, ComplexField, StoreMeta
from .schema import BaseSchema, SimpleSchema
from .codec import RecordCodec

__all__ = [
    "XMLDatabase",
    "RecordModel",
    "StoreStructureError",
    "Record",
    "ComplexField",
    "StoreMeta",
    "BaseSchema",
    "SimpleSchema",
    "RecordCodec"
]
