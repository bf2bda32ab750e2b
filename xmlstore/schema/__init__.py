"""Document schemas for xmlstore."""

from .base import BaseSchema, is_valid_tag_name
from .simple import SimpleSchema

__all__ = ["BaseSchema", "SimpleSchema", "is_valid_tag_name"]
