"""Element codecs for xmlstore."""

from .records import RecordCodec, local_name, text_content

__all__ = ["RecordCodec", "local_name", "text_content"]
