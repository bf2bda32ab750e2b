"""
Streaming cursor for xmlstore.

This module walks the records of a store document front to back without
loading the whole document. It reads the bytes on disk at the time it was
opened and never sees changes held in a writer's in-memory tree.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from lxml import etree

from ..codec import RecordCodec, local_name
from .errors import StoreStructureError


class CursorState(Enum):
    """Position of a streaming cursor."""
    NOT_STARTED = "not_started"
    POSITIONED = "positioned"
    EXHAUSTED = "exhausted"


class StreamingCursor:
    """
    Forward-only, single pass reader over the records of a document.

    Usage::

        cursor.open()
        while cursor.advance():
            record = cursor.current()
    """

    def __init__(self, path: Union[str, Path], container_path: str, record_tag: str, codec: RecordCodec):
        """
        Initialize the cursor.

        Args:
            path: The document file
            container_path: Slash separated path of the data container, e.g. 'store/items'
            record_tag: Tag name of record elements
            codec: Codec used to decode each record
        """
        self.path = Path(path)
        self.container_tag = container_path.strip("/").split("/")[-1]
        self.container_depth = len(container_path.strip("/").split("/"))
        self.record_tag = record_tag
        self.codec = codec

        self.state = CursorState.NOT_STARTED
        self._handle = None
        self._events = None
        self._depth = 0
        self._current: Optional[Dict[str, Any]] = None

    @property
    def is_open(self) -> bool:
        """True while the underlying file is open."""
        return self._handle is not None

    def open(self):
        """Open the document at byte zero, discarding any previous position."""
        self.close()
        self._handle = open(self.path, "rb")
        self._start()
        logging.debug(f"Opened streaming cursor on {self.path}")

    def close(self):
        """Release the file handle."""
        if self._handle is not None:
            self._handle.close()
        self._handle = None
        self._events = None
        self._current = None

    def rewind(self):
        """
        Go back to the start of the document.

        The reader cannot seek backwards, so this restarts it on the same
        file handle from byte zero. The handle still reads the bytes seen
        when the cursor was opened, even if the file was replaced since.
        """
        if self._handle is None:
            self.open()
            return
        self._start()

    def _start(self):
        self._handle.seek(0)
        self._events = etree.iterparse(
            self._handle,
            events=("start", "end"),
            remove_blank_text=True,
            strip_cdata=False
        )
        self._depth = 0
        self._current = None
        self.state = CursorState.NOT_STARTED

    def advance(self) -> bool:
        """
        Move to the next record.

        Returns:
            True if a record was read, False once the records are exhausted
        """
        if self.state is CursorState.EXHAUSTED:
            return False

        if self.state is CursorState.NOT_STARTED:
            if not self._find_container():
                self._exhaust()
                return False
            self.state = CursorState.POSITIONED

        while True:
            item = self._read_event()
            if item is None:
                break

            event, element, depth = item
            if event != "end":
                continue

            if depth == self.container_depth + 1 and local_name(element) == self.record_tag:
                self._current = self._materialize(element)
                self._release(element)
                return True

            if depth == self.container_depth:
                # End of the data container
                break

        self._exhaust()
        return False

    def current(self) -> Optional[Dict[str, Any]]:
        """
        Get the record the cursor is positioned on.

        Returns:
            The decoded record, or None before the first advance and after the end
        """
        if self.state is not CursorState.POSITIONED:
            return None
        return self._current

    def read_section(self, tag: str) -> Optional[Dict[str, Any]]:
        """
        Scan forward to a direct child of the root element and decode it.

        Args:
            tag: Tag name of the section, e.g. 'meta'

        Returns:
            The decoded section, or None if the document has no such section
            after the current position
        """
        while True:
            item = self._read_event()
            if item is None:
                return None

            event, element, depth = item
            if event == "end" and depth == 2 and local_name(element) == tag:
                return self._materialize(element)

    def _find_container(self) -> bool:
        while True:
            item = self._read_event()
            if item is None:
                return False

            event, element, depth = item
            if event == "start" and depth == self.container_depth and local_name(element) == self.container_tag:
                return True

    def _read_event(self) -> Optional[Tuple[str, etree._Element, int]]:
        if self._events is None:
            raise RuntimeError("Streaming cursor is not open")

        try:
            event, element = next(self._events)
        except StopIteration:
            return None
        except etree.XMLSyntaxError as e:
            raise StoreStructureError(f"Malformed document {self.path}: {e}") from e

        if event == "start":
            self._depth += 1
            return event, element, self._depth

        depth = self._depth
        self._depth -= 1
        return event, element, depth

    def _materialize(self, element: etree._Element) -> Dict[str, Any]:
        # Decode an independent copy of the subtree text
        fragment = etree.tostring(element, with_tail=False)
        return self.codec.decode(etree.fromstring(fragment))

    @staticmethod
    def _release(element: etree._Element):
        # Drop finished records so memory stays bounded on long scans
        element.clear(keep_tail=True)
        parent = element.getparent()
        if parent is not None:
            while element.getprevious() is not None:
                del parent[0]

    def _exhaust(self):
        self.state = CursorState.EXHAUSTED
        self._current = None

    def __enter__(self):
        """Context manager entry."""
        if not self.is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
