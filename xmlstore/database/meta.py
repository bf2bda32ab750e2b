"""
Meta section bookkeeping for xmlstore.

The meta section holds the next identifier ('ai') and the time of the last
insert ('last_add'). It is read through the streaming cursor when a store is
opened and written into the writer's tree on every insert.
"""

import logging
from typing import Optional

from lxml import etree

from ..models import StoreMeta
from .cursor import StreamingCursor
from .errors import StoreStructureError


META_TAG = "meta"


class MetaTracker:
    """
    Owns the auto-increment counter and the last insert timestamp.
    """

    def __init__(self):
        """Initialize the tracker with the starting counter."""
        self.next_id = 1
        self.last_add: Optional[int] = None

    def prime(self, cursor: StreamingCursor):
        """
        Adopt the counter stored in the document.

        Reads the meta section through a freshly opened cursor, then rewinds
        the cursor so iteration starts at the beginning of the document.

        Args:
            cursor: An open cursor positioned at the document start

        Raises:
            StoreStructureError: If there is no meta section or 'ai' is not an integer
        """
        section = cursor.read_section(META_TAG)
        if section is None:
            cursor.close()
            raise StoreStructureError(f"No meta section found in {cursor.path}")

        self.next_id = 1
        raw_ai = section.get("ai")
        if isinstance(raw_ai, str) and raw_ai.strip():
            try:
                self.next_id = int(raw_ai.strip())
            except ValueError as e:
                cursor.close()
                raise StoreStructureError(f"Invalid 'ai' value in {cursor.path}: {raw_ai!r}") from e
            if self.next_id < 1:
                cursor.close()
                raise StoreStructureError(f"Invalid 'ai' value in {cursor.path}: {raw_ai!r}")
        else:
            logging.warning(f"No 'ai' value in meta section of {cursor.path}, starting ids at 1")

        raw_last_add = section.get("last_add")
        if isinstance(raw_last_add, str) and raw_last_add.strip().isdigit():
            self.last_add = int(raw_last_add.strip())
        else:
            self.last_add = None

        logging.debug(f"Meta primed from {cursor.path}: next id {self.next_id}")
        cursor.rewind()

    def allocate(self) -> int:
        """
        Hand out the next identifier.

        Returns:
            The identifier for the new record
        """
        record_id = self.next_id
        self.next_id += 1
        return record_id

    def write(self, root: etree._Element, timestamp: int):
        """
        Store the counter and timestamp in the document tree.

        Args:
            root: Root element of the writer's tree
            timestamp: Unix time of the insert

        Raises:
            StoreStructureError: If the tree has no meta section
        """
        meta = root.find(META_TAG)
        if meta is None:
            raise StoreStructureError("No meta section in the document tree")

        self.last_add = timestamp
        for name, value in (("ai", self.next_id), ("last_add", timestamp)):
            node = meta.find(name)
            if node is None:
                node = etree.SubElement(meta, name)
            node.text = str(value)

    def snapshot(self) -> StoreMeta:
        """Return the current state as a StoreMeta."""
        return StoreMeta(ai=self.next_id, last_add=self.last_add)
