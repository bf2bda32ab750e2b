"""
Database manager for xmlstore.

This module handles opening, querying, extending and saving a store: a single
XML document holding a meta section and a container of record elements.

Two views of the file are kept side by side. The streaming cursor reads the
bytes on disk for full scans; the writer's parsed tree takes inserts and
answers lookups. The cursor does not see unsaved inserts until the store is
saved and reopened.
"""

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Union

from lxml import etree

from ..codec import RecordCodec
from ..models import Record, StoreMeta
from ..schema import BaseSchema
from .cursor import StreamingCursor
from .errors import StoreStructureError
from .meta import MetaTracker
from .query import QueryEngine, RecordModel


class XMLDatabase:
    """
    Manages one XML record store file.

    Use it as a context manager so pending inserts are saved on every exit
    path::

        with XMLDatabase(SimpleSchema(), "people.xml", create=True) as db:
            db.add_data({"name": "Jane"})
    """

    def __init__(
        self,
        schema: BaseSchema,
        path: Union[str, Path],
        create: bool = False,
        base_dir: Optional[Union[str, Path]] = None,
        pretty_print: bool = True,
        encoding: str = "UTF-8"
    ):
        """
        Initialize the database manager and open the store.

        Args:
            schema: Schema describing the document layout
            path: Path to the store file, relative to base_dir if one is given
            create: If True write a fresh skeleton document first
            base_dir: Directory the path is resolved against
            pretty_print: Indent the document when saving
            encoding: Encoding declared and used when saving

        Raises:
            FileNotFoundError: If create is False and the file does not exist
        """
        self.schema = schema
        self.path = Path(path)
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.file_path = self.base_dir / self.path if self.base_dir is not None else self.path
        self.pretty_print = pretty_print
        self.encoding = encoding

        self.codec = RecordCodec(schema.get_data_tag_name())
        self.meta_tracker = MetaTracker()
        self.cursor = StreamingCursor(
            self.file_path,
            schema.get_data_xpath(),
            schema.get_data_tag_name(),
            self.codec
        )
        self.query = QueryEngine(schema, self.codec, self)
        self.tree: Optional[etree._ElementTree] = None

        self._has_changed = False
        self._closed = True

        if not create and not self.file_path.exists():
            raise FileNotFoundError(f"Could not find file for reading: {self.file_path}")

        if create:
            self.create()

        self.open()

    # ------------------------------------------------------------------
    # Open and close

    def open(self):
        """Open the streaming cursor, read the meta section and parse the writer tree."""
        self.cursor.open()
        try:
            self.meta_tracker.prime(self.cursor)
            self.tree = etree.parse(str(self.file_path), self._parser())
        except Exception:
            self.cursor.close()
            raise

        self.query.bind(self.tree)
        self._has_changed = False
        self._closed = False
        logging.info(f"Opened store {self.file_path} (next id {self.next_id})")

    def reopen(self):
        """
        Reopen the streaming cursor so it sees the bytes currently on disk.

        The writer tree and its unsaved inserts are left alone; the counter
        never moves backwards, so unsaved inserts keep their identifiers.
        """
        next_id = self.meta_tracker.next_id
        self.cursor.close()
        self.cursor.open()
        self.meta_tracker.prime(self.cursor)
        if self.meta_tracker.next_id < next_id:
            self.meta_tracker.next_id = next_id
        logging.info(f"Reopened store {self.file_path}")

    def create(self):
        """Write the schema's skeleton document, replacing any existing file."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_bytes(self.schema.get_base_xml().encode("utf-8"))
        logging.info(f"Created store {self.file_path}")

    def close(self):
        """Save pending changes and release the file handle."""
        if self._closed:
            return
        try:
            self.save()
        finally:
            self.cursor.close()
            self._closed = True
            logging.debug(f"Closed store {self.file_path}")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    # ------------------------------------------------------------------
    # Find by ...

    def find_by_id(self, record_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        """
        Find a record by its identifier.

        Args:
            record_id: The id we want

        Returns:
            The decoded record, or None if the id isn't found
        """
        return self.query.find_by_id(record_id)

    def find_by(self, field_path: Union[str, Sequence[str]], value: Any) -> Optional[RecordModel]:
        """
        Find records by a field and its value.

        Args:
            field_path: The field name, or a list of names for a nested field
            value: The exact text to look for

        Returns:
            A RecordModel over the matches, or None if nothing matches
        """
        return self.query.find_by(field_path, value)

    # ------------------------------------------------------------------
    # Writing

    def add_data(self, data: Union[Mapping[str, Any], Record]) -> int:
        """
        Append a new record to the data container.

        The record gets the next identifier as its 'id' attribute; the
        caller's mapping is left untouched.

        Args:
            data: The record, as a decoded mapping or a Record

        Returns:
            The identifier assigned to the record

        Raises:
            StoreStructureError: If the document has no data container
        """
        tree = self._require_tree()

        containers = tree.xpath(f"/{self.schema.get_data_xpath().strip('/')}")
        if not containers:
            raise StoreStructureError(f"No data container '{self.schema.get_data_xpath()}' in {self.file_path}")

        element = self.codec.build_record(data)
        record_id = self.meta_tracker.allocate()
        element.set("id", str(record_id))

        containers[0].append(element)
        self.meta_tracker.write(tree.getroot(), int(time.time()))
        self._has_changed = True

        logging.debug(f"Added record {record_id} to {self.file_path}")
        return record_id

    def save(self) -> bool:
        """
        Write the document to disk if anything changed since the last save.

        Returns:
            True if the file was written, False if there was nothing to save
        """
        if not self._has_changed:
            logging.debug(f"No changes to save for {self.file_path}")
            return False

        tree = self._require_tree()

        # Round trip through text to normalise whitespace before indenting;
        # UTF-8 keeps non-ASCII tag names intact
        root = etree.fromstring(etree.tostring(tree, encoding="UTF-8"), self._parser())
        self.tree = root.getroottree()
        self.query.bind(self.tree)

        self._write_bytes(etree.tostring(
            self.tree,
            pretty_print=self.pretty_print,
            xml_declaration=True,
            encoding=self.encoding
        ))
        self._has_changed = False

        logging.info(f"Saved store {self.file_path} (next id {self.next_id})")
        return True

    # ------------------------------------------------------------------
    # Moving operations

    def rewind(self):
        """Reset the streaming cursor to the start of the records."""
        if self._closed:
            raise RuntimeError("Store is not open")
        self.cursor.rewind()

    def advance(self) -> bool:
        """
        Move the streaming cursor to the next record.

        Returns:
            True if there is a current record, False at the end
        """
        return self.cursor.advance()

    def current(self) -> Optional[Dict[str, Any]]:
        """Get the record under the streaming cursor."""
        return self.cursor.current()

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        self.rewind()
        while self.advance():
            yield self.current()

    # ------------------------------------------------------------------
    # Helpers

    def read_xml(self, element: etree._Element) -> Dict[str, Any]:
        """Decode an element with the store's codec."""
        return self.codec.decode(element)

    @property
    def has_changes(self) -> bool:
        """True if there are inserts not yet saved."""
        return self._has_changed

    @property
    def next_id(self) -> int:
        """The identifier the next insert will get."""
        return self.meta_tracker.next_id

    @property
    def meta(self) -> StoreMeta:
        """The current meta section values."""
        return self.meta_tracker.snapshot()

    def _parser(self) -> etree.XMLParser:
        return etree.XMLParser(remove_blank_text=True, strip_cdata=False)

    def _require_tree(self) -> etree._ElementTree:
        if self.tree is None or self._closed:
            raise RuntimeError("Store is not open")
        return self.tree

    def _write_bytes(self, data: bytes):
        # Replace the file atomically; an open streaming handle keeps the old bytes
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{self.file_path.name}.",
            suffix=".tmp",
            dir=str(self.file_path.parent)
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            if self.file_path.exists():
                shutil.copymode(self.file_path, temp_path)
            os.replace(temp_path, self.file_path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def __repr__(self) -> str:
        return f"XMLDatabase({self.file_path}, next_id={self.next_id}, changed={self._has_changed})"
