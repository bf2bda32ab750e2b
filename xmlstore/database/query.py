"""
Structural queries for xmlstore.

Lookups run as XPath queries against the writer's in-memory tree, so they
see records added in the current session before they are saved.
"""

from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from lxml import etree

from ..codec import RecordCodec, local_name
from ..models import Record
from ..schema import BaseSchema, is_valid_tag_name
from .errors import StoreStructureError


UNION_CHUNK_SIZE = 500


class RecordModel:
    """
    Lazy view over the record elements matched by a query.

    Records are decoded when iterated, not when the view is built.
    """

    def __init__(self, elements: Sequence[etree._Element], store):
        """
        Initialize the view.

        Args:
            elements: Matched record elements in document order
            store: The store owning the elements
        """
        self._elements = list(elements)
        self.store = store

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        for element in self._elements:
            yield self.store.read_xml(element)

    def __len__(self) -> int:
        return len(self._elements)

    def first(self) -> Optional[Dict[str, Any]]:
        """Return the first matched record, decoded."""
        if not self._elements:
            return None
        return self.store.read_xml(self._elements[0])

    def ids(self) -> List[int]:
        """Return the identifiers of the matched records."""
        return [int(element.get("id")) for element in self._elements if element.get("id") is not None]

    def records(self) -> List[Record]:
        """Return the matched records as Record models."""
        return [Record.from_decoded(data) for data in self]

    def __repr__(self) -> str:
        return f"RecordModel(ids={self.ids()})"


class QueryEngine:
    """
    Finds records in a parsed document tree.
    """

    def __init__(self, schema: BaseSchema, codec: RecordCodec, store):
        """
        Initialize the query engine.

        Args:
            schema: Schema describing where records live
            codec: Codec used to decode matches
            store: Owner handed to the RecordModel views
        """
        self.schema = schema
        self.codec = codec
        self.store = store
        self.tree: Optional[etree._ElementTree] = None

    def bind(self, tree: etree._ElementTree):
        """Point the engine at a (new) document tree."""
        self.tree = tree

    @property
    def records_xpath(self) -> str:
        """Absolute XPath selecting every record element."""
        return f"/{self.schema.get_data_xpath().strip('/')}/{self.schema.get_data_tag_name()}"

    def find_by_id(self, record_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        """
        Find a record by its identifier.

        Args:
            record_id: The id attribute value

        Returns:
            The decoded record, or None if no record has that id
        """
        tree = self._require_tree()
        entries = tree.xpath(f"{self.records_xpath}[@id=$id]", id=str(record_id))

        if not entries:
            return None

        return self.codec.decode(entries[0])

    def find_by(self, field_path: Union[str, Sequence[str]], value: Any) -> Optional[RecordModel]:
        """
        Find all records with a field whose text equals a value.

        Args:
            field_path: A field name, or a sequence of names descending into
                nested fields (e.g. ['address', 'city'])
            value: The exact, case sensitive text to match

        Returns:
            A RecordModel over the matching records, or None if nothing matches

        Raises:
            ValueError: If the field path is empty or holds an invalid name
            StoreStructureError: If a match cannot be traced back to its record
        """
        tree = self._require_tree()
        steps = [field_path] if isinstance(field_path, str) else list(field_path)

        if not steps:
            raise ValueError("Field path must not be empty")
        for step in steps:
            if not is_valid_tag_name(step):
                raise ValueError(f"Invalid field name: {step!r}")

        query = f"{self.records_xpath}/{'/'.join(steps)}[. = $value]"
        entries = tree.xpath(query, value=str(value))

        if not entries:
            return None

        record_paths: List[str] = []
        for entry in entries:
            record = entry
            for _ in steps:
                record = record.getparent()
                if record is None:
                    break

            if record is None or not self._is_record(record):
                raise StoreStructureError(f"Could not find the record for field match {tree.getpath(entry)}")

            # Matches come in document order, so repeated matches of one record are adjacent
            record_path = tree.getpath(record)
            if record_paths and record_paths[-1] == record_path:
                continue
            record_paths.append(record_path)

        # Each union returns its records once, in document order. libxml2 hits
        # its recursion limit on long unions, so the paths go in chunks.
        records: List[etree._Element] = []
        for start in range(0, len(record_paths), UNION_CHUNK_SIZE):
            records.extend(tree.xpath(" | ".join(record_paths[start:start + UNION_CHUNK_SIZE])))

        if not records:
            raise StoreStructureError("We could not find the parent nodes")

        return RecordModel(records, self.store)

    def _is_record(self, element: etree._Element) -> bool:
        parent = element.getparent()
        return (
            local_name(element) == self.schema.get_data_tag_name()
            and parent is not None
            and local_name(parent) == self.schema.get_container_tag()
        )

    def _require_tree(self) -> etree._ElementTree:
        if self.tree is None:
            raise RuntimeError("Document tree not loaded")
        return self.tree
