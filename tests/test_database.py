"""
Unit tests for the xmlstore storage engine.

Covers the streaming cursor, meta bookkeeping, queries, inserts and
persistence of XMLDatabase.
"""

import shutil
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from lxml import etree

from xmlstore.codec import RecordCodec
from xmlstore.database import (
    CursorState,
    MetaTracker,
    QueryEngine,
    RecordModel,
    StoreStructureError,
    StreamingCursor,
    XMLDatabase,
)
from xmlstore.models import Record
from xmlstore.schema import SimpleSchema


def write_document(path: Path, body: str, ai: str = "<ai>1</ai>"):
    """Write a store document with the given container content."""
    path.write_text(
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f"<store><meta>{ai}<last_add/></meta><items>{body}</items></store>\n",
        encoding="utf-8"
    )


class StoreTestCase(unittest.TestCase):
    """Base class providing a temporary directory and the default schema."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.base_dir = Path(self.temp_dir)
        self.schema = SimpleSchema()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def new_store(self, name: str = "store.xml") -> XMLDatabase:
        return XMLDatabase(self.schema, name, create=True, base_dir=self.base_dir)

    def open_store(self, name: str = "store.xml") -> XMLDatabase:
        return XMLDatabase(self.schema, name, base_dir=self.base_dir)


class TestStreamingCursor(StoreTestCase):
    """Test the forward-only record reader."""

    def make_cursor(self, body: str, name: str = "doc.xml") -> StreamingCursor:
        path = self.base_dir / name
        write_document(path, body)
        cursor = StreamingCursor(path, "store/items", "item", RecordCodec("item"))
        cursor.open()
        self.addCleanup(cursor.close)
        return cursor

    def test_reads_records_in_order(self):
        """Test a full scan and the end of sequence."""
        cursor = self.make_cursor('<item id="1"><n>a</n></item><item id="2"><n>b</n></item>')

        self.assertIsNone(cursor.current())
        self.assertTrue(cursor.advance())
        self.assertEqual(cursor.current(), {"attributes": {"id": "1"}, "n": "a"})
        self.assertTrue(cursor.advance())
        self.assertEqual(cursor.current()["n"], "b")

        for _ in range(3):
            self.assertFalse(cursor.advance())
        self.assertIsNone(cursor.current())
        self.assertEqual(cursor.state, CursorState.EXHAUSTED)

    def test_empty_container(self):
        """Test a document without records."""
        cursor = self.make_cursor("")

        self.assertFalse(cursor.advance())
        self.assertEqual(cursor.state, CursorState.EXHAUSTED)

    def test_missing_container_is_empty(self):
        """Test that a document without the container yields nothing."""
        path = self.base_dir / "nocontainer.xml"
        path.write_text("<store><meta><ai>1</ai></meta></store>")

        with StreamingCursor(path, "store/items", "item", RecordCodec("item")) as cursor:
            self.assertFalse(cursor.advance())
            self.assertFalse(cursor.advance())

    def test_skips_other_elements_and_nested_tags(self):
        """Test that only direct record children of the container count."""
        cursor = self.make_cursor(
            '<other><item id="9"/></other>'
            '<item id="1"><item>inner</item></item>'
            '<!-- comment -->'
            '<item id="2"><n>b</n></item>'
        )

        records = []
        while cursor.advance():
            records.append(cursor.current())

        self.assertEqual(records, [
            {"attributes": {"id": "1"}, "item": "inner"},
            {"attributes": {"id": "2"}, "n": "b"}
        ])

    def test_rewind_restarts(self):
        """Test that rewinding starts the scan over."""
        cursor = self.make_cursor('<item id="1"/><item id="2"/>')

        while cursor.advance():
            pass
        cursor.rewind()

        self.assertEqual(cursor.state, CursorState.NOT_STARTED)
        self.assertTrue(cursor.advance())
        self.assertEqual(cursor.current(), {"attributes": {"id": "1"}})

    def test_read_section(self):
        """Test reading a section below the root."""
        cursor = self.make_cursor('<item id="1"/>')

        self.assertEqual(cursor.read_section("meta"), {"ai": "1", "last_add": ""})
        self.assertIsNone(cursor.read_section("meta"))

    def test_malformed_document(self):
        """Test that broken XML surfaces as a structure error."""
        path = self.base_dir / "broken.xml"
        path.write_text('<store><meta><ai>1</ai></meta><items><item id="1"><n>a</n>')

        with StreamingCursor(path, "store/items", "item", RecordCodec("item")) as cursor:
            with self.assertRaises(StoreStructureError):
                while cursor.advance():
                    pass

    def test_not_open(self):
        """Test advancing a cursor that was never opened."""
        cursor = StreamingCursor(self.base_dir / "x.xml", "store/items", "item", RecordCodec("item"))

        self.assertFalse(cursor.is_open)
        with self.assertRaises(RuntimeError):
            cursor.advance()


class TestMetaTracker(StoreTestCase):
    """Test the auto-increment bookkeeping."""

    def prime(self, ai: str) -> MetaTracker:
        path = self.base_dir / "meta.xml"
        write_document(path, "", ai=ai)
        cursor = StreamingCursor(path, "store/items", "item", RecordCodec("item"))
        cursor.open()
        self.addCleanup(cursor.close)
        tracker = MetaTracker()
        tracker.prime(cursor)
        return tracker

    def test_adopts_counter(self):
        """Test reading the stored counter."""
        tracker = self.prime("<ai>42</ai>")

        self.assertEqual(tracker.next_id, 42)
        self.assertEqual(tracker.allocate(), 42)
        self.assertEqual(tracker.allocate(), 43)
        self.assertEqual(tracker.snapshot().ai, 44)

    def test_missing_counter_defaults_with_warning(self):
        """Test that a missing 'ai' starts at 1."""
        with self.assertLogs(level="WARNING"):
            tracker = self.prime("")

        self.assertEqual(tracker.next_id, 1)

    def test_malformed_counter_is_fatal(self):
        """Test that a non-numeric 'ai' is rejected."""
        with self.assertRaises(StoreStructureError):
            self.prime("<ai>abc</ai>")
        with self.assertRaises(StoreStructureError):
            self.prime("<ai>0</ai>")

    def test_missing_meta_closes_cursor(self):
        """Test that a document without meta is fatal and releases the file."""
        path = self.base_dir / "nometa.xml"
        path.write_text("<store><items/></store>")
        cursor = StreamingCursor(path, "store/items", "item", RecordCodec("item"))
        cursor.open()

        with self.assertRaises(StoreStructureError):
            MetaTracker().prime(cursor)
        self.assertFalse(cursor.is_open)

    def test_prime_rewinds_cursor(self):
        """Test that iteration after priming starts at the first record."""
        path = self.base_dir / "meta.xml"
        write_document(path, '<item id="1"/>', ai="<ai>2</ai>")
        cursor = StreamingCursor(path, "store/items", "item", RecordCodec("item"))
        cursor.open()
        self.addCleanup(cursor.close)

        MetaTracker().prime(cursor)

        self.assertEqual(cursor.state, CursorState.NOT_STARTED)
        self.assertTrue(cursor.advance())
        self.assertEqual(cursor.current(), {"attributes": {"id": "1"}})

    def test_write_updates_tree(self):
        """Test writing the counter into a tree, creating missing children."""
        root = etree.fromstring("<store><meta/><items/></store>")
        tracker = MetaTracker()
        tracker.allocate()
        tracker.write(root, 1700000000)

        self.assertEqual(root.findtext("meta/ai"), "2")
        self.assertEqual(root.findtext("meta/last_add"), "1700000000")
        self.assertEqual(tracker.last_add, 1700000000)

        with self.assertRaises(StoreStructureError):
            tracker.write(etree.fromstring("<store/>"), 1)


class TestOpenAndCreate(StoreTestCase):
    """Test construction of XMLDatabase."""

    def test_missing_file_without_create(self):
        """Test that opening a missing file fails."""
        with self.assertRaises(FileNotFoundError):
            self.open_store("missing.xml")

    def test_create_writes_skeleton(self):
        """Test creating a new store."""
        with self.new_store("nested/dir/store.xml") as db:
            self.assertTrue((self.base_dir / "nested/dir/store.xml").exists())
            self.assertEqual(db.next_id, 1)
            self.assertFalse(db.has_changes)
            self.assertEqual(list(db), [])

    def test_path_without_base_dir(self):
        """Test that a path is used as given without a base directory."""
        path = self.base_dir / "direct.xml"

        with XMLDatabase(self.schema, path, create=True) as db:
            db.add_data({"name": "x"})

        self.assertIn(b"<name>x</name>", path.read_bytes())

    def test_open_without_meta_fails(self):
        """Test that a document without meta cannot be opened."""
        (self.base_dir / "nometa.xml").write_text("<store><items/></store>")

        with self.assertRaises(StoreStructureError):
            self.open_store("nometa.xml")

    def test_open_truncated_document_fails(self):
        """Test that a malformed document cannot be opened."""
        (self.base_dir / "broken.xml").write_text("<store><meta><ai>1</ai></meta><items>")

        with self.assertRaises((etree.XMLSyntaxError, StoreStructureError)):
            self.open_store("broken.xml")

    def test_custom_schema(self):
        """Test a store with different tag names."""
        schema = SimpleSchema("library", "books", "book")

        with XMLDatabase(schema, "lib.xml", create=True, base_dir=self.base_dir) as db:
            db.add_data({"title": "Dune"})

        text = (self.base_dir / "lib.xml").read_text(encoding="utf-8")
        self.assertIn('<book id="1">', text)

        with XMLDatabase(schema, "lib.xml", base_dir=self.base_dir) as db:
            self.assertEqual(db.find_by_id(1)["title"], "Dune")
            self.assertEqual([r["title"] for r in db], ["Dune"])


class TestAddData(StoreTestCase):
    """Test inserts and identifier assignment."""

    def test_ids_increase_monotonically(self):
        """Test that N inserts get ids 1..N and ai ends at N+1."""
        with self.new_store() as db:
            ids = [db.add_data({"n": str(i)}) for i in range(5)]

            self.assertEqual(ids, [1, 2, 3, 4, 5])
            self.assertEqual(db.next_id, 6)
            self.assertEqual(db.tree.getroot().findtext("meta/ai"), "6")
            self.assertTrue(db.has_changes)

        with self.open_store() as db:
            self.assertEqual(db.next_id, 6)
            self.assertEqual(db.add_data({"n": "again"}), 6)

    def test_last_add_timestamp(self):
        """Test that inserts record the time."""
        before = int(time.time())
        with self.new_store() as db:
            db.add_data({"n": "1"})
            last_add = db.meta.last_add

        self.assertIsNotNone(last_add)
        self.assertGreaterEqual(last_add, before)
        self.assertLessEqual(last_add, int(time.time()))

    def test_input_is_not_mutated(self):
        """Test that the caller's mapping is left alone."""
        record = {"city": "Berlin", "attributes": {}}

        with self.new_store() as db:
            db.add_data(record)

        self.assertEqual(record, {"city": "Berlin", "attributes": {}})

    def test_caller_id_is_replaced(self):
        """Test that a supplied id is overwritten and other attributes kept."""
        with self.new_store() as db:
            db.add_data({"attributes": {"id": "99", "lang": "de"}, "n": "x"})

            self.assertEqual(db.find_by_id(1)["attributes"], {"id": "1", "lang": "de"})
            self.assertIsNone(db.find_by_id(99))

    def test_add_record_model(self):
        """Test inserting a Record."""
        with self.new_store() as db:
            record_id = db.add_data(Record.from_decoded({"city": "Rome"}))

            self.assertEqual(record_id, 1)
            self.assertEqual(db.find_by_id(1), {"attributes": {"id": "1"}, "city": "Rome"})

    def test_invalid_value_does_not_use_an_id(self):
        """Test that a rejected record leaves the counter alone."""
        with self.new_store() as db:
            with self.assertRaises(TypeError):
                db.add_data({"tags": ["a"]})

            self.assertEqual(db.next_id, 1)
            self.assertFalse(db.has_changes)

    def test_missing_container(self):
        """Test inserting into a document without a container."""
        (self.base_dir / "nocontainer.xml").write_text("<store><meta><ai>1</ai></meta></store>")

        with self.open_store("nocontainer.xml") as db:
            with self.assertRaises(StoreStructureError):
                db.add_data({"n": "x"})


class TestQueries(StoreTestCase):
    """Test lookups by id and by field value."""

    def setUp(self):
        super().setUp()
        self.db = self.new_store()
        self.db.add_data({"city": "Berlin", "address": {"city": "Mitte", "zip": "10115"}})
        self.db.add_data({"city": "Paris", "address": {"city": "Berlin", "zip": "75001"}})
        self.db.add_data({"city": "Berlin", "address": {"city": "Kreuzberg", "zip": "10999"}})

    def tearDown(self):
        self.db.close()
        super().tearDown()

    def test_find_by_id(self):
        """Test id lookups, including unsaved records."""
        self.assertEqual(self.db.find_by_id(2)["city"], "Paris")
        self.assertEqual(self.db.find_by_id("3")["address"]["city"], "Kreuzberg")
        self.assertIsNone(self.db.find_by_id(4))
        self.assertIsNone(self.db.find_by_id(0))

    def test_find_by_field(self):
        """Test exact matches on a top level field."""
        model = self.db.find_by("city", "Berlin")

        self.assertIsInstance(model, RecordModel)
        self.assertEqual(len(model), 2)
        self.assertEqual(model.ids(), [1, 3])
        self.assertIs(model.store, self.db)
        self.assertEqual([r["address"]["zip"] for r in model], ["10115", "10999"])
        self.assertEqual(model.first()["attributes"]["id"], "1")
        self.assertEqual([r.id for r in model.records()], [1, 3])

    def test_find_by_nested_path(self):
        """Test matches on a nested field."""
        model = self.db.find_by(["address", "city"], "Berlin")

        self.assertEqual(model.ids(), [2])
        self.assertEqual(self.db.find_by(("address", "zip"), "10999").ids(), [3])

    def test_matching_is_exact(self):
        """Test that matching is case sensitive and whole value."""
        self.assertIsNone(self.db.find_by("city", "berlin"))
        self.assertIsNone(self.db.find_by("city", "Ber"))
        self.assertIsNone(self.db.find_by("country", "Berlin"))

    def test_invalid_field_path(self):
        """Test that bad field paths are rejected."""
        with self.assertRaises(ValueError):
            self.db.find_by([], "x")
        with self.assertRaises(ValueError):
            self.db.find_by("city[1]", "x")
        with self.assertRaises(ValueError):
            self.db.find_by(["address", "bad name"], "x")

    def test_value_with_quotes(self):
        """Test values that would break a quoted query."""
        self.db.add_data({"city": 'O\'Neil "Town"'})

        self.assertEqual(self.db.find_by("city", 'O\'Neil "Town"').ids(), [4])

    def test_find_by_unusual_field_names(self):
        """Test fields with non-ASCII names and names starting with 'xml'."""
        self.db.add_data({"xmlData": "v", "straße": "Hauptstr"})

        self.assertEqual(self.db.find_by("xmlData", "v").ids(), [4])
        self.assertEqual(self.db.find_by("straße", "Hauptstr").ids(), [4])

    def test_unresolved_match_is_fatal(self):
        """Test that a match without an enclosing record raises."""
        with patch.object(QueryEngine, "_is_record", return_value=False):
            with self.assertRaises(StoreStructureError):
                self.db.find_by("city", "Berlin")

    def test_queries_see_saved_tree(self):
        """Test lookups after the tree was normalised by a save."""
        self.db.save()

        self.assertEqual(self.db.find_by_id(1)["city"], "Berlin")
        self.assertEqual(self.db.find_by("city", "Paris").ids(), [2])


class TestDuplicateMatches(StoreTestCase):
    """Test records matched more than once."""

    def test_record_listed_once(self):
        """Test that repeated matching fields yield the record once."""
        write_document(
            self.base_dir / "dup.xml",
            '<item id="1"><tag>x</tag><tag>x</tag></item><item id="2"><tag>y</tag></item>',
            ai="<ai>3</ai>"
        )

        with self.open_store("dup.xml") as db:
            model = db.find_by("tag", "x")

            self.assertEqual(len(model), 1)
            self.assertEqual(list(model), [{"attributes": {"id": "1"}, "tag": "x"}])

    def test_many_matches(self):
        """Test a value shared by thousands of records."""
        with self.new_store() as db:
            for _ in range(6000):
                db.add_data({"city": "Berlin"})
            db.add_data({"city": "Paris"})

            model = db.find_by("city", "Berlin")

            self.assertEqual(len(model), 6000)
            self.assertEqual(model.ids(), list(range(1, 6001)))


class TestPersistence(StoreTestCase):
    """Test saving, closing and reopening."""

    def test_save_is_idempotent(self):
        """Test that a second save without changes writes nothing."""
        db = self.new_store()
        db.add_data({"n": "1"})

        with patch.object(db, "_write_bytes", wraps=db._write_bytes) as write:
            self.assertTrue(db.save())
            first = (self.base_dir / "store.xml").read_bytes()
            self.assertFalse(db.save())
            second = (self.base_dir / "store.xml").read_bytes()

        self.assertEqual(write.call_count, 1)
        self.assertEqual(first, second)
        self.assertFalse(db.has_changes)
        db.close()

    def test_save_without_changes(self):
        """Test that an untouched store is never rewritten."""
        path = self.base_dir / "store.xml"
        db = self.new_store()
        original = path.read_bytes()

        with patch.object(db, "_write_bytes") as write:
            db.close()

        write.assert_not_called()
        self.assertEqual(path.read_bytes(), original)

    def test_saved_document_shape(self):
        """Test the written document."""
        with self.new_store() as db:
            db.add_data({"city": "Berlin", "html": "<b>x</b>"})

        root = etree.parse(str(self.base_dir / "store.xml")).getroot()
        self.assertEqual(root.findtext("meta/ai"), "2")
        self.assertEqual(root.find("items/item").get("id"), "1")
        self.assertEqual(root.findtext("items/item/html"), "<b>x</b>")
        self.assertTrue((self.base_dir / "store.xml").read_bytes().startswith(b"<?xml"))

    def test_non_ascii_field_names(self):
        """Test saving and reopening records with non-ASCII field names."""
        with self.new_store() as db:
            db.add_data({"straße": "Hauptstr", "city": "Köln"})
            self.assertTrue(db.save())

        with self.open_store() as db:
            self.assertEqual(db.find_by_id(1), {
                "attributes": {"id": "1"},
                "straße": "Hauptstr",
                "city": "Köln"
            })
            self.assertEqual(list(db)[0]["straße"], "Hauptstr")

    def test_context_manager_saves_on_error(self):
        """Test that pending inserts are saved when the block raises."""
        with self.assertRaises(KeyError):
            with self.new_store() as db:
                db.add_data({"city": "Berlin"})
                raise KeyError("boom")

        with self.open_store() as db:
            self.assertEqual(db.find_by_id(1)["city"], "Berlin")

    def test_close_is_idempotent(self):
        """Test closing twice and using a closed store."""
        db = self.new_store()
        db.close()
        db.close()

        with self.assertRaises(RuntimeError):
            db.add_data({"n": "x"})
        with self.assertRaises(RuntimeError):
            db.rewind()

    def test_no_leftover_temp_files(self):
        """Test that atomic writes clean up after themselves."""
        with self.new_store() as db:
            db.add_data({"n": "1"})

        self.assertEqual(sorted(p.name for p in self.base_dir.iterdir()), ["store.xml"])


class TestIteration(StoreTestCase):
    """Test full scans through the store."""

    def test_scan_yields_all_records_in_order(self):
        """Test that a scan returns N records then reports the end."""
        with self.new_store() as db:
            for i in range(4):
                db.add_data({"n": str(i)})
            db.save()
            db.reopen()

            db.rewind()
            seen = []
            while db.advance():
                seen.append(db.current())

            self.assertEqual([r["attributes"]["id"] for r in seen], ["1", "2", "3", "4"])
            self.assertEqual([r["n"] for r in seen], ["0", "1", "2", "3"])
            self.assertFalse(db.advance())
            self.assertFalse(db.advance())
            self.assertIsNone(db.current())

    def test_scan_does_not_see_writes_until_reopen(self):
        """Test that the streaming view stays as it was when opened."""
        with self.new_store() as db:
            db.add_data({"n": "1"})
            self.assertEqual(list(db), [])

            db.save()
            self.assertEqual(list(db), [])

            db.reopen()
            self.assertEqual(list(db), [{"attributes": {"id": "1"}, "n": "1"}])

    def test_reopen_keeps_unsaved_counter(self):
        """Test that reopening does not hand out ids twice."""
        with self.new_store() as db:
            db.add_data({"n": "1"})
            db.add_data({"n": "2"})
            db.reopen()

            self.assertEqual(db.next_id, 3)
            self.assertEqual(db.add_data({"n": "3"}), 3)

    def test_iterating_twice(self):
        """Test that iteration starts over each time."""
        with self.new_store() as db:
            db.add_data({"n": "1"})
        with self.open_store() as db:
            self.assertEqual(list(db), list(db))
            self.assertEqual(len(list(db)), 1)


class TestScenario(StoreTestCase):
    """The items/item walkthrough."""

    def test_items_scenario(self):
        schema = SimpleSchema(container_tag="items", record_tag="item")

        with XMLDatabase(schema, "items.xml", create=True, base_dir=self.base_dir) as db:
            db.add_data({"city": "Berlin", "attributes": {}})
            db.add_data({"city": "Paris", "attributes": {}})

            self.assertEqual(db.find_by_id(1)["city"], "Berlin")
            self.assertEqual(db.find_by_id(2)["city"], "Paris")

            berlin = list(db.find_by("city", "Berlin"))
            self.assertEqual(len(berlin), 1)
            self.assertEqual(berlin[0]["attributes"]["id"], "1")

            db.save()
            db.reopen()
            self.assertEqual(list(db), [
                {"attributes": {"id": "1"}, "city": "Berlin"},
                {"attributes": {"id": "2"}, "city": "Paris"}
            ])


if __name__ == '__main__':
    unittest.main()
