import sqlite3
import threading

import pytest

from mdreader.database.manager import DatabaseManager
from mdreader.errors import (
    ConflictError,
    ConsistencyError,
    InvalidInputError,
    MissingReferenceError,
    NotFoundError,
)
from mdreader.index.parser import parse_document
from mdreader.models.document import Annotation, Collection
from mdreader.utils import now_ms


def annotation(doc_path="a.md", id="ann-1", start=0, end=5, **kwargs):
    return Annotation(
        id=id,
        document_path=doc_path,
        selected_text=kwargs.pop("selected_text", "hello"),
        start_offset=start,
        end_offset=end,
        **kwargs,
    )


def fts_rows(manager):
    conn = manager._get_connection()
    try:
        return conn.execute("SELECT rowid, path FROM documents_fts ORDER BY path").fetchall()
    finally:
        conn.close()


class TestDatabaseSchema:
    """Test table creation and constraints."""

    def test_tables_exist(self, manager):
        conn = manager._get_connection()
        names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
        conn.close()
        for table in (
            "documents",
            "documents_fts",
            "document_tags",
            "document_topics",
            "annotations",
            "collections",
            "document_collections",
        ):
            assert table in names

    def test_reopen_is_idempotent(self, manager, add_doc):
        add_doc("a.md", "# A\nalpha")
        reopened = DatabaseManager(manager.db_path)
        assert reopened.get_document("a.md").title == "A"
        assert reopened.check_consistency()["consistent"]

    def test_documents_unique_path(self, manager, add_doc):
        add_doc("a.md", "# A")
        conn = manager._get_connection()
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO documents (path, title, content, raw_content, created_at, modified_at, indexed_at)"
                    " VALUES ('a.md', 't', 'c', 'r', 0, 0, 0)"
                )
        finally:
            conn.close()


class TestDocumentCRUD:
    def test_round_trip(self, manager):
        record = parse_document("notes/go.md", b"---\ntags: [go]\ncontentType: guide\n---\n# Go Guide\nlearn go\n")
        manager.upsert_document(record, created_at=10, modified_at=20)
        doc = manager.get_document("notes/go.md")
        assert doc.title == record.title == "Go Guide"
        assert doc.tags == record.tags
        assert doc.topics == record.topics
        assert doc.word_count == record.word_count
        assert doc.content_type == "guide"
        assert doc.frontmatter == {"tags": ["go"], "contentType": "guide"}
        assert doc.raw_content == record.raw_content
        assert (doc.created_at, doc.modified_at) == (10, 20)

    def test_get_missing_document(self, manager):
        assert manager.get_document("missing.md") is None

    def test_update_preserves_created_at(self, manager, add_doc):
        add_doc("a.md", "# First", modified_at=1_000, created_at=500)
        doc = add_doc("a.md", "# Second", modified_at=2_000, created_at=1_500)
        assert doc.title == "Second"
        assert doc.created_at == 500
        assert doc.modified_at == 2_000

    def test_indexed_at_not_before_modified_at(self, manager, add_doc):
        future = now_ms() + 60_000
        doc = add_doc("a.md", "# Future", modified_at=future)
        assert doc.indexed_at >= doc.modified_at
        doc = add_doc("b.md", "# Past", modified_at=1_000)
        assert doc.indexed_at >= doc.modified_at

    def test_update_replaces_index_entry(self, manager, add_doc):
        add_doc("a.md", "# Doc\nalpha content")
        add_doc("a.md", "# Doc\nbeta content")
        assert manager.search("alpha")[1] == 0
        hits, total = manager.search("beta")
        assert total == 1 and hits[0].path == "a.md"
        assert len(fts_rows(manager)) == 1

    def test_update_replaces_facets(self, manager, add_doc):
        add_doc("a.md", "#old")
        add_doc("a.md", "#new")
        assert manager.tag_counts() == [{"name": "new", "count": 1}]

    def test_delete_document(self, manager, add_doc):
        add_doc("a.md", "# Doc\nalpha")
        assert manager.delete_document("a.md") is True
        assert manager.delete_document("a.md") is False
        assert manager.get_document("a.md") is None
        assert manager.search("alpha") == ([], 0)
        assert fts_rows(manager) == []
        assert manager.tag_counts() == []

    def test_delete_documents_bulk(self, manager, add_doc):
        for name in ("a.md", "b.md", "c.md"):
            add_doc(name, f"# {name}")
        assert manager.delete_documents(["a.md", "c.md", "missing.md"]) == 2
        assert manager.list_paths() == ["b.md"]

    def test_list_documents_order(self, manager, add_doc):
        add_doc("old.md", "# Old", modified_at=1_000)
        add_doc("new.md", "# New", modified_at=3_000)
        add_doc("b-mid.md", "# Mid", modified_at=2_000)
        add_doc("a-mid.md", "# Mid", modified_at=2_000)
        paths = [d.path for d in manager.list_documents()]
        assert paths == ["new.md", "a-mid.md", "b-mid.md", "old.md"]
        assert [d.path for d in manager.list_documents(limit=2, offset=1)] == ["a-mid.md", "b-mid.md"]

    def test_stats(self, manager, add_doc):
        add_doc("a.md", "one two three")
        add_doc("b.md", "four five")
        stats = manager.get_stats()
        assert stats["documents"] == 2
        assert stats["total_words"] == 5
        assert stats["annotations"] == 0
        assert "db_size" in stats

    def test_tag_and_topic_counts(self, manager, add_doc):
        add_doc("a.md", "---\ntags: [go, rust]\ntopics: [systems]\n---\nx")
        add_doc("b.md", "---\ntags: [go]\n---\nx")
        assert manager.tag_counts() == [
            {"name": "go", "count": 2},
            {"name": "rust", "count": 1},
        ]
        assert {"name": "systems", "count": 1} in manager.topic_counts()


class TestDeletionCascade:
    def test_annotations_and_memberships_removed(self, manager, add_doc):
        add_doc("a.md", "hello world, this is a document")
        add_doc("b.md", "another document")
        manager.create_annotation(annotation("a.md"))
        manager.create_collection(Collection(id="c1", name="Reading"))
        manager.add_documents_to_collection(["a.md", "b.md"], "c1")

        manager.delete_document("a.md")

        assert manager.list_annotations("a.md") == []
        assert manager.get_annotation("ann-1") is None
        assert manager.get_document_collections("a.md") == []
        assert manager.get_collection("c1").document_count == 1
        assert [d.path for d in manager.get_collection_documents("c1")] == ["b.md"]
        assert manager.check_consistency()["consistent"]


class TestConsistency:
    def test_consistent_after_mixed_operations(self, manager, add_doc):
        for i in range(5):
            add_doc(f"doc{i}.md", f"# Doc {i}\ncommon words {i}")
        add_doc("doc1.md", "# Doc 1 updated\ncommon")
        manager.delete_document("doc3.md")
        report = manager.check_consistency()
        assert report["consistent"]
        assert report["documents"] == report["index_entries"] == 4

        hits, total = manager.search("common")
        assert total == 4
        stored = set(manager.list_paths())
        assert {h.path for h in hits} <= stored

    def test_detects_and_repairs_drift(self, manager, add_doc):
        add_doc("a.md", "# A\nalpha")
        add_doc("b.md", "# B\nbeta")
        conn = manager._get_connection()
        conn.execute("DELETE FROM documents_fts WHERE path = 'a.md'")
        conn.close()

        report = manager.check_consistency()
        assert not report["consistent"]
        assert report["missing_index"] == ["a.md"]
        with pytest.raises(ConsistencyError):
            manager.assert_consistent()

        assert manager.rebuild_fts() == 2
        manager.assert_consistent()
        assert manager.search("alpha")[1] == 1

    def test_failed_transaction_rolls_back(self, manager, add_doc):
        add_doc("a.md", "# A")
        manager.create_collection(Collection(id="c1", name="One"))
        with pytest.raises(MissingReferenceError):
            manager.add_documents_to_collection(["a.md", "missing.md"], "c1")
        assert manager.get_collection("c1").document_count == 0


class TestAnnotations:
    def test_create_and_get(self, manager, add_doc):
        add_doc("a.md", "hello world")
        created = manager.create_annotation(annotation(note="greeting"))
        assert created.color == "yellow"
        assert created.created_at == created.updated_at
        assert manager.get_annotation("ann-1") == created

    def test_offset_beyond_content_length(self, manager, add_doc):
        add_doc("short.md", "abcdefghijklmno")
        assert len(manager.get_document("short.md").raw_content) == 15
        with pytest.raises(InvalidInputError):
            manager.create_annotation(annotation("short.md", start=10, end=20))
        assert manager.list_annotations("short.md") == []

    def test_end_equal_to_length_is_valid(self, manager, add_doc):
        add_doc("short.md", "abcdefghijklmno")
        assert manager.create_annotation(annotation("short.md", start=10, end=15)).end_offset == 15

    def test_offsets_count_characters(self, manager, add_doc):
        add_doc("u.md", "héllo wörld")
        assert manager.create_annotation(annotation("u.md", start=6, end=11)).end_offset == 11

    @pytest.mark.parametrize("start, end", [(5, 5), (6, 5), (-1, 3)])
    def test_invalid_ranges(self, manager, add_doc, start, end):
        add_doc("a.md", "hello world")
        with pytest.raises(InvalidInputError):
            manager.create_annotation(annotation(start=start, end=end))

    def test_required_fields(self, manager, add_doc):
        add_doc("a.md", "hello world")
        with pytest.raises(InvalidInputError):
            manager.create_annotation(annotation(selected_text=""))
        with pytest.raises(InvalidInputError):
            manager.create_annotation(annotation(id=""))

    def test_missing_document(self, manager):
        with pytest.raises(MissingReferenceError):
            manager.create_annotation(annotation("nope.md"))

    def test_duplicate_id(self, manager, add_doc):
        add_doc("a.md", "hello world")
        manager.create_annotation(annotation())
        with pytest.raises(ConflictError):
            manager.create_annotation(annotation())

    def test_update_only_changes_note_and_color(self, manager, add_doc):
        add_doc("a.md", "hello world")
        manager.create_annotation(annotation(start=0, end=5))
        updated = manager.update_annotation("ann-1", note="new note", color="green")
        assert (updated.note, updated.color) == ("new note", "green")
        assert (updated.start_offset, updated.end_offset, updated.selected_text) == (0, 5, "hello")
        assert manager.update_annotation("ann-1", note="again").color == "green"

    def test_update_and_delete_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.update_annotation("missing", note="x")
        with pytest.raises(NotFoundError):
            manager.delete_annotation("missing")

    def test_list_ordered_by_start(self, manager, add_doc):
        add_doc("a.md", "hello world, hello again")
        manager.create_annotation(annotation(id="late", start=13, end=18))
        manager.create_annotation(annotation(id="early", start=0, end=5))
        assert [a.id for a in manager.list_annotations("a.md")] == ["early", "late"]

    def test_delete(self, manager, add_doc):
        add_doc("a.md", "hello world")
        manager.create_annotation(annotation())
        manager.delete_annotation("ann-1")
        assert manager.list_annotations("a.md") == []


class TestCollections:
    def test_create_and_list(self, manager):
        manager.create_collection(Collection(id="z", name="Zeta"))
        created = manager.create_collection(Collection(id="a", name="Alpha", description="first"))
        assert created.color == "#3b82f6"
        assert created.document_count == 0
        assert [c.name for c in manager.list_collections()] == ["Alpha", "Zeta"]

    def test_duplicate_name_conflicts(self, manager):
        manager.create_collection(Collection(id="c1", name="Reading"))
        with pytest.raises(ConflictError):
            manager.create_collection(Collection(id="c2", name="Reading"))
        with pytest.raises(ConflictError):
            manager.create_collection(Collection(id="c1", name="Other"))
        assert len(manager.list_collections()) == 1

    def test_update(self, manager):
        manager.create_collection(Collection(id="c1", name="One"))
        manager.create_collection(Collection(id="c2", name="Two"))
        updated = manager.update_collection("c1", name="Uno", color="red")
        assert (updated.name, updated.color) == ("Uno", "red")
        with pytest.raises(ConflictError):
            manager.update_collection("c1", name="Two")
        with pytest.raises(NotFoundError):
            manager.update_collection("missing", name="X")

    def test_membership_is_idempotent(self, manager, add_doc):
        add_doc("a.md", "x")
        manager.create_collection(Collection(id="c1", name="One"))
        assert manager.add_document_to_collection("a.md", "c1") is True
        assert manager.add_document_to_collection("a.md", "c1") is False
        assert manager.get_collection("c1").document_count == 1
        assert manager.remove_document_from_collection("a.md", "c1") is True
        assert manager.remove_document_from_collection("a.md", "c1") is False

    def test_membership_requires_both_endpoints(self, manager, add_doc):
        add_doc("a.md", "x")
        manager.create_collection(Collection(id="c1", name="One"))
        with pytest.raises(MissingReferenceError):
            manager.add_document_to_collection("missing.md", "c1")
        with pytest.raises(MissingReferenceError):
            manager.add_document_to_collection("a.md", "missing")

    def test_bulk_counts(self, manager, add_doc):
        for name in ("a.md", "b.md", "c.md"):
            add_doc(name, "x")
        manager.create_collection(Collection(id="c1", name="One"))
        manager.add_document_to_collection("a.md", "c1")
        result = manager.add_documents_to_collection(["a.md", "b.md", "c.md", "b.md"], "c1")
        assert result == {"added": 2, "requested": 3}
        result = manager.remove_documents_from_collection(["a.md", "missing.md"], "c1")
        assert result == {"removed": 1, "requested": 2}
        assert manager.get_collection("c1").document_count == 2

    def test_delete_collection_scenario(self, manager, add_doc):
        add_doc("a.md", "x")
        add_doc("b.md", "y")
        manager.create_collection(Collection(id="doomed", name="Doomed"))
        manager.create_collection(Collection(id="keep", name="Keep"))
        manager.add_documents_to_collection(["a.md", "b.md"], "doomed")
        manager.add_document_to_collection("a.md", "keep")

        manager.delete_collection("doomed")

        assert [c.id for c in manager.list_collections()] == ["keep"]
        assert [c.id for c in manager.get_document_collections("a.md")] == ["keep"]
        assert manager.get_document_collections("b.md") == []
        assert manager.get_document("b.md") is not None
        with pytest.raises(NotFoundError):
            manager.delete_collection("doomed")


class TestTransactions:
    def test_original_error_survives_implicit_rollback(self, manager):
        with pytest.raises(ValueError, match="original"):
            with manager._transaction() as conn:
                conn.execute("ROLLBACK")
                raise ValueError("original")

    def test_search_snapshot_under_concurrent_writes(self, manager, add_doc):
        for i in range(10):
            add_doc(f"base{i}.md", f"# Base {i}\nshared term")
        errors = []
        stop = threading.Event()

        def writer():
            try:
                i = 0
                while not stop.is_set():
                    add_doc(f"churn{i % 5}.md", f"# Churn {i}\nshared term {i}")
                    manager.delete_document(f"churn{(i + 2) % 5}.md")
                    i += 1
            except Exception as e:
                errors.append(e)

        def reader():
            try:
                for _ in range(50):
                    hits, total = manager.search("shared", limit=100)
                    # Page and count come from the same snapshot
                    assert len(hits) == total
                    for hit in hits:
                        assert hit.title
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads[1:]:
            t.join()
        stop.set()
        threads[0].join()

        assert errors == []
        assert manager.check_consistency()["consistent"]
