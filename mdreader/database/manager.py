import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import (
    ConflictError,
    ConsistencyError,
    InvalidInputError,
    MissingReferenceError,
    NotFoundError,
)
from ..models.document import (
    DEFAULT_ANNOTATION_COLOR,
    DEFAULT_COLLECTION_COLOR,
    Annotation,
    Collection,
    Document,
    DocumentSummary,
    ParsedDocument,
    SearchFacets,
    SearchHit,
)
from ..utils import now_ms
from .schema import FTS_BM25_WEIGHTS, FTS_CONTENT_COLUMN, FTS_SCHEMA, SCHEMA, TRIGGERS

logger = logging.getLogger(__name__)

_SUMMARY_COLUMNS = "d.path, d.title, d.tags, d.topics, d.content_type, d.word_count, d.modified_at"

_COLLECTION_SELECT = """
    SELECT c.*, COUNT(dc.document_path) AS document_count
    FROM collections c
    LEFT JOIN document_collections dc ON c.id = dc.collection_id
"""


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        path=row["path"],
        title=row["title"],
        content=row["content"],
        raw_content=row["raw_content"],
        frontmatter=json.loads(row["frontmatter"]) if row["frontmatter"] else {},
        tags=json.loads(row["tags"]) if row["tags"] else [],
        topics=json.loads(row["topics"]) if row["topics"] else [],
        content_type=row["content_type"],
        word_count=row["word_count"],
        created_at=row["created_at"],
        modified_at=row["modified_at"],
        indexed_at=row["indexed_at"],
    )


def _row_to_summary(row: sqlite3.Row) -> DocumentSummary:
    return DocumentSummary(
        path=row["path"],
        title=row["title"],
        tags=json.loads(row["tags"]) if row["tags"] else [],
        topics=json.loads(row["topics"]) if row["topics"] else [],
        content_type=row["content_type"],
        word_count=row["word_count"],
        modified_at=row["modified_at"],
    )


def _row_to_annotation(row: sqlite3.Row) -> Annotation:
    return Annotation(
        id=row["id"],
        document_path=row["document_path"],
        selected_text=row["selected_text"],
        note=row["note"],
        color=row["color"],
        start_offset=row["start_offset"],
        end_offset=row["end_offset"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_collection(row: sqlite3.Row) -> Collection:
    return Collection(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        color=row["color"],
        document_count=row["document_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field} is required")
    return value


def _require_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field} must be an integer")
    return value


def _unique_paths(paths: Iterable[str]) -> List[str]:
    seen = []
    for p in paths:
        _require_text(p, "documentPath")
        if p not in seen:
            seen.append(p)
    return seen


class DatabaseManager:
    """
    SQLite-backed index store.

    Every public mutating method runs in a single BEGIN IMMEDIATE transaction
    on its own connection and is rolled back on any error. The FTS table is
    maintained exclusively by triggers, so it changes in the same statement
    as the document row it mirrors.
    """

    def __init__(self, db_path: str = "documents.db", busy_timeout: float = 30.0):
        self.db_path = os.path.expanduser(db_path)
        self.busy_timeout = busy_timeout
        self._init_db()

    def _get_connection(self):
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")

        # Enable foreign keys (cascades for annotations, memberships, facets)
        conn.execute("PRAGMA foreign_keys=ON")

        return conn

    def _init_db(self):
        # Ensure directory exists
        db_dir = os.path.dirname(os.path.abspath(self.db_path))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        conn = self._get_connection()
        try:
            conn.executescript(SCHEMA)
            conn.executescript(FTS_SCHEMA)
            conn.executescript(TRIGGERS)
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction: takes the write lock up front, rolls back on error."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                # SQLite may already have rolled back on its own
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def _snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read transaction: all statements see the same committed state."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                if conn.in_transaction:
                    conn.execute("COMMIT")
        finally:
            conn.close()

    # Document operations
    def upsert_document(
        self,
        record: ParsedDocument,
        created_at: Optional[int] = None,
        modified_at: Optional[int] = None,
    ) -> Document:
        """
        Insert or fully overwrite the document stored under record.path.

        created_at is only used for a new row; an existing row keeps its
        original creation time. indexed_at is never earlier than modified_at.
        """
        _require_text(record.path, "path")
        now = now_ms()
        created_at = created_at if created_at is not None else now
        modified_at = modified_at if modified_at is not None else now
        indexed_at = max(now, modified_at)
        tags = sorted(set(record.tags))
        topics = sorted(set(record.topics))

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents (
                    path, title, content, raw_content, frontmatter, tags, topics,
                    content_type, word_count, created_at, modified_at, indexed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    raw_content = excluded.raw_content,
                    frontmatter = excluded.frontmatter,
                    tags = excluded.tags,
                    topics = excluded.topics,
                    content_type = excluded.content_type,
                    word_count = excluded.word_count,
                    modified_at = excluded.modified_at,
                    indexed_at = excluded.indexed_at
                """,
                (
                    record.path,
                    record.title,
                    record.content,
                    record.raw_content,
                    json.dumps(record.frontmatter or {}, sort_keys=True),
                    json.dumps(tags),
                    json.dumps(topics),
                    record.content_type,
                    record.word_count,
                    created_at,
                    modified_at,
                    indexed_at,
                ),
            )

            conn.execute("DELETE FROM document_tags WHERE document_path = ?", (record.path,))
            conn.executemany(
                "INSERT INTO document_tags (document_path, tag) VALUES (?, ?)",
                [(record.path, t) for t in tags],
            )
            conn.execute("DELETE FROM document_topics WHERE document_path = ?", (record.path,))
            conn.executemany(
                "INSERT INTO document_topics (document_path, topic) VALUES (?, ?)",
                [(record.path, t) for t in topics],
            )

            row = conn.execute("SELECT * FROM documents WHERE path = ?", (record.path,)).fetchone()
            return _row_to_document(row)

    def delete_document(self, path: str) -> bool:
        """Delete a document; annotations, memberships and its FTS entry go with it."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
            return cursor.rowcount > 0

    def delete_documents(self, paths: Iterable[str]) -> int:
        paths = list(paths)
        if not paths:
            return 0
        with self._transaction() as conn:
            deleted = 0
            for p in paths:
                deleted += conn.execute("DELETE FROM documents WHERE path = ?", (p,)).rowcount
            return deleted

    def get_document(self, path: str) -> Optional[Document]:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM documents WHERE path = ?", (path,)).fetchone()
            return _row_to_document(row) if row else None
        finally:
            conn.close()

    def list_documents(self, limit: int = 100, offset: int = 0) -> List[DocumentSummary]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"""
                SELECT {_SUMMARY_COLUMNS}
                FROM documents d
                ORDER BY d.modified_at DESC, d.path ASC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )
            return [_row_to_summary(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def list_paths(self) -> List[str]:
        conn = self._get_connection()
        try:
            return [row["path"] for row in conn.execute("SELECT path FROM documents ORDER BY path")]
        finally:
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        with self._snapshot() as conn:
            doc_count, total_words, last_indexed = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(word_count), 0), MAX(indexed_at) FROM documents"
            ).fetchone()
            annotation_count = conn.execute("SELECT COUNT(*) FROM annotations").fetchone()[0]
            collection_count = conn.execute("SELECT COUNT(*) FROM collections").fetchone()[0]

        db_size = os.path.getsize(self.db_path) if os.path.exists(self.db_path) else 0
        return {
            "documents": doc_count,
            "total_words": total_words,
            "annotations": annotation_count,
            "collections": collection_count,
            "last_indexed_at": last_indexed,
            "db_size": db_size,
        }

    def tag_counts(self) -> List[Dict[str, Any]]:
        return self._facet_counts("document_tags", "tag")

    def topic_counts(self) -> List[Dict[str, Any]]:
        return self._facet_counts("document_topics", "topic")

    def _facet_counts(self, table: str, column: str) -> List[Dict[str, Any]]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"""
                SELECT {column} AS name, COUNT(*) AS count
                FROM {table}
                GROUP BY {column}
                ORDER BY count DESC, name ASC
                """
            )
            return [{"name": row["name"], "count": row["count"]} for row in cursor.fetchall()]
        finally:
            conn.close()

    # Search
    def search(
        self,
        fts_query: str,
        facets: Optional[SearchFacets] = None,
        limit: int = 20,
        offset: int = 0,
        snippet_tokens: int = 30,
    ) -> Tuple[List[SearchHit], int]:
        """
        Run an FTS5 MATCH with structural filters.

        Results are derived from the join between documents_fts and documents,
        so a path without a document row can never be returned. Returns the
        requested page and the total number of matches.
        """
        facets = facets or SearchFacets()
        where = ["documents_fts MATCH ?"]
        params: List[Any] = [fts_query]

        for values, table, column in (
            (facets.tags, "document_tags", "tag"),
            (facets.topics, "document_topics", "topic"),
        ):
            values = sorted(set(values))
            if not values:
                continue
            qmarks = ",".join(["?"] * len(values))
            # AND semantics: the document must carry every requested value
            where.append(
                f"""d.path IN (
                    SELECT document_path FROM {table}
                    WHERE {column} IN ({qmarks})
                    GROUP BY document_path
                    HAVING COUNT(DISTINCT {column}) = ?
                )"""
            )
            params.extend(values)
            params.append(len(values))

        if facets.content_type:
            where.append("d.content_type = ?")
            params.append(facets.content_type)
        if facets.date_from is not None:
            where.append("d.modified_at >= ?")
            params.append(facets.date_from)
        if facets.date_to is not None:
            where.append("d.modified_at <= ?")
            params.append(facets.date_to)

        from_sql = f"""
            FROM documents_fts
            JOIN documents d ON d.id = documents_fts.rowid
            WHERE {" AND ".join(where)}
        """
        weights = ", ".join(str(w) for w in FTS_BM25_WEIGHTS)

        with self._snapshot() as conn:
            total = conn.execute(f"SELECT COUNT(*) {from_sql}", params).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT
                    {_SUMMARY_COLUMNS},
                    snippet(documents_fts, {FTS_CONTENT_COLUMN}, '<mark>', '</mark>', '...', {int(snippet_tokens)}) AS snippet,
                    bm25(documents_fts, {weights}) AS score
                {from_sql}
                ORDER BY score ASC, d.modified_at DESC, d.path ASC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()

        hits = []
        for row in rows:
            summary = _row_to_summary(row)
            hits.append(
                SearchHit(
                    path=summary.path,
                    title=summary.title,
                    tags=summary.tags,
                    topics=summary.topics,
                    content_type=summary.content_type,
                    word_count=summary.word_count,
                    modified_at=summary.modified_at,
                    snippet=row["snippet"] or "",
                    score=row["score"],
                )
            )
        return hits, total

    # Consistency
    def check_consistency(self) -> Dict[str, Any]:
        """Compare the document table with the FTS table."""
        with self._snapshot() as conn:
            doc_count = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            fts_count = conn.execute("SELECT COUNT(*) FROM documents_fts").fetchone()[0]
            missing = [
                row["path"]
                for row in conn.execute(
                    """
                    SELECT d.path FROM documents d
                    WHERE NOT EXISTS (
                        SELECT 1 FROM documents_fts f WHERE f.rowid = d.id AND f.path = d.path
                    )
                    ORDER BY d.path
                    """
                )
            ]
            orphaned = [
                row["path"]
                for row in conn.execute(
                    """
                    SELECT f.path FROM documents_fts f
                    WHERE NOT EXISTS (SELECT 1 FROM documents d WHERE d.id = f.rowid)
                    ORDER BY f.path
                    """
                )
            ]
        return {
            "documents": doc_count,
            "index_entries": fts_count,
            "missing_index": missing,
            "orphaned_index": orphaned,
            "consistent": not missing and not orphaned and doc_count == fts_count,
        }

    def assert_consistent(self) -> None:
        report = self.check_consistency()
        if not report["consistent"]:
            raise ConsistencyError(
                f"Full-text index out of sync: {len(report['missing_index'])} missing, "
                f"{len(report['orphaned_index'])} orphaned entries. Run a full rescan."
            )

    def rebuild_fts(self) -> int:
        """Re-derive every FTS entry from the document rows."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM documents_fts")
            conn.execute(
                """
                INSERT INTO documents_fts(rowid, path, title, content, tags, topics)
                SELECT id, path, title, content, tags, topics FROM documents
                """
            )
            count = conn.execute("SELECT COUNT(*) FROM documents_fts").fetchone()[0]
            logger.info(f"Rebuilt full-text index ({count} entries)")
            return count

    # Annotation operations
    def create_annotation(self, annotation: Annotation) -> Annotation:
        _require_text(annotation.id, "id")
        _require_text(annotation.document_path, "documentPath")
        _require_text(annotation.selected_text, "selectedText")
        start = _require_int(annotation.start_offset, "startOffset")
        end = _require_int(annotation.end_offset, "endOffset")
        if start < 0 or start >= end:
            raise InvalidInputError(
                f"Invalid offsets: require 0 <= startOffset < endOffset (got {start}, {end})"
            )

        now = now_ms()
        with self._transaction() as conn:
            doc = conn.execute(
                "SELECT length(raw_content) AS size FROM documents WHERE path = ?",
                (annotation.document_path,),
            ).fetchone()
            if doc is None:
                raise MissingReferenceError(f"Document not found: {annotation.document_path}")
            if end > doc["size"]:
                raise InvalidInputError(
                    f"endOffset {end} exceeds document length {doc['size']}"
                )

            try:
                conn.execute(
                    """
                    INSERT INTO annotations (
                        id, document_path, selected_text, note, color,
                        start_offset, end_offset, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        annotation.id,
                        annotation.document_path,
                        annotation.selected_text,
                        annotation.note,
                        annotation.color or DEFAULT_ANNOTATION_COLOR,
                        start,
                        end,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError:
                raise ConflictError(f"Annotation already exists: {annotation.id}")

            row = conn.execute("SELECT * FROM annotations WHERE id = ?", (annotation.id,)).fetchone()
            return _row_to_annotation(row)

    def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM annotations WHERE id = ?", (annotation_id,)).fetchone()
            return _row_to_annotation(row) if row else None
        finally:
            conn.close()

    def update_annotation(
        self,
        annotation_id: str,
        note: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Annotation:
        """Update note and/or color. Offsets and selected text never change."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE annotations
                SET note = COALESCE(?, note),
                    color = COALESCE(?, color),
                    updated_at = ?
                WHERE id = ?
                """,
                (note, color, now_ms(), annotation_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Annotation not found: {annotation_id}")
            row = conn.execute("SELECT * FROM annotations WHERE id = ?", (annotation_id,)).fetchone()
            return _row_to_annotation(row)

    def delete_annotation(self, annotation_id: str) -> None:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM annotations WHERE id = ?", (annotation_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Annotation not found: {annotation_id}")

    def list_annotations(self, document_path: str) -> List[Annotation]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                SELECT * FROM annotations
                WHERE document_path = ?
                ORDER BY start_offset ASC, end_offset ASC, id ASC
                """,
                (document_path,),
            )
            return [_row_to_annotation(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    # Collection operations
    def create_collection(self, collection: Collection) -> Collection:
        _require_text(collection.id, "id")
        _require_text(collection.name, "name")
        now = now_ms()

        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM collections WHERE name = ?", (collection.name,)).fetchone():
                raise ConflictError(f"Collection '{collection.name}' already exists")
            if conn.execute("SELECT 1 FROM collections WHERE id = ?", (collection.id,)).fetchone():
                raise ConflictError(f"Collection id '{collection.id}' already exists")
            conn.execute(
                """
                INSERT INTO collections (id, name, description, color, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    collection.id,
                    collection.name,
                    collection.description,
                    collection.color or DEFAULT_COLLECTION_COLOR,
                    now,
                    now,
                ),
            )
            return self._fetch_collection(conn, collection.id)

    def _fetch_collection(self, conn: sqlite3.Connection, collection_id: str) -> Optional[Collection]:
        row = conn.execute(
            _COLLECTION_SELECT + " WHERE c.id = ? GROUP BY c.id",
            (collection_id,),
        ).fetchone()
        return _row_to_collection(row) if row else None

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        conn = self._get_connection()
        try:
            return self._fetch_collection(conn, collection_id)
        finally:
            conn.close()

    def list_collections(self) -> List[Collection]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(_COLLECTION_SELECT + " GROUP BY c.id ORDER BY c.name ASC")
            return [_row_to_collection(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def update_collection(
        self,
        collection_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Collection:
        if name is not None:
            _require_text(name, "name")

        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM collections WHERE id = ?", (collection_id,)).fetchone() is None:
                raise NotFoundError(f"Collection not found: {collection_id}")
            if name is not None:
                clash = conn.execute(
                    "SELECT 1 FROM collections WHERE name = ? AND id != ?",
                    (name, collection_id),
                ).fetchone()
                if clash:
                    raise ConflictError(f"Collection '{name}' already exists")

            conn.execute(
                """
                UPDATE collections
                SET name = COALESCE(?, name),
                    description = COALESCE(?, description),
                    color = COALESCE(?, color),
                    updated_at = ?
                WHERE id = ?
                """,
                (name, description, color, now_ms(), collection_id),
            )
            return self._fetch_collection(conn, collection_id)

    def delete_collection(self, collection_id: str) -> None:
        """Delete a collection; membership rows cascade."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Collection not found: {collection_id}")

    # Document-Collection membership
    def _require_collection(self, conn: sqlite3.Connection, collection_id: str) -> None:
        if conn.execute("SELECT 1 FROM collections WHERE id = ?", (collection_id,)).fetchone() is None:
            raise MissingReferenceError(f"Collection not found: {collection_id}")

    def add_document_to_collection(self, document_path: str, collection_id: str) -> bool:
        """Returns False when the document was already a member."""
        return self.add_documents_to_collection([document_path], collection_id)["added"] == 1

    def remove_document_from_collection(self, document_path: str, collection_id: str) -> bool:
        """Returns False when the document was not a member."""
        return self.remove_documents_from_collection([document_path], collection_id)["removed"] == 1

    def add_documents_to_collection(self, document_paths: Iterable[str], collection_id: str) -> Dict[str, int]:
        """
        Add many documents in one transaction.

        Fails as a whole (nothing applied) if the collection or any of the
        documents does not exist. Existing members are left untouched.
        """
        paths = _unique_paths(document_paths)
        added_at = now_ms()

        with self._transaction() as conn:
            self._require_collection(conn, collection_id)
            missing = [
                p
                for p in paths
                if conn.execute("SELECT 1 FROM documents WHERE path = ?", (p,)).fetchone() is None
            ]
            if missing:
                raise MissingReferenceError(f"Documents not found: {', '.join(missing)}")

            added = 0
            for p in paths:
                added += conn.execute(
                    """
                    INSERT OR IGNORE INTO document_collections (document_path, collection_id, added_at)
                    VALUES (?, ?, ?)
                    """,
                    (p, collection_id, added_at),
                ).rowcount
            return {"added": added, "requested": len(paths)}

    def remove_documents_from_collection(self, document_paths: Iterable[str], collection_id: str) -> Dict[str, int]:
        paths = _unique_paths(document_paths)

        with self._transaction() as conn:
            removed = 0
            for p in paths:
                removed += conn.execute(
                    "DELETE FROM document_collections WHERE document_path = ? AND collection_id = ?",
                    (p, collection_id),
                ).rowcount
            return {"removed": removed, "requested": len(paths)}

    def get_document_collections(self, document_path: str) -> List[Collection]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                _COLLECTION_SELECT
                + """
                WHERE c.id IN (
                    SELECT collection_id FROM document_collections WHERE document_path = ?
                )
                GROUP BY c.id
                ORDER BY c.name ASC
                """,
                (document_path,),
            )
            return [_row_to_collection(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_collection_documents(
        self, collection_id: str, limit: int = 100, offset: int = 0
    ) -> List[DocumentSummary]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"""
                SELECT {_SUMMARY_COLUMNS}
                FROM documents d
                JOIN document_collections dc ON d.path = dc.document_path
                WHERE dc.collection_id = ?
                ORDER BY d.modified_at DESC, d.path ASC
                LIMIT ? OFFSET ?
                """,
                (collection_id, limit, offset),
            )
            return [_row_to_summary(row) for row in cursor.fetchall()]
        finally:
            conn.close()
