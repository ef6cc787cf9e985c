SCHEMA = """
-- Indexed documents, keyed by path relative to the watch root
CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    raw_content TEXT NOT NULL,
    frontmatter TEXT NOT NULL DEFAULT '{}',
    tags TEXT NOT NULL DEFAULT '[]',
    topics TEXT NOT NULL DEFAULT '[]',
    content_type TEXT NOT NULL DEFAULT 'markdown',
    word_count INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    modified_at INTEGER NOT NULL,
    indexed_at INTEGER NOT NULL
);

-- Normalized facets (exact-match filtering, counts)
CREATE TABLE IF NOT EXISTS document_tags (
    document_path TEXT NOT NULL,
    tag TEXT NOT NULL,
    PRIMARY KEY (document_path, tag),
    FOREIGN KEY (document_path) REFERENCES documents(path) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS document_topics (
    document_path TEXT NOT NULL,
    topic TEXT NOT NULL,
    PRIMARY KEY (document_path, topic),
    FOREIGN KEY (document_path) REFERENCES documents(path) ON DELETE CASCADE
);

-- Annotations: offsets index into documents.raw_content
CREATE TABLE IF NOT EXISTS annotations (
    id TEXT PRIMARY KEY,
    document_path TEXT NOT NULL,
    selected_text TEXT NOT NULL,
    note TEXT,
    color TEXT NOT NULL DEFAULT 'yellow',
    start_offset INTEGER NOT NULL,
    end_offset INTEGER NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    CHECK (start_offset >= 0 AND start_offset < end_offset),
    FOREIGN KEY (document_path) REFERENCES documents(path) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    color TEXT NOT NULL DEFAULT '#3b82f6',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

-- Many-to-many membership
CREATE TABLE IF NOT EXISTS document_collections (
    document_path TEXT NOT NULL,
    collection_id TEXT NOT NULL,
    added_at INTEGER NOT NULL,
    PRIMARY KEY (document_path, collection_id),
    FOREIGN KEY (document_path) REFERENCES documents(path) ON DELETE CASCADE,
    FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_documents_modified ON documents(modified_at);
CREATE INDEX IF NOT EXISTS idx_documents_content_type ON documents(content_type);
CREATE INDEX IF NOT EXISTS idx_document_tags_tag ON document_tags(tag);
CREATE INDEX IF NOT EXISTS idx_document_topics_topic ON document_topics(topic);
CREATE INDEX IF NOT EXISTS idx_annotations_document ON annotations(document_path);
CREATE INDEX IF NOT EXISTS idx_doc_collections_document ON document_collections(document_path);
CREATE INDEX IF NOT EXISTS idx_doc_collections_collection ON document_collections(collection_id);
"""

# FTS5 virtual table, one row per document (rowid = documents.id)
FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
    path UNINDEXED,
    title,
    content,
    tags,
    topics,
    tokenize='porter unicode61'
);
"""

# Column order of documents_fts, used for bm25() weights and snippet()
FTS_CONTENT_COLUMN = 2
FTS_BM25_WEIGHTS = (0.0, 10.0, 1.0, 5.0, 2.0)

# Triggers to keep FTS in sync. They run inside the statement that mutates
# the documents row, so the index can never be observed half-applied.
# Note: always DROP before CREATE to ensure the latest definition is applied
# (CREATE TRIGGER IF NOT EXISTS won't update an already-existing trigger)
TRIGGERS = """
DROP TRIGGER IF EXISTS documents_ai;
DROP TRIGGER IF EXISTS documents_ad;
DROP TRIGGER IF EXISTS documents_au;

CREATE TRIGGER documents_ai AFTER INSERT ON documents
BEGIN
  INSERT INTO documents_fts(rowid, path, title, content, tags, topics)
  VALUES (new.id, new.path, new.title, new.content, new.tags, new.topics);
END;

CREATE TRIGGER documents_ad AFTER DELETE ON documents BEGIN
  DELETE FROM documents_fts WHERE rowid = old.id;
END;

-- FTS5 does NOT reliably support INSERT OR REPLACE for existing rowids;
-- the DELETE + INSERT pattern is the safe alternative.
CREATE TRIGGER documents_au AFTER UPDATE ON documents
BEGIN
  DELETE FROM documents_fts WHERE rowid = old.id;

  INSERT INTO documents_fts(rowid, path, title, content, tags, topics)
  VALUES (new.id, new.path, new.title, new.content, new.tags, new.topics);
END;
"""
