"""Database schema definitions."""

# SQL schema for the journal database. The embedding column is sized from
# settings at initialization: JOURNAL_SCHEMA.format(embedding_dim=1536)
JOURNAL_SCHEMA = """
-- Journal entries, one row per entry, owned by a user
CREATE TABLE IF NOT EXISTS journal_entries (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT,
    content TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    searchable_text TEXT,
    -- Note: F32_BLOB(n) is the libsql vector type; NULL until processed
    content_embedding F32_BLOB({embedding_dim}),
    embedding_model TEXT,
    last_embedding_update TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_journal_entries_user_id ON journal_entries(user_id);
CREATE INDEX IF NOT EXISTS idx_journal_entries_created_at ON journal_entries(created_at);
CREATE INDEX IF NOT EXISTS idx_journal_entries_user_embedding ON journal_entries(user_id, last_embedding_update);
"""
