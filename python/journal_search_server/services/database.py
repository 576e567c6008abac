"""Database service for journal entries and their embeddings.

One libsql database holds the `journal_entries` table. Each row carries the
entry text plus an optional embedding (F32_BLOB) and the time it was last
computed. An entry "has an embedding" when both of those columns are set.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import libsql
import numpy as np
from journal_search_server.errors import EmbeddingDimensionError
from journal_search_server.models.db_models import JOURNAL_SCHEMA

logger = logging.getLogger(__name__)

ENTRY_COLUMNS = """id, user_id, title, content, tags, searchable_text,
    content_embedding, embedding_model, last_embedding_update,
    created_at, updated_at"""

HAS_EMBEDDING = "content_embedding IS NOT NULL AND last_embedding_update IS NOT NULL"
MISSING_EMBEDDING = "(content_embedding IS NULL OR last_embedding_update IS NULL)"


def _row_to_dict(cursor, row):
    """Convert a database row tuple to a dict using cursor description."""
    if row is None:
        return None
    return {desc[0]: value for desc, value in zip(cursor.description, row)}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_entry(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Decode JSON tags and the embedding blob of an entry row."""
    if data is None:
        return None
    data["tags"] = json.loads(data["tags"]) if data.get("tags") else []
    embedding_bytes = data.pop("content_embedding", None)
    data["embedding"] = (np.frombuffer(embedding_bytes, dtype=np.float32)
                         if embedding_bytes else None)
    return data


class Database:
    """Database connection and journal entry operations."""

    def __init__(self, db_path: Path, embedding_dim: int = 1536):
        """Open the journal database and create the schema if needed.

        Args:
            db_path: Path to the libsql database file
            embedding_dim: Dimension of stored embedding vectors
        """
        self.db_path = db_path
        self.embedding_dim = embedding_dim

        self.conn = libsql.connect(str(db_path))
        self._initialize_schema()

        logger.info(f"Initialized journal db={db_path.name} (dim={embedding_dim})")

    def _initialize_schema(self):
        """Create the journal_entries table and its indexes."""
        cursor = self.conn.cursor()
        try:
            cursor.executescript(
                JOURNAL_SCHEMA.format(embedding_dim=self.embedding_dim))
            self.conn.commit()
            logger.debug("Journal schema initialized")
        except Exception as e:
            logger.error(f"Error initializing journal schema: {e}")
            raise

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
        logger.info("Closed database connection")

    def _fetch_entries(self, query: str, params) -> List[Dict[str, Any]]:
        cursor = self.conn.cursor()
        cursor.execute(query, params)
        return [
            _decode_entry(_row_to_dict(cursor, row))
            for row in cursor.fetchall()
        ]

    # -------------------------------------------------------------------------
    # Entry operations
    # -------------------------------------------------------------------------

    def create_entry(self,
                     user_id: str,
                     content: str,
                     title: Optional[str] = None,
                     tags: Optional[List[str]] = None,
                     created_at: Optional[str] = None) -> Dict[str, Any]:
        """Insert a new journal entry without an embedding."""
        entry_id = uuid.uuid4().hex
        timestamp = created_at or _now()
        cursor = self.conn.cursor()
        cursor.execute(
            """INSERT INTO journal_entries
               (id, user_id, title, content, tags, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (entry_id, user_id, title, content, json.dumps(tags or []),
             timestamp, timestamp))
        self.conn.commit()
        return self.get_entry(entry_id)

    def get_entry(self,
                  entry_id: str,
                  user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get one entry; when user_id is given, only if the user owns it."""
        query = f"SELECT {ENTRY_COLUMNS} FROM journal_entries WHERE id = ?"
        params = [entry_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        rows = self._fetch_entries(query, tuple(params))
        return rows[0] if rows else None

    def list_entries(self,
                     user_id: str,
                     limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """List a user's entries, most recent first."""
        query = f"""SELECT {ENTRY_COLUMNS} FROM journal_entries
                    WHERE user_id = ?
                    ORDER BY created_at DESC, rowid DESC"""
        params = [user_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return self._fetch_entries(query, tuple(params))

    def update_entry(self,
                     entry_id: str,
                     user_id: str,
                     content: Optional[str] = None,
                     title: Optional[str] = None,
                     tags: Optional[List[str]] = None
                     ) -> Optional[Dict[str, Any]]:
        """Apply a partial update to a user's entry.

        Changing the text (content, title or tags) clears the stored embedding
        so the entry is picked up again as missing one.
        """
        existing = self.get_entry(entry_id, user_id)
        if existing is None:
            return None

        assignments = ["updated_at = ?"]
        params: List[Any] = [_now()]
        text_changed = False
        if content is not None and content != existing["content"]:
            assignments.append("content = ?")
            params.append(content)
            text_changed = True
        if title is not None and title != existing["title"]:
            assignments.append("title = ?")
            params.append(title)
            text_changed = True
        if tags is not None and tags != existing["tags"]:
            assignments.append("tags = ?")
            params.append(json.dumps(tags))
            text_changed = True
        if text_changed:
            assignments.extend([
                "content_embedding = NULL", "embedding_model = NULL",
                "last_embedding_update = NULL", "searchable_text = NULL"
            ])

        cursor = self.conn.cursor()
        cursor.execute(
            f"UPDATE journal_entries SET {', '.join(assignments)} "
            "WHERE id = ? AND user_id = ?", tuple(params + [entry_id, user_id]))
        self.conn.commit()
        return self.get_entry(entry_id, user_id)

    def delete_entry(self, entry_id: str, user_id: str) -> bool:
        """Delete a user's entry. Returns False if it did not exist."""
        if self.get_entry(entry_id, user_id) is None:
            return False
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM journal_entries WHERE id = ? AND user_id = ?",
            (entry_id, user_id))
        self.conn.commit()
        return True

    # -------------------------------------------------------------------------
    # Embedding operations
    # -------------------------------------------------------------------------

    def get_entries_missing_embeddings(
            self,
            user_id: str,
            limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Get a user's entries lacking an embedding, oldest first."""
        query = f"""SELECT {ENTRY_COLUMNS} FROM journal_entries
                    WHERE user_id = ? AND {MISSING_EMBEDDING}
                    ORDER BY created_at ASC, rowid ASC"""
        params = [user_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return self._fetch_entries(query, tuple(params))

    def get_entries_with_embeddings(self,
                                    user_id: str) -> List[Dict[str, Any]]:
        """Get a user's entries holding an embedding, most recent first."""
        return self._fetch_entries(
            f"""SELECT {ENTRY_COLUMNS} FROM journal_entries
                WHERE user_id = ? AND {HAS_EMBEDDING}
                ORDER BY created_at DESC, rowid DESC""", (user_id, ))

    def store_embedding(self,
                        entry_id: str,
                        embedding: np.ndarray,
                        model_name: str,
                        searchable_text: str,
                        expected_updated_at: Optional[str] = None) -> bool:
        """Persist an entry's embedding vector and its update timestamp.

        Args:
            entry_id: Entry to update
            embedding: Vector of the configured dimension
            model_name: Name of embedding model used
            searchable_text: Text the embedding was computed from
            expected_updated_at: If given, only write when the entry still
                carries this updated_at, i.e. it was not edited meanwhile

        Returns:
            True if the row was written, False if the entry is gone or changed
        """
        vector = np.asarray(embedding, dtype=np.float32)
        if vector.ndim != 1 or vector.shape[0] != self.embedding_dim:
            raise EmbeddingDimensionError(self.embedding_dim, int(vector.size))

        query = """UPDATE journal_entries
                   SET content_embedding = ?, embedding_model = ?,
                       searchable_text = ?, last_embedding_update = ?
                   WHERE id = ?"""
        params = [vector.tobytes(), model_name, searchable_text, _now(), entry_id]
        if expected_updated_at is not None:
            query += " AND updated_at = ?"
            params.append(expected_updated_at)

        cursor = self.conn.cursor()
        cursor.execute(query + " RETURNING id", tuple(params))
        written = cursor.fetchone() is not None
        self.conn.commit()
        return written
    def embedding_status(self, user_id: str) -> Dict[str, int]:
        """Count a user's entries with and without embeddings."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"""SELECT COUNT(*),
                       COALESCE(SUM(CASE WHEN {HAS_EMBEDDING} THEN 1 ELSE 0 END), 0)
                FROM journal_entries WHERE user_id = ?""", (user_id, ))
        total, with_embeddings = cursor.fetchone()
        return {
            "total_entries": total,
            "with_embeddings": with_embeddings,
            "needs_processing": total - with_embeddings,
        }
