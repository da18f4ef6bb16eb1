"""SQLite FTS5 full-text index."""

from __future__ import annotations

import logging
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

from markon.errors import BackendError, QueryParseError
from markon.models import DocumentFields
from markon.utils.text import segment_cjk

LOGGER = logging.getLogger(__name__)

# Private-use code points stand in for highlight tags until the snippet is escaped.
HIGHLIGHT_OPEN = "\ue000"
HIGHLIGHT_CLOSE = "\ue001"
SNIPPET_TOKENS = 32

_QUERY_ERROR_HINTS = ("fts5", "syntax error", "no such column", "unterminated", "malformed")


class SQLiteSearchIndex:
    """Full-text index over document fields.

    One writer connection serialised by a lock; every search opens its own
    read-only connection. The database runs in WAL mode, so a reader sees the
    index as of the last commit and never a half-applied write.

    Without ``db_path`` the database lives in a private temporary directory
    that is removed on :meth:`close`; the index is rebuilt on every start.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._tmpdir: tempfile.TemporaryDirectory | None = None
        if db_path is None:
            self._tmpdir = tempfile.TemporaryDirectory(prefix="markon-index-")
            db_path = Path(self._tmpdir.name) / "search.sqlite"
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        if self._tmpdir is not None:
            self._tmpdir.cleanup()
            self._tmpdir = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Exclusive write section; commits atomically or rolls back."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise BackendError(f"Index commit failed: {exc}") from exc
            except Exception:
                self._conn.rollback()
                raise

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(f"{self.db_path.as_uri()}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    file_name TEXT NOT NULL,
                    title TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS search_index USING fts5(
                    file_name,
                    title,
                    content,
                    tokenize = 'unicode61 remove_diacritics 2'
                )
                """
            )

    def delete_path(self, conn: sqlite3.Connection, path: str) -> bool:
        """Delete the entry stored under ``path``. Call inside :meth:`transaction`."""
        existing = conn.execute("SELECT id FROM documents WHERE path = ?", (path,)).fetchone()
        if existing is None:
            return False
        conn.execute("DELETE FROM search_index WHERE rowid = ?", (existing["id"],))
        conn.execute("DELETE FROM documents WHERE id = ?", (existing["id"],))
        return True

    def delete_tree(self, conn: sqlite3.Connection, path: str) -> int:
        """Delete the entry for ``path`` and every entry below it as a directory.

        Call inside :meth:`transaction`. Returns the number of entries removed.
        """
        if not path:
            count = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            self.clear(conn)
            return count
        prefix = path + "/"
        ids = [
            (row["id"],)
            for row in conn.execute(
                "SELECT id FROM documents WHERE path = ? OR substr(path, 1, ?) = ?",
                (path, len(prefix), prefix),
            )
        ]
        conn.executemany("DELETE FROM search_index WHERE rowid = ?", ids)
        conn.executemany("DELETE FROM documents WHERE id = ?", ids)
        return len(ids)

    def insert_documents(self, conn: sqlite3.Connection, documents: Sequence[DocumentFields]) -> None:
        """Add a batch of entries. Call inside :meth:`transaction`."""
        for document in documents:
            doc_id = conn.execute(
                "INSERT INTO documents(path, file_name, title) VALUES (?, ?, ?)",
                (document.path, document.file_name, document.title),
            ).lastrowid
            conn.execute(
                "INSERT INTO search_index(rowid, file_name, title, content) VALUES (?, ?, ?, ?)",
                (
                    doc_id,
                    segment_cjk(document.file_name),
                    segment_cjk(document.title),
                    segment_cjk(document.content),
                ),
            )

    def clear(self, conn: sqlite3.Connection) -> None:
        conn.execute("DELETE FROM search_index")
        conn.execute("DELETE FROM documents")

    def replace_document(self, document: DocumentFields) -> None:
        """Delete-then-insert ``document`` in one commit."""
        with self.transaction() as conn:
            self.delete_path(conn, document.path)
            self.insert_documents(conn, [document])

    def remove_tree(self, path: str) -> int:
        with self.transaction() as conn:
            return self.delete_tree(conn, path)

    def replace_tree(self, path: str, documents: Sequence[DocumentFields]) -> None:
        """Swap everything stored under directory ``path`` for ``documents`` in one commit."""
        with self.transaction() as conn:
            self.delete_tree(conn, path)
            self.insert_documents(conn, documents)

    def rebuild(self, documents: Sequence[DocumentFields]) -> None:
        """Replace the whole index with ``documents`` in one commit."""
        with self.transaction() as conn:
            self.clear(conn)
            self.insert_documents(conn, documents)

    def search(self, match: str, *, limit: int = 20) -> List[dict]:
        """Run an FTS5 ``MATCH`` expression, best matches first."""
        try:
            with self.reader() as conn:
                rows = conn.execute(
                    """
                    SELECT
                        d.path AS path,
                        d.file_name AS file_name,
                        d.title AS title,
                        snippet(search_index, 2, ?, ?, '...', ?) AS snippet,
                        bm25(search_index) AS score
                    FROM search_index
                    JOIN documents d ON d.id = search_index.rowid
                    WHERE search_index MATCH ?
                    ORDER BY score, search_index.rowid
                    LIMIT ?
                    """,
                    (HIGHLIGHT_OPEN, HIGHLIGHT_CLOSE, SNIPPET_TOKENS, match, limit),
                ).fetchall()
        except sqlite3.OperationalError as exc:
            message = str(exc).lower()
            if any(hint in message for hint in _QUERY_ERROR_HINTS):
                raise QueryParseError(str(exc)) from exc
            raise BackendError(f"Index search failed: {exc}") from exc

        return [
            {
                "path": row["path"],
                "file_name": row["file_name"],
                "title": row["title"],
                "snippet": row["snippet"] or "",
                # bm25() is lower-is-better; flip it so larger means more relevant.
                "score": -float(row["score"]),
            }
            for row in rows
        ]

    def paths(self) -> List[str]:
        with self.reader() as conn:
            return [row["path"] for row in conn.execute("SELECT path FROM documents ORDER BY path")]

    def count(self) -> int:
        with self.reader() as conn:
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
