"""SQLite persistence for shared annotations and viewed state."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List

from markon.errors import StorageError
from markon.models import Annotation, ViewedState

LOGGER = logging.getLogger(__name__)


class AnnotationStore:
    """Durable annotation/viewed-state tables behind a single lock.

    Every read and write is a short critical section on one connection;
    last writer wins.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
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

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StorageError(str(exc)) from exc
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS annotations (
                    id TEXT PRIMARY KEY,
                    file_path TEXT NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_annotations_file_path
                    ON annotations(file_path)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS viewed_state (
                    file_path TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def add_annotation(self, annotation: Annotation) -> None:
        """Insert or replace the annotation stored under ``annotation.id``."""
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO annotations(id, file_path, data) VALUES (?, ?, ?)",
                (annotation.id, annotation.file_path, json.dumps(annotation.payload)),
            )

    def delete_annotation(self, annotation_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM annotations WHERE id = ?", (annotation_id,))
            return cursor.rowcount > 0

    def clear_annotations(self, file_path: str) -> int:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM annotations WHERE file_path = ?", (file_path,))
            return cursor.rowcount

    def get_annotations(self, file_path: str) -> List[Annotation]:
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT id, file_path, data FROM annotations WHERE file_path = ? ORDER BY rowid",
                (file_path,),
            ).fetchall()
        return [Annotation(id=row["id"], file_path=row["file_path"], payload=json.loads(row["data"])) for row in rows]

    def save_viewed_state(self, file_path: str, state: Dict[str, Any]) -> ViewedState:
        """Overwrite the viewed state of ``file_path`` wholesale."""
        updated_at = datetime.now(timezone.utc).isoformat()
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO viewed_state(file_path, state, updated_at) VALUES (?, ?, ?)",
                (file_path, json.dumps(state), updated_at),
            )
        return ViewedState(file_path=file_path, state=state, updated_at=updated_at)

    def get_viewed_state(self, file_path: str) -> ViewedState:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT state, updated_at FROM viewed_state WHERE file_path = ?",
                (file_path,),
            ).fetchone()
        if row is None:
            return ViewedState(file_path=file_path)
        return ViewedState(file_path=file_path, state=json.loads(row["state"]), updated_at=row["updated_at"])
