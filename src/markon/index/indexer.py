"""Search index manager: keeps the full-text index in step with the disk."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from markon.index.search import Searcher, SearchResult
from markon.index.storage import SQLiteSearchIndex
from markon.models import DocumentFields
from markon.utils.files import is_hidden, is_indexable, iter_markdown_paths, relative_key
from markon.utils.text import extract_title

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "indexed":
            self.indexed += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class SearchIndexManager:
    """Owns the full-text index for one root directory.

    The manager starts uninitialised and becomes ready after the first
    :meth:`index_all`. Every mutation is committed before the call returns;
    concurrent searches see either the previous or the new commit.
    """

    def __init__(self, root: Path, store: SQLiteSearchIndex | None = None) -> None:
        self.root = Path(os.path.realpath(root))
        self.store = store if store is not None else SQLiteSearchIndex()
        self.searcher = Searcher(self.store)
        self._ready = threading.Event()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def close(self) -> None:
        self.store.close()

    def _absolute(self, path: Path | str) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root / path

    def derive_fields(self, path: Path) -> DocumentFields:
        """Read ``path`` and derive its searchable fields."""
        content = path.read_text(encoding="utf-8")
        return DocumentFields(
            path=relative_key(self.root, path),
            file_name=path.name,
            title=extract_title(content, path),
            content=content,
        )

    def _collect(self, directory: Path, stats: IndexStats) -> List[DocumentFields]:
        documents: List[DocumentFields] = []
        for path in iter_markdown_paths([directory]):
            try:
                documents.append(self.derive_fields(path))
            except (OSError, UnicodeDecodeError, ValueError) as exc:
                LOGGER.warning("Skipping %s: %s", path, exc)
                stats.increment("failed", path)
                continue
            stats.increment("indexed", path)
        return documents

    def index_all(self, root: Path | None = None) -> IndexStats:
        """Rebuild the index from every Markdown file under ``root``.

        Unreadable files are logged and skipped; the batch is committed once.
        """
        if root is not None:
            self.root = Path(os.path.realpath(root))
        LOGGER.info("Indexing Markdown files under %s", self.root)

        stats = IndexStats()
        documents = self._collect(self.root, stats)
        self.store.rebuild(documents)
        self._ready.set()
        LOGGER.info("Indexing complete: %d indexed, %d failed", stats.indexed, stats.failed)
        return stats

    def upsert(self, path: Path | str) -> bool:
        """Re-index one file. Returns ``False`` when nothing was indexed."""
        absolute = self._absolute(path)
        if not is_indexable(self.root, absolute):
            return False
        try:
            document = self.derive_fields(absolute)
        except FileNotFoundError:
            LOGGER.debug("File vanished before indexing: %s", absolute)
            return False
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            LOGGER.warning("Skipping %s: %s", absolute, exc)
            return False

        self.store.replace_document(document)
        LOGGER.debug("Indexed: %s", document.path)
        return True

    def index_tree(self, directory: Path | str) -> IndexStats:
        """Re-index everything below ``directory`` in one commit.

        Entries under the directory whose files are gone are dropped.
        """
        absolute = self._absolute(directory)
        stats = IndexStats()
        if is_hidden(self.root, absolute):
            return stats
        key = relative_key(self.root, absolute)
        self.store.replace_tree(key, self._collect(absolute, stats))
        LOGGER.debug("Re-indexed %s: %d files", key or ".", stats.indexed)
        return stats

    def remove(self, path: Path | str) -> bool:
        """Drop ``path`` from the index, along with everything below it if it was a directory."""
        key = relative_key(self.root, self._absolute(path))
        removed = self.store.remove_tree(key)
        if removed:
            LOGGER.debug("Removed %d entries for %s", removed, key)
        return removed > 0

    def search(self, query: str, limit: int = 20) -> List[SearchResult]:
        return self.searcher.search(query, limit=limit)
