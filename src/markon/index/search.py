"""Full-text search interface."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import List

from markon.index.storage import HIGHLIGHT_CLOSE, HIGHLIGHT_OPEN, SQLiteSearchIndex
from markon.utils.text import CJK_CHAR, desegment_cjk, normalize_whitespace, segment_cjk

MARK_OPEN = "<mark>"
MARK_CLOSE = "</mark>"

_QUERY_PARTS = re.compile(r'"[^"]*"|[^"]+|"')
_BAREWORD = re.compile(r"^\^?\w+\*?$")
_COLUMN_FILTER = re.compile(r"^(file_name|title|content):(.+)$")
_OPERATORS = {"AND", "OR", "NOT"}


@dataclass(slots=True)
class SearchResult:
    file_path: str
    file_name: str
    title: str
    snippet: str
    score: float

    def to_dict(self) -> dict[str, str]:
        return {
            "filePath": self.file_path,
            "fileName": self.file_name,
            "title": self.title,
            "snippet": self.snippet,
        }


def _phrase(text: str) -> str:
    return '"' + normalize_whitespace(segment_cjk(text.replace('"', ""))) + '"'


def _term(token: str) -> str:
    column = _COLUMN_FILTER.match(token)
    if column:
        return f"{column.group(1)}:{_term(column.group(2))}"
    if CJK_CHAR.search(token) or not _BAREWORD.match(token):
        return _phrase(token)
    return token


def build_match_query(query: str) -> str:
    """Translate a user query into an FTS5 ``MATCH`` expression.

    Quoted phrases, ``AND``/``OR``/``NOT``, parentheses, ``title:`` style
    column filters, ``^`` and prefix ``*`` pass through. Words with CJK
    characters become phrases of single characters, matching how content is
    segmented at index time. Every other word that is not a plain FTS5
    bareword (``getting-started``, ``C++``, ``note:``) is quoted. Unbalanced
    quotes are left alone so the engine reports them as a parse error.
    """
    parts: List[str] = []
    for chunk in _QUERY_PARTS.findall(query):
        if chunk == '"':
            parts.append(chunk)
        elif chunk.startswith('"') and chunk.endswith('"') and len(chunk) > 1:
            parts.append(_phrase(chunk[1:-1]))
        else:
            for token in chunk.split():
                core = token.strip("()")
                if not core:
                    parts.append(token)
                    continue
                opening = token[: len(token) - len(token.lstrip("("))]
                closing = token[len(token.rstrip(")")) :]
                if core in _OPERATORS:
                    parts.append(f"{opening}{core}{closing}")
                else:
                    parts.append(f"{opening}{_term(core)}{closing}")
    return " ".join(parts)


def render_snippet(raw: str) -> str:
    """Escape snippet text and turn the engine's markers into ``<mark>`` tags."""
    text = html.escape(normalize_whitespace(raw), quote=False)
    text = text.replace(HIGHLIGHT_OPEN, MARK_OPEN).replace(HIGHLIGHT_CLOSE, MARK_CLOSE)
    return desegment_cjk(text)


class Searcher:
    """High-level API to query the full-text index."""

    def __init__(self, store: SQLiteSearchIndex) -> None:
        self.store = store

    def search(self, query: str, *, limit: int = 20) -> List[SearchResult]:
        query = query.strip()
        if not query or limit <= 0:
            return []
        rows = self.store.search(build_match_query(query), limit=limit)
        return [
            SearchResult(
                file_path=row["path"],
                file_name=row["file_name"],
                title=row["title"],
                snippet=render_snippet(row["snippet"]),
                score=row["score"],
            )
            for row in rows
        ]
