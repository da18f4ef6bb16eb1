"""Tests for the full-text search interface."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from markon.index.search import SearchResult, Searcher, build_match_query, render_snippet
from markon.index.storage import HIGHLIGHT_CLOSE, HIGHLIGHT_OPEN


class TestSearchResult:
    """Test SearchResult dataclass."""

    def test_to_dict_uses_wire_names(self) -> None:
        result = SearchResult(
            file_path="docs/a.md",
            file_name="a.md",
            title="A",
            snippet="<mark>a</mark>",
            score=1.5,
        )

        assert result.to_dict() == {
            "filePath": "docs/a.md",
            "fileName": "a.md",
            "title": "A",
            "snippet": "<mark>a</mark>",
        }


class TestBuildMatchQuery:
    """Test translation of user queries to FTS5 syntax."""

    def test_plain_words_pass_through(self) -> None:
        assert build_match_query("getting started") == "getting started"

    def test_operators_pass_through(self) -> None:
        assert build_match_query("alpha OR beta") == "alpha OR beta"

    def test_prefix_query(self) -> None:
        assert build_match_query("tutor*") == "tutor*"

    def test_hyphenated_word_quoted(self) -> None:
        assert build_match_query("getting-started") == '"getting-started"'

    def test_cjk_becomes_phrase(self) -> None:
        assert build_match_query("快速") == '"快 速"'

    def test_quoted_phrase_segmented(self) -> None:
        assert build_match_query('"中文 指南"') == '"中 文 指 南"'

    def test_unbalanced_quote_left_for_engine(self) -> None:
        assert build_match_query('"open') == '" open'

    def test_punctuated_words_quoted(self) -> None:
        assert build_match_query("C++") == '"C++"'
        assert build_match_query("note:") == '"note:"'
        assert build_match_query("a^b") == '"a^b"'

    def test_column_filter_pass_through(self) -> None:
        assert build_match_query("title:notes") == "title:notes"
        assert build_match_query("title:快速") == 'title:"快 速"'
        assert build_match_query("author:bob") == '"author:bob"'

    def test_grouping_kept(self) -> None:
        assert build_match_query("(alpha OR beta) NOT c++") == '(alpha OR beta) NOT "c++"'
        assert build_match_query("( alpha )") == "( alpha )"

    def test_initial_token_marker(self) -> None:
        assert build_match_query("^intro") == "^intro"


class TestRenderSnippet:
    def test_markers_become_mark_tags(self) -> None:
        raw = f"about {HIGHLIGHT_OPEN}rockets{HIGHLIGHT_CLOSE} here"

        assert render_snippet(raw) == "about <mark>rockets</mark> here"

    def test_html_escaped(self) -> None:
        raw = f"<script>{HIGHLIGHT_OPEN}x{HIGHLIGHT_CLOSE}</script>"

        assert render_snippet(raw) == "&lt;script&gt;<mark>x</mark>&lt;/script&gt;"

    def test_cjk_spacing_removed(self) -> None:
        raw = f"这 是 {HIGHLIGHT_OPEN}中{HIGHLIGHT_CLOSE} {HIGHLIGHT_OPEN}文{HIGHLIGHT_CLOSE}"

        assert render_snippet(raw) == "这是<mark>中</mark><mark>文</mark>"


class TestSearcher:
    """Test Searcher class."""

    def test_search_maps_rows(self) -> None:
        store = MagicMock()
        store.search.return_value = [
            {"path": "a.md", "file_name": "a.md", "title": "A", "snippet": "text", "score": 2.0}
        ]

        results = Searcher(store).search("text", limit=5)

        store.search.assert_called_once_with("text", limit=5)
        assert results == [SearchResult("a.md", "a.md", "A", "text", 2.0)]

    @pytest.mark.parametrize("query", ["", "   ", "\n"])
    def test_empty_query_skips_index(self, query: str) -> None:
        store = MagicMock()

        assert Searcher(store).search(query) == []
        store.search.assert_not_called()
