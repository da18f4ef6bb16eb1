"""Tests for text utilities."""

from __future__ import annotations

from pathlib import Path

from markon.utils.text import desegment_cjk, extract_title, normalize_whitespace, segment_cjk


class TestExtractTitle:
    """Test extract_title function."""

    def test_first_heading(self) -> None:
        assert extract_title("# Getting Started\nbody", Path("x.md")) == "Getting Started"

    def test_heading_after_text(self) -> None:
        assert extract_title("intro line\n\n## Second level\n# Top", Path("x.md")) == "Second level"

    def test_closing_hashes_stripped(self) -> None:
        assert extract_title("# Title ##", Path("x.md")) == "Title"

    def test_sharp_in_title_kept(self) -> None:
        assert extract_title("# Learning C#", Path("x.md")) == "Learning C#"

    def test_falls_back_to_stem(self) -> None:
        assert extract_title("no heading here", Path("docs/my-notes.md")) == "my-notes"

    def test_hashtag_is_not_heading(self) -> None:
        assert extract_title("#hashtag only", Path("tags.md")) == "tags"


class TestCjkSegmentation:
    """Test CJK segmentation helpers."""

    def test_segment_splits_characters(self) -> None:
        assert segment_cjk("中文").split() == ["中", "文"]

    def test_segment_leaves_latin_alone(self) -> None:
        assert segment_cjk("plain English") == "plain English"

    def test_segment_mixed(self) -> None:
        assert segment_cjk("English中文").split() == ["English", "中", "文"]

    def test_desegment_roundtrip(self) -> None:
        assert desegment_cjk(normalize_whitespace(segment_cjk("这是中文"))) == "这是中文"

    def test_desegment_across_highlight_tags(self) -> None:
        text = "这 是 <mark>中</mark> <mark>文</mark> 文 档"

        assert desegment_cjk(text) == "这是<mark>中</mark><mark>文</mark>文档"

    def test_desegment_keeps_latin_spacing(self) -> None:
        assert desegment_cjk("hello world") == "hello world"


class TestNormalizeWhitespace:
    def test_collapses(self) -> None:
        assert normalize_whitespace("  a \n\n b\tc ") == "a b c"
