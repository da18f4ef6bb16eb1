"""Text helpers: title extraction and multi-byte segmentation."""

from __future__ import annotations

import re
from pathlib import Path

# CJK ideographs, kana and hangul are written without spaces between words.
_CJK = (
    "぀-ヿ"  # hiragana, katakana
    "㐀-䶿"  # CJK extension A
    "一-鿿"  # CJK unified ideographs
    "가-힯"  # hangul syllables
    "豈-﫿"  # CJK compatibility ideographs
)
CJK_CHAR = re.compile(f"[{_CJK}]")
CJK_RUN = re.compile(f"[{_CJK}]+")
_CJK_GAP = re.compile(rf"([{_CJK}](?:</?\w+>)*) ((?:</?\w+>)*[{_CJK}])")
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(.*?)(?:\s+#+)?\s*$")


def extract_title(text: str, path: Path) -> str:
    """First Markdown heading of ``text``, else the file stem."""
    for line in text.splitlines():
        match = _HEADING.match(line)
        if match and match.group(1):
            return match.group(1)
    return path.stem


def segment_cjk(text: str) -> str:
    """Separate every CJK character by spaces so the tokenizer sees unigrams.

    Adjacent characters stay adjacent token positions, which lets phrase
    queries match multi-character words.
    """
    return CJK_RUN.sub(lambda m: f" {' '.join(m.group(0))} ", text)


def desegment_cjk(text: str) -> str:
    """Undo :func:`segment_cjk` spacing in display text, highlight tags included."""
    previous = None
    while previous != text:
        previous = text
        text = _CJK_GAP.sub(r"\1\2", text)
    return text


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces."""
    return " ".join(text.split())
