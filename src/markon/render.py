"""Markdown to HTML rendering.

Rendering is a pure function of the document text. Post-processing passes
work on the generated HTML; fenced code and inline code are opaque to the
emoji pass.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Callable, List

import markdown

from markon.errors import RenderError

_ALERT = re.compile(
    r"<blockquote>\s*<p>\[!(NOTE|TIP|IMPORTANT|WARNING|CAUTION)\]\s*(.*?)</p>(.*?)</blockquote>",
    re.DOTALL,
)
_MERMAID = re.compile(r'<pre><code class="language-mermaid">(.*?)</code></pre>', re.DOTALL)
_CODE = re.compile(r"(<pre[^>]*>.*?</pre>|<code[^>]*>.*?</code>)", re.DOTALL)
_EMOJI = re.compile(r":([a-zA-Z0-9_+-]+):")
_TAG = re.compile(r"<[^>]+>")
_NON_WORD = re.compile(r"[^\w\s-]")
_HYPHENS = re.compile(r"-+")

EMOJI = {
    "+1": "👍",
    "-1": "👎",
    "bug": "🐛",
    "bulb": "💡",
    "eyes": "👀",
    "fire": "🔥",
    "heart": "❤️",
    "memo": "📝",
    "rocket": "🚀",
    "smile": "😄",
    "sparkles": "✨",
    "star": "⭐",
    "tada": "🎉",
    "thumbsup": "👍",
    "warning": "⚠️",
    "white_check_mark": "✅",
    "x": "❌",
}

_EXTENSIONS = ["extra", "sane_lists", "toc"]


@dataclass(slots=True)
class TocItem:
    level: int
    id: str
    text: str


@dataclass(slots=True)
class RenderedDocument:
    html: str
    toc: List[TocItem] = field(default_factory=list)
    has_mermaid: bool = False


def slugify(value: str, separator: str = "-") -> str:
    """GitHub-style heading anchor."""
    text = html.unescape(_TAG.sub("", value)).strip().lower()
    text = _NON_WORD.sub("", text)
    text = re.sub(r"\s+", separator, text)
    return _HYPHENS.sub("-", text).strip("-")


def outside_code(text: str, transform: Callable[[str], str]) -> str:
    """Apply ``transform`` to every part of ``text`` that is not code."""
    parts = _CODE.split(text)
    return "".join(part if index % 2 else transform(part) for index, part in enumerate(parts))


def replace_emoji(text: str) -> str:
    return _EMOJI.sub(lambda m: EMOJI.get(m.group(1), m.group(0)), text)


def convert_alerts(text: str) -> str:
    def _replace(match: re.Match) -> str:
        kind = match.group(1).lower()
        first = match.group(2).strip()
        body = f"<p>{first}</p>" if first else ""
        return (
            f'<div class="markdown-alert markdown-alert-{kind}">'
            f'<p class="markdown-alert-title">{kind.capitalize()}</p>'
            f"{body}{match.group(3)}</div>"
        )

    return _ALERT.sub(_replace, text)


def _flatten_toc(tokens: list) -> List[TocItem]:
    items: List[TocItem] = []
    for token in tokens:
        items.append(TocItem(level=token["level"], id=token["id"], text=html.unescape(token["name"])))
        items.extend(_flatten_toc(token.get("children", [])))
    return items


def render(text: str) -> RenderedDocument:
    """Render Markdown ``text``; raises :class:`RenderError` on failure."""
    md = markdown.Markdown(
        extensions=_EXTENSIONS,
        extension_configs={"toc": {"slugify": slugify}},
    )
    try:
        body = md.convert(text)
    except Exception as exc:
        raise RenderError(f"Failed to render document: {exc}") from exc

    has_mermaid = bool(_MERMAID.search(body))
    body = _MERMAID.sub(lambda m: f'<pre class="mermaid">{m.group(1)}</pre>', body)
    body = convert_alerts(body)
    body = outside_code(body, replace_emoji)
    return RenderedDocument(html=body, toc=_flatten_toc(md.toc_tokens), has_mermaid=has_mermaid)
