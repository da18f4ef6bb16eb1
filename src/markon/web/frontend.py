"""HTML pages for the Markon web UI."""

from __future__ import annotations

import html
import json
import os
from functools import lru_cache
from http import HTTPStatus
from importlib.resources import files
from pathlib import Path
from string import Template
from typing import Any, Dict
from urllib.parse import quote

from markon.render import RenderedDocument

DEFAULT_MEDIA_TYPE = "application/octet-stream"

MIME_TYPES = {
    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".bmp": "image/bmp",
    # audio
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".m4a": "audio/mp4",
    # video
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    # documents
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".txt": "text/plain; charset=utf-8",
    ".csv": "text/csv; charset=utf-8",
    ".html": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "text/javascript; charset=utf-8",
    ".json": "application/json",
    # archives
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".7z": "application/x-7z-compressed",
    ".rar": "application/vnd.rar",
}


def guess_media_type(path: Path) -> str:
    return MIME_TYPES.get(path.suffix.lower(), DEFAULT_MEDIA_TYPE)


@lru_cache(maxsize=None)
def _load_template(name: str) -> Template:
    template = files("markon.web").joinpath("templates", name)
    return Template(template.read_text(encoding="utf-8"))


def render_page(
    document: RenderedDocument,
    *,
    title: str,
    file_path: str,
    theme: str,
    features: Dict[str, Any],
) -> str:
    toc = "\n".join(
        f'      <li class="toc-level-{item.level}"><a href="#{html.escape(item.id)}">{html.escape(item.text)}</a></li>'
        for item in document.toc
    )
    config = dict(features, filePath=file_path, theme=theme, hasMermaid=document.has_mermaid)
    # "</" inside the JSON would end the script element early.
    config_json = json.dumps(config).replace("</", "<\\/")
    return _load_template("page.html").substitute(
        title=html.escape(title),
        theme=theme,
        toc=toc,
        file_path=html.escape(file_path),
        content=document.html,
        config=config_json,
    )


def render_listing(directory: Path, relative: str, *, theme: str) -> str:
    """Directory listing: sub-directories first, hidden entries omitted."""
    entries = []
    if relative:
        parent = relative.rsplit("/", 1)[0] if "/" in relative else ""
        entries.append(f'    <li class="dir"><a href="/{quote(parent)}">..</a></li>')

    children = [entry for entry in os.scandir(directory) if not entry.name.startswith(".")]
    children.sort(key=lambda entry: (not entry.is_dir(), entry.name.lower()))
    for entry in children:
        href = "/" + quote(f"{relative}/{entry.name}" if relative else entry.name)
        kind = "dir" if entry.is_dir() else "file"
        label = html.escape(entry.name + ("/" if kind == "dir" else ""))
        entries.append(f'    <li class="{kind}"><a href="{href}">{label}</a></li>')

    return _load_template("listing.html").substitute(
        title=html.escape("/" + relative),
        theme=theme,
        entries="\n".join(entries),
    )


def render_error(status: int, message: str) -> str:
    return _load_template("error.html").substitute(
        status=status,
        reason=HTTPStatus(status).phrase,
        message=html.escape(message),
    )
