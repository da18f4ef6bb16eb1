"""Utility helpers for working with files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator

MARKDOWN_EXTENSIONS = (".md", ".markdown")


def is_markdown(path: Path) -> bool:
    return path.suffix.lower() in MARKDOWN_EXTENSIONS


def _is_hidden_name(name: str) -> bool:
    return name.startswith(".")


def is_hidden(root: Path, path: Path) -> bool:
    """True when any component of ``path`` below ``root`` starts with a dot.

    Paths outside ``root`` count as hidden.
    """
    try:
        key = relative_key(root, path)
    except ValueError:
        return True
    return any(_is_hidden_name(part) for part in Path(key).parts)


def is_indexable(root: Path, path: Path) -> bool:
    """Whether ``path`` belongs in the search index for ``root``."""
    return is_markdown(path) and not is_hidden(root, path)


def iter_markdown_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield Markdown paths from input paths, descending into directories.

    Hidden files and directories (``.git`` and friends) are skipped.
    """
    for item in inputs:
        if item.is_dir():
            for dirpath, dirnames, filenames in os.walk(item):
                dirnames[:] = sorted(d for d in dirnames if not _is_hidden_name(d))
                for name in sorted(filenames):
                    child = Path(dirpath) / name
                    if is_markdown(child) and not _is_hidden_name(name):
                        yield child
        elif item.is_file() and is_markdown(item):
            yield item


def relative_key(root: Path, path: Path) -> str:
    """Normalise ``path`` to the root-relative POSIX key used by the index.

    Works for files that no longer exist: the path is made absolute without
    touching the filesystem, falling back to resolving its parent directory
    when the root itself was reached through a symlink.
    """
    absolute = Path(os.path.abspath(path))
    try:
        return absolute.relative_to(root).as_posix()
    except ValueError:
        parent = Path(os.path.realpath(absolute.parent))
        return (parent / absolute.name).relative_to(root).as_posix()
