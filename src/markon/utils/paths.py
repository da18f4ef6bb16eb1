"""Sandboxed resolution of untrusted request paths.

Every path served over HTTP goes through :func:`resolve_path`. The candidate is
canonicalised against the real filesystem (symlinks and ``..`` resolved) and
only then checked for containment, so neither ``..`` segments nor symlinks
pointing outside the root can escape it.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import unquote

from markon.errors import ForbiddenError, NotFoundError


def resolve_path(root: Path, requested: str, *, decoded: bool = False) -> Path:
    """Map ``requested`` to an existing absolute path inside ``root``.

    Args:
        root: Directory the request is confined to.
        requested: Request path, percent-encoded unless ``decoded`` is set.
        decoded: Skip URL decoding when the caller already decoded the path.

    Raises:
        NotFoundError: The path does not exist (canonicalisation failed).
        ForbiddenError: The path exists but resolves outside ``root``.
    """
    real_root = Path(os.path.realpath(root))
    text = requested if decoded else unquote(requested)
    if "\0" in text:
        raise NotFoundError(requested)

    # Absolute request paths are still interpreted relative to the root.
    candidate = real_root / text.lstrip("/")
    try:
        resolved = candidate.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise NotFoundError(requested) from exc

    if resolved != real_root and not resolved.is_relative_to(real_root):
        raise ForbiddenError(requested)
    return resolved


class PathResolver:
    """Guard bound to one root directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(os.path.realpath(root))

    def resolve(self, requested: str, *, decoded: bool = False) -> Path:
        return resolve_path(self.root, requested, decoded=decoded)

    def relative(self, path: Path) -> str:
        """Root-relative POSIX form of an already resolved path."""
        if path == self.root:
            return ""
        return path.relative_to(self.root).as_posix()
