"""Core markon data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict


@dataclass(slots=True)
class DocumentFields:
    """Searchable fields derived from a document on disk."""

    path: str
    file_name: str
    title: str
    content: str


@dataclass(slots=True)
class Annotation:
    """Client-generated annotation; ``payload`` is the full client object."""

    id: str
    file_path: str
    payload: Dict[str, Any]


@dataclass(slots=True)
class ViewedState:
    file_path: str
    state: Dict[str, Any] = field(default_factory=dict)
    updated_at: str | None = None


class WatchEventKind(str, enum.Enum):
    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    kind: WatchEventKind
    path: Path
