"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

THEMES = ("light", "dark", "auto")
DEFAULT_PORT = 6419
SEARCH_LIMIT = 20


def _get_default_db_path() -> Path:
    """Annotations live in the user's home so they survive across projects."""
    return Path.home() / ".markon" / "annotation.sqlite"


@dataclass(slots=True)
class AppConfig:
    root: Path | None = None
    file: Path | None = None
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    theme: str = "auto"
    enable_search: bool = True
    shared_annotation: bool = False
    enable_viewed: bool = False
    live_reload: bool = True
    db_path: Path | None = None
    debounce_seconds: float = 0.5
    search_limit: int = SEARCH_LIMIT

    def __post_init__(self) -> None:
        if self.theme not in THEMES:
            raise ValueError(f"Invalid theme {self.theme!r}. Use: {', '.join(THEMES)}")
        self.root = Path(self.root if self.root is not None else Path.cwd()).resolve()
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        single_file = self.resolve_file()
        if single_file is not None and not single_file.is_relative_to(self.root):
            raise ValueError(f"File {self.file} is outside the served directory {self.root}")

    @property
    def collaboration_enabled(self) -> bool:
        return self.shared_annotation or self.enable_viewed

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def resolve_file(self) -> Path | None:
        """Absolute path of the single previewed document, if any."""
        if self.file is None:
            return None
        candidate = Path(self.file)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return candidate.resolve()
