"""Command line interface for Markon."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from markon.config import DEFAULT_PORT, THEMES, AppConfig

console = Console()
app = typer.Typer(help="Markon - preview Markdown files locally with live search and shared annotations")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


@app.command()
def serve(
    file: Optional[Path] = typer.Argument(None, help="Markdown file to render; omit to browse the directory."),
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", help="Server port"),
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    theme: str = typer.Option("auto", "--theme", "-t", help=f"Theme ({', '.join(THEMES)})"),
    shared_annotation: bool = typer.Option(False, "--shared-annotation", help="Share annotations between viewers"),
    enable_viewed: bool = typer.Option(False, "--enable-viewed", help="Enable section viewed checkboxes"),
    no_search: bool = typer.Option(False, "--no-search", help="Disable the full-text search index"),
    no_reload: bool = typer.Option(False, "--no-reload", help="Disable live reload"),
    db: Path = typer.Option(None, "--db", help="SQLite database for shared annotations"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Serve the current directory (or FILE) over HTTP."""
    _setup_logging(verbose)

    root = Path.cwd()
    if file is not None:
        if not file.exists():
            raise typer.BadParameter(f"File '{file}' not found.", param_hint="FILE")
        if not file.resolve().is_relative_to(root.resolve()):
            root = file.resolve().parent

    try:
        config = AppConfig(
            root=root,
            file=file.resolve() if file is not None else None,
            host=host,
            port=port,
            theme=theme,
            enable_search=not no_search,
            shared_annotation=shared_annotation,
            enable_viewed=enable_viewed,
            live_reload=not no_reload,
            db_path=db,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    import uvicorn

    from markon.web.app import create_app

    console.print(f"Serving [bold]{config.root}[/bold] on http://{host}:{port}")
    if config.collaboration_enabled:
        console.print(f"Shared state stored in [bold]{config.resolve_db_path(config.root)}[/bold]")
    uvicorn.run(create_app(config), host=host, port=port, reload=False, log_level="debug" if verbose else "info")
