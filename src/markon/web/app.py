"""FastAPI application serving the preview, search and live endpoints."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, List

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import FileResponse, HTMLResponse, Response

from markon import __version__
from markon.collab.hub import CollaborationHub
from markon.collab.store import AnnotationStore
from markon.config import AppConfig
from markon.errors import BackendError, ForbiddenError, NotFoundError, QueryParseError, RenderError
from markon.index.indexer import SearchIndexManager
from markon.render import render
from markon.utils.files import is_markdown
from markon.utils.paths import PathResolver
from markon.watch.consumers import IndexUpdater, LiveReload
from markon.watch.watcher import FileWatcher
from markon.web.frontend import guess_media_type, render_error, render_listing, render_page

LOGGER = logging.getLogger(__name__)

POLICY_VIOLATION = 1008


def _features(config: AppConfig, live_reload: bool) -> dict[str, Any]:
    return {
        "sharedAnnotation": config.shared_annotation,
        "enableViewed": config.enable_viewed,
        "enableSearch": config.enable_search,
        "liveReload": live_reload,
    }


def _start_watching(app: FastAPI, config: AppConfig) -> None:
    state = app.state
    wants_reload = state.live_reload is not None
    if not (state.index is not None or wants_reload):
        return

    watcher = FileWatcher(config.root, debounce=config.debounce_seconds)
    index_subscription = watcher.subscribe() if state.index is not None else None
    reload_subscription = watcher.subscribe() if wants_reload else None
    try:
        watcher.start()
    except BackendError as exc:
        LOGGER.error("File watching disabled: %s", exc)
        return

    state.watcher = watcher
    if index_subscription is not None:
        # Started once the initial scan is committed; changes queue up meanwhile.
        state.index_updater = IndexUpdater(state.index, index_subscription)
    if reload_subscription is not None:
        state.live_reload.start(reload_subscription)


def create_app(config: AppConfig | None = None, *, watch: bool = True) -> FastAPI:
    """Build the application for ``config``; components start with the app."""
    config = config if config is not None else AppConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        state = app.state
        if config.enable_search:
            state.index = SearchIndexManager(config.root)
        if config.collaboration_enabled:
            db_path = config.resolve_db_path(config.root)
            state.hub = CollaborationHub(
                AnnotationStore(db_path),
                annotations_enabled=config.shared_annotation,
                viewed_enabled=config.enable_viewed,
            )
        single_file = config.resolve_file()
        if single_file is not None and config.live_reload:
            state.live_reload = LiveReload(single_file, loop=asyncio.get_running_loop())
        if watch:
            _start_watching(app, config)
        try:
            if state.index is not None:
                await asyncio.to_thread(state.index.index_all)
            if state.index_updater is not None:
                state.index_updater.start()
            yield
        finally:
            if state.watcher is not None:
                state.watcher.stop()
            if state.index_updater is not None:
                state.index_updater.join(timeout=5)
            if state.index is not None:
                state.index.close()
            if state.hub is not None:
                state.hub.store.close()

    app = FastAPI(title="Markon", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.resolver = PathResolver(config.root)
    app.state.index = None
    app.state.hub = None
    app.state.live_reload = None
    app.state.watcher = None
    app.state.index_updater = None

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> HTMLResponse:
        return HTMLResponse(render_error(404, f"Not found: {request.url.path}"), status_code=404)

    @app.exception_handler(ForbiddenError)
    async def forbidden(request: Request, exc: ForbiddenError) -> HTMLResponse:
        LOGGER.warning("Rejected path outside root: %s", request.url.path)
        return HTMLResponse(render_error(403, "Access denied: path is outside the served directory"), status_code=403)

    @app.exception_handler(RenderError)
    async def render_failed(request: Request, exc: RenderError) -> HTMLResponse:
        LOGGER.error("Rendering %s failed: %s", request.url.path, exc)
        return HTMLResponse(render_error(500, str(exc)), status_code=500)

    @app.get("/search")
    async def search(request: Request, q: str = "") -> List[dict[str, str]]:
        index: SearchIndexManager | None = request.app.state.index
        if index is None or not q.strip():
            return []
        try:
            results = await asyncio.to_thread(index.search, q, config.search_limit)
        except QueryParseError as exc:
            LOGGER.info("Invalid search query %r: %s", q, exc)
            return []
        return [result.to_dict() for result in results]

    @app.websocket("/_/ws")
    async def shared_state(websocket: WebSocket) -> None:
        hub: CollaborationHub | None = websocket.app.state.hub
        if hub is None:
            await websocket.close(code=POLICY_VIOLATION)
            return
        await websocket.accept()
        await hub.handle(websocket)

    @app.websocket("/_/live")
    async def live(websocket: WebSocket) -> None:
        live_reload: LiveReload | None = websocket.app.state.live_reload
        if live_reload is None:
            await websocket.close(code=POLICY_VIOLATION)
            return
        await websocket.accept()
        await live_reload.serve(websocket)

    async def _markdown_page(path: Path, relative: str) -> HTMLResponse:
        live_reload: LiveReload | None = app.state.live_reload
        if live_reload is not None and live_reload.path == path:
            document = await asyncio.to_thread(lambda: live_reload.document)
        else:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
            document = await asyncio.to_thread(render, text)
        page = render_page(
            document,
            title=path.name,
            file_path=relative,
            theme=config.theme,
            features=_features(config, live_reload is not None and live_reload.path == path),
        )
        return HTMLResponse(page)

    async def _serve(requested: str) -> Response:
        resolver: PathResolver = app.state.resolver
        path = resolver.resolve(requested, decoded=True)
        relative = resolver.relative(path)
        if path.is_dir():
            return HTMLResponse(render_listing(path, relative, theme=config.theme))
        if is_markdown(path):
            return await _markdown_page(path, relative)
        return FileResponse(path, media_type=guess_media_type(path))

    @app.get("/")
    async def index() -> Response:
        single_file = config.resolve_file()
        if single_file is None:
            return await _serve("")
        return await _serve(app.state.resolver.relative(single_file))

    @app.get("/{requested:path}")
    async def serve_path(requested: str) -> Response:
        return await _serve(requested)

    return app
