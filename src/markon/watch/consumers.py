"""Consumers of the debounced watch stream."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import Callable

from markon.collab.broadcast import Broadcaster, run_until_first_exit
from markon.errors import BackendError, RenderError
from markon.index.indexer import SearchIndexManager
from markon.models import WatchEvent, WatchEventKind
from markon.render import RenderedDocument, render
from markon.watch.watcher import WatchSubscription

LOGGER = logging.getLogger(__name__)

RELOAD_MESSAGE = "reload"


class IndexUpdater:
    """Applies watch events to the search index on a background thread."""

    def __init__(self, manager: SearchIndexManager, subscription: WatchSubscription) -> None:
        self.manager = manager
        self.subscription = subscription
        self._thread: threading.Thread | None = None

    def handle(self, event: WatchEvent) -> None:
        try:
            if event.kind is WatchEventKind.REMOVE:
                self.manager.remove(event.path)
            elif event.path.is_dir():
                self.manager.index_tree(event.path)
            else:
                self.manager.upsert(event.path)
        except (BackendError, ValueError) as exc:
            LOGGER.error("Failed to update index for %s: %s", event.path, exc)

    def run(self) -> None:
        for event in self.subscription:
            self.handle(event)

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="markon-index-updater", daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class LiveReload:
    """Keeps the rendered HTML of the previewed file fresh and pings viewers."""

    def __init__(
        self,
        path: Path,
        *,
        loop: asyncio.AbstractEventLoop,
        renderer: Callable[[str], RenderedDocument] = render,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self.path = Path(os.path.realpath(path))
        self.loop = loop
        self.renderer = renderer
        self.broadcaster = broadcaster if broadcaster is not None else Broadcaster()
        self._lock = threading.Lock()
        self._document: RenderedDocument | None = None
        self._thread: threading.Thread | None = None

    @property
    def document(self) -> RenderedDocument:
        with self._lock:
            document = self._document
        if document is None:
            document = self.refresh()
        return document

    def refresh(self) -> RenderedDocument:
        """Re-render the file; on failure the last good render is kept."""
        text = self.path.read_text(encoding="utf-8", errors="replace")
        document = self.renderer(text)
        with self._lock:
            self._document = document
        return document

    def matches(self, event: WatchEvent) -> bool:
        return Path(os.path.abspath(event.path)) == self.path or (
            Path(os.path.realpath(event.path.parent)) / event.path.name == self.path
        )

    def handle(self, event: WatchEvent) -> bool:
        if event.kind is WatchEventKind.REMOVE or not self.matches(event):
            return False
        try:
            self.refresh()
        except (OSError, RenderError) as exc:
            LOGGER.error("Live reload of %s failed: %s", self.path, exc)
            return False
        self.loop.call_soon_threadsafe(self.broadcaster.publish, RELOAD_MESSAGE)
        return True

    def run(self, subscription: WatchSubscription) -> None:
        for event in subscription:
            self.handle(event)

    def start(self, subscription: WatchSubscription) -> None:
        self._thread = threading.Thread(
            target=self.run, args=(subscription,), name="markon-live-reload", daemon=True
        )
        self._thread.start()

    async def serve(self, connection) -> None:
        """Send a reload signal to ``connection`` after every change."""
        subscription = self.broadcaster.subscribe()

        async def _drain() -> None:
            while True:
                await connection.receive_text()

        async def _relay() -> None:
            while True:
                await connection.send_text(await subscription.get())

        try:
            await run_until_first_exit(_drain(), _relay())
        finally:
            self.broadcaster.unsubscribe(subscription)
