"""Recursive filesystem watcher with per-path debouncing.

The OS notification backend (watchdog's observer) runs on its own thread and
feeds raw events into an :class:`EventCoalescer`. A flush thread drains paths
that have been quiet for the debounce window and hands one :class:`WatchEvent`
per path to every subscriber queue.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from markon.errors import BackendError
from markon.models import WatchEvent, WatchEventKind

LOGGER = logging.getLogger(__name__)

_CLOSED = object()


def merge_kinds(previous: WatchEventKind, current: WatchEventKind) -> WatchEventKind:
    """Combine two events on the same path into the one worth delivering."""
    if previous is WatchEventKind.CREATE and current is WatchEventKind.MODIFY:
        return WatchEventKind.CREATE
    if previous is WatchEventKind.REMOVE and current is WatchEventKind.CREATE:
        return WatchEventKind.MODIFY
    return current


class EventCoalescer:
    """Collapses bursts of events on the same path. Thread-safe."""

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[Path, Tuple[WatchEventKind, float]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def add(self, kind: WatchEventKind, path: Path) -> None:
        now = self._clock()
        with self._lock:
            # Re-insert so drain order follows the most recent change.
            previous = self._pending.pop(path, None)
            if previous is not None:
                kind = merge_kinds(previous[0], kind)
            self._pending[path] = (kind, now)

    def drain(self, *, force: bool = False) -> List[WatchEvent]:
        """Pop events whose path has been quiet for the whole window."""
        now = self._clock()
        ready: List[WatchEvent] = []
        with self._lock:
            for path, (kind, seen) in list(self._pending.items()):
                if force or now - seen >= self.window:
                    del self._pending[path]
                    ready.append(WatchEvent(kind, path))
        return ready


class WatchSubscription:
    """Queue of debounced events for one consumer; iteration ends on close."""

    def __init__(self) -> None:
        self._queue: queue.Queue = queue.Queue()

    def put(self, event: WatchEvent) -> None:
        self._queue.put(event)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def get(self, timeout: float | None = None) -> WatchEvent | None:
        """Next event, or ``None`` once closed or when ``timeout`` expires."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the marker for any other reader of this subscription.
            self._queue.put(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[WatchEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class _Handler(FileSystemEventHandler):
    def __init__(self, watcher: "FileWatcher") -> None:
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            self.watcher.handle_backend_event(event)
        except Exception:
            LOGGER.exception("Watcher failed to handle %r", event)


class FileWatcher:
    """Watches ``root`` recursively until :meth:`stop` is called."""

    def __init__(
        self,
        root: Path,
        *,
        debounce: float = 0.5,
        observer_factory: Callable[[], Observer] = Observer,
    ) -> None:
        self.root = Path(os.path.realpath(root))
        self.coalescer = EventCoalescer(debounce)
        self._observer_factory = observer_factory
        self._observer = None
        self._flusher: threading.Thread | None = None
        self._stopping = threading.Event()
        self._subscribers: List[WatchSubscription] = []
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._flusher is not None and self._flusher.is_alive()

    def subscribe(self) -> WatchSubscription:
        subscription = WatchSubscription()
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: WatchSubscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
        subscription.close()

    def handle_backend_event(self, event: FileSystemEvent) -> None:
        """Queue the change behind a backend event.

        Directories only report creation, deletion and moves; consumers expand
        those to the files below. Content changes inside a directory arrive as
        file events of their own.
        """
        if event.is_directory and event.event_type not in ("created", "deleted", "moved"):
            return
        src = Path(os.fsdecode(event.src_path))
        if event.event_type == "created":
            self.coalescer.add(WatchEventKind.CREATE, src)
        elif event.event_type in ("modified", "closed"):
            self.coalescer.add(WatchEventKind.MODIFY, src)
        elif event.event_type == "deleted":
            self.coalescer.add(WatchEventKind.REMOVE, src)
        elif event.event_type == "moved":
            self.coalescer.add(WatchEventKind.REMOVE, src)
            self.coalescer.add(WatchEventKind.CREATE, Path(os.fsdecode(event.dest_path)))

    def publish(self, event: WatchEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.put(event)

    def flush(self, *, force: bool = False) -> int:
        events = self.coalescer.drain(force=force)
        for event in events:
            self.publish(event)
        return len(events)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        observer = self._observer_factory()
        try:
            observer.schedule(_Handler(self), str(self.root), recursive=True)
            observer.start()
        except OSError as exc:
            raise BackendError(f"Unable to watch {self.root}: {exc}") from exc
        self._observer = observer
        self._flusher = threading.Thread(target=self._flush_loop, name="markon-watcher", daemon=True)
        self._flusher.start()
        LOGGER.info("Watching %s for changes", self.root)

    def _flush_loop(self) -> None:
        tick = max(min(self.coalescer.window / 4, 0.25), 0.02)
        while not self._stopping.wait(tick):
            self.flush()
            if self._observer is not None and not self._observer.is_alive():
                LOGGER.error("Watcher backend stopped unexpectedly; no further changes will be seen")
                break

    def stop(self) -> None:
        """Stop watching and end every subscription."""
        self._stopping.set()
        if self._observer is not None:
            try:
                self._observer.stop()
                self._observer.join(timeout=5)
            except RuntimeError as exc:
                LOGGER.error("Watcher backend failed to stop cleanly: %s", exc)
            self._observer = None
        if self._flusher is not None:
            self._flusher.join(timeout=5)
            self._flusher = None
        self.flush(force=True)
        with self._lock:
            subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription.close()
