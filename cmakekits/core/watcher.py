"""
File watching backed by ``watchdog``.

``FileWatchBridge`` implements the ``WatchBridge`` contract. Each call to
``watch()`` returns a subscription whose events are pushed from the watchdog
observer thread onto an asyncio queue owned by the subscriber's event loop,
so consumers read them sequentially with ``async for``.

Usage:
    bridge = FileWatchBridge()
    sub = bridge.watch(user_kits_path(), project_kits_path(root))
    async for event in sub:
        await reload_kits()
    ...
    sub.dispose()
    bridge.close()
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from cmakekits.core.interfaces import WatchBridge, WatchEvent, WatchSubscription

logger = logging.getLogger(__name__)

_KIND_MAP = {
    "created": "created",
    "modified": "changed",
    "moved": "changed",
    "closed": "changed",
    "deleted": "deleted",
}


def _nearest_existing_dir(path: Path) -> Path:
    candidate = path.parent
    while not candidate.exists() and candidate != candidate.parent:
        candidate = candidate.parent
    return candidate


class _SubscriptionHandler(FileSystemEventHandler):
    """Forwards events for the watched files to a subscription."""

    def __init__(self, subscription: "FileWatchSubscription"):
        super().__init__()
        self.subscription = subscription

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory:
            return
        kind = _KIND_MAP.get(event.event_type)
        if kind is None:
            return
        candidates = [event.src_path, getattr(event, "dest_path", None)]
        for raw in candidates:
            if not raw:
                continue
            path = Path(raw).resolve()
            if path in self.subscription.paths:
                self.subscription.push(WatchEvent(path=path, kind=kind))


class FileWatchSubscription(WatchSubscription):
    """Event channel for a fixed set of files."""

    def __init__(self, bridge: "FileWatchBridge", paths: List[Path]):
        self.paths: Set[Path] = {Path(p).resolve() for p in paths}
        self._bridge = bridge
        self._loop = asyncio.get_running_loop()
        self._queue: "asyncio.Queue[Optional[WatchEvent]]" = asyncio.Queue()
        self._disposed = False

    def push(self, event: WatchEvent) -> None:
        """Thread-safe enqueue of an event."""
        if self._disposed:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Event loop already closed
            logger.debug(f"Dropped watch event for {event.path}")

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._bridge._release(self)
        # Queued behind events already handed over by the observer thread
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)
        except RuntimeError:
            self._queue.put_nowait(None)
        logger.debug(f"Disposed watch on {sorted(str(p) for p in self.paths)}")

    async def __aiter__(self):
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class FileWatchBridge(WatchBridge):
    """
    WatchBridge using a single shared watchdog observer.

    Subscriptions watching the same directory share one observed watch; the
    watch is unscheduled when its last subscription is disposed.
    """

    def __init__(self):
        self._observer = None
        self._lock = threading.Lock()
        self._handles: Dict[int, List[Tuple[ObservedWatch, FileSystemEventHandler]]] = {}
        self._refs: Dict[ObservedWatch, int] = {}

    def _ensure_observer(self):
        if self._observer is None:
            self._observer = Observer()
            self._observer.daemon = True
            self._observer.start()
            logger.debug("Started file observer")
        return self._observer

    def watch(self, *paths: Path) -> WatchSubscription:
        subscription = FileWatchSubscription(self, list(paths))
        handler = _SubscriptionHandler(subscription)
        handles = []
        with self._lock:
            observer = self._ensure_observer()
            directories: Dict[Path, bool] = {}
            for path in subscription.paths:
                directory = _nearest_existing_dir(path)
                # Watch recursively when the file's own directory does not exist yet
                directories[directory] = directories.get(directory, False) or (
                    directory != path.parent
                )
            for directory, recursive in directories.items():
                try:
                    watch = observer.schedule(handler, str(directory), recursive=recursive)
                except OSError as e:
                    logger.warning(f"Cannot watch {directory}: {e}")
                    continue
                self._refs[watch] = self._refs.get(watch, 0) + 1
                handles.append((watch, handler))
            self._handles[id(subscription)] = handles
        logger.debug(f"Watching {sorted(str(p) for p in subscription.paths)}")
        return subscription

    def _release(self, subscription: FileWatchSubscription) -> None:
        with self._lock:
            handles = self._handles.pop(id(subscription), [])
            if self._observer is None:
                return
            for watch, handler in handles:
                remaining = self._refs.get(watch, 1) - 1
                try:
                    if remaining > 0:
                        self._refs[watch] = remaining
                        self._observer.remove_handler_for_watch(handler, watch)
                    else:
                        self._refs.pop(watch, None)
                        self._observer.unschedule(watch)
                except (KeyError, OSError) as e:
                    logger.debug(f"Unschedule failed: {e}")

    def close(self) -> None:
        """Stop the observer thread."""
        with self._lock:
            observer, self._observer = self._observer, None
            self._refs.clear()
        if observer is not None:
            observer.stop()
            observer.join()
            logger.debug("Stopped file observer")


__all__ = ["FileWatchBridge", "FileWatchSubscription"]
