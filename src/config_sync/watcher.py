"""Watches remote configuration resources and publishes merged snapshots"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, TypeVar

from kazoo.protocol.states import EventType, WatchedEvent

from .connection import COORDINATION_ERRORS, ResilientConnection
from .errors import DownloadFailure, SessionError
from .presence import PresenceRegistry
from .properties_file import load_properties
from .snapshot import ResourceHandle, Snapshot

logger = logging.getLogger(__name__)

Fetcher = Callable[[ResourceHandle], bytes]
ChangeCallback = Callable[[Snapshot, Snapshot], None]
FileUpdateCallback = Callable[[Path], None]
T = TypeVar("T")

CONTENT_EVENTS = (EventType.CHANGED, EventType.CREATED)


class ConfigWatcher:
    """Keeps a snapshot of a fixed set of remote resources up to date.

    Each resource cycles through watch, change event, download, merge and
    re-watch. Session expiry re-arms every watch. Event processing,
    :meth:`refresh_all` and expiry recovery are serialized by one lock, and
    the current snapshot is replaced only once the next one is complete.
    """

    def __init__(self, connection: ResilientConnection, handles: Iterable[ResourceHandle],
                 fetch: Fetcher, on_change: Optional[ChangeCallback] = None,
                 presence: Optional[PresenceRegistry] = None,
                 overrides: Optional[Mapping[str, str]] = None,
                 file_callbacks: Iterable[FileUpdateCallback] = ()):
        self.connection = connection
        self.handles: Dict[str, ResourceHandle] = {handle.path: handle for handle in handles}
        self.fetch = fetch
        self.on_change = on_change
        self.presence = presence or PresenceRegistry(connection)
        self.overrides: Dict[str, str] = dict(overrides or {})
        self.file_callbacks: List[FileUpdateCallback] = list(file_callbacks)

        self._contents: Dict[str, Dict[str, str]] = {}
        self._snapshot = Snapshot.empty()
        self._lock = threading.RLock()
        self._watch_callbacks = {path: self._make_watch_callback(path) for path in self.handles}

        connection.add_expiry_listener(self.on_session_expired)
        connection.add_session_listener(self.on_session_replaced)
        self._bootstrap()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def _bootstrap(self) -> None:
        with self._lock:
            for handle in self.handles.values():
                self._arm(handle)
                self._download(handle)
            self._snapshot = self._build_snapshot()
        logger.info("Initial configuration loaded: %d keys from %d resources",
                    len(self._snapshot), len(self.handles))

    def _make_watch_callback(self, path: str) -> Callable[[WatchedEvent], None]:
        # one callable per path, so re-arming never stacks a second watch
        def callback(event: WatchedEvent) -> None:
            self.on_event(event)
        return callback

    def _arm(self, handle: ResourceHandle) -> None:
        try:
            self.connection.watch(handle.path, self._watch_callbacks[handle.path])
            logger.info("Watching node: %s", handle.path)
        except COORDINATION_ERRORS + (SessionError,):
            logger.error("Failed to watch node: %s", handle.path, exc_info=True)

    def on_event(self, event: WatchedEvent) -> None:
        """Handle one fired data watch"""
        logger.info("Event: %s", event)
        handle = self.handles.get(event.path)
        if handle is None:
            return

        if event.type not in CONTENT_EVENTS:
            with self._lock:
                self._arm(handle)
            return

        with self._lock:
            old = self._snapshot
            downloaded = self._download(handle)
            if downloaded:
                new = self._build_snapshot()
                self._snapshot = new
            self._arm(handle)
            if downloaded:
                self._emit(old, new)

    def on_session_expired(self) -> None:
        """Re-establish the session; on_session_replaced re-arms the watches"""
        with self._lock:
            logger.warning("Session expired, reconnecting")
            try:
                self.connection.reconnect()
            except SessionError:
                logger.error("Reconnect after session expiry failed", exc_info=True)

    def on_session_replaced(self) -> None:
        """Re-arm every watch and presence node on a freshly opened session"""
        with self._lock:
            logger.warning("New coordination session, re-watching %d resources", len(self.handles))
            for handle in self.handles.values():
                self._arm(handle)
            self.presence.republish()

    def refresh_all(self) -> Snapshot:
        """Re-download every resource and run one change cycle"""
        logger.info("Refreshing all configuration resources")
        with self._lock:
            old = self._snapshot
            for handle in self.handles.values():
                self._download(handle)
                self._arm(handle)
            new = self._build_snapshot()
            self._snapshot = new
            self._emit(old, new)
        return new

    def _download(self, handle: ResourceHandle) -> bool:
        """Fetch, cache and record one resource; False leaves all state untouched"""
        try:
            data = self.fetch(handle)
            if not data:
                raise DownloadFailure(handle.path, "empty content")
            pairs = load_properties(data.decode("utf-8")) if handle.is_properties else None
        except (DownloadFailure, UnicodeDecodeError, ValueError) as e:
            logger.error("Download error for %s: %s", handle.path, e)
            return False

        self._write_cache(handle, data)
        if pairs is not None:
            self._contents[handle.path] = pairs
        self.presence.publish(handle.path, pairs or {})
        return True

    def _write_cache(self, handle: ResourceHandle, data: bytes) -> None:
        try:
            handle.cache_path.parent.mkdir(parents=True, exist_ok=True)
            handle.cache_path.write_bytes(data)
        except OSError:
            logger.error("Failed to copy config: %s", handle.cache_path, exc_info=True)
            return

        for callback in self.file_callbacks:
            try:
                callback(handle.cache_path)
            except Exception:
                logger.warning("File update callback failed for %s", handle.cache_path,
                               exc_info=True)

    def _build_snapshot(self) -> Snapshot:
        sources = [self._contents[path] for path in self.handles if path in self._contents]
        sources.append(self.overrides)
        return Snapshot.merged(*sources)

    def _emit(self, old: Snapshot, new: Snapshot) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(old, new)
        except Exception:
            logger.error("Change callback failed", exc_info=True)

    def deliver_current(self, deliver: Callable[[Snapshot], T]) -> T:
        """Run ``deliver`` on the current snapshot, never interleaved with a change cycle"""
        with self._lock:
            return deliver(self._snapshot)

    def add_file_callback(self, callback: FileUpdateCallback) -> None:
        self.file_callbacks.append(callback)

    def close(self) -> None:
        self.presence.close()
