"""Main configuration sync service"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import httpx

from .bindings import Binding, BindingRegistry, Consumer, DeliveryReport
from .bootstrap import ConfServerClient, load_bootstrap, locate_bootstrap_file
from .connection import ConnectionState, ResilientConnection
from .diff import DiffEngine
from .errors import BootstrapUnavailable, SessionError
from .presence import PresenceRegistry
from .properties_file import PropertiesFile, read_properties
from .resolver import ValueResolver
from .snapshot import ResourceHandle, ResourceKind, Snapshot
from .watcher import ConfigWatcher, FileUpdateCallback

logger = logging.getLogger(__name__)

MODE_REMOTE = "remote"
MODE_LOCAL = "local"

DEFAULT_DOWNLOAD_DIR = "config"


class ConfigService:
    """Process-wide entry point combining the watcher, diff engine and bindings

    Keys from the local override file win over keys from remote resources.
    When no bootstrap file is found or the coordination service cannot be
    reached, the service runs in local-only mode on the caller's items.
    """

    def __init__(self, app_name: str, items: Iterable[str] = (),
                 local_conf: str = "conf/app.properties",
                 bootstrap_file: Optional[str] = None,
                 fallback: Optional[Mapping[str, str]] = None,
                 connection: Optional[ResilientConnection] = None,
                 http_client: Optional[httpx.Client] = None,
                 connect_timeout: float = 10.0):
        self.app_name = app_name
        self.items = list(items)
        self.local_conf = Path(local_conf)
        self.start_time = datetime.now()

        self.resolver = ValueResolver(fallback)
        self.registry = BindingRegistry(self.resolver)
        self.diff_engine = DiffEngine(self.resolver, self.registry)

        self.watcher: Optional[ConfigWatcher] = None
        self.presence: Optional[PresenceRegistry] = None
        self.conf_server: Optional[ConfServerClient] = None
        self.connection = connection
        self.mode = MODE_LOCAL
        self._local_snapshot = Snapshot.empty()
        self._file_callbacks: List[FileUpdateCallback] = []

        self._ensure_local_conf()
        try:
            self._start_remote(bootstrap_file, http_client, connect_timeout)
        except BootstrapUnavailable as e:
            logger.warning("Bootstrap unavailable, using local mode: %s", e)
            self._start_local()
        except SessionError as e:
            logger.error("Failed to connect to coordination service, using local mode: %s", e)
            self._start_local()

    def _ensure_local_conf(self) -> None:
        if not self.local_conf.exists():
            self.local_conf.parent.mkdir(parents=True, exist_ok=True)
            self.local_conf.touch()

    def _read_local(self, path: Path) -> Dict[str, str]:
        try:
            return read_properties(path)
        except (OSError, ValueError) as e:
            logger.warning("Cannot read local configuration %s: %s", path, e)
            return {}

    def _start_remote(self, bootstrap_file: Optional[str], http_client: Optional[httpx.Client],
                      connect_timeout: float) -> None:
        path = Path(bootstrap_file) if bootstrap_file else locate_bootstrap_file(self.app_name)
        settings = load_bootstrap(path)

        self.conf_server = ConfServerClient(settings, self.app_name, client=http_client)
        hosts = self.conf_server.fetch_zookeeper_hosts()

        if self.connection is None:
            self.connection = ResilientConnection()
        self.connection.connect(hosts)
        if not self.connection.wait_connected(connect_timeout):
            logger.warning("Coordination session not established after %ss", connect_timeout)

        download_dir = Path(settings.download_dir or DEFAULT_DOWNLOAD_DIR)
        handles = [
            ResourceHandle(
                path=self.conf_server.node_path(item),
                kind=ResourceKind.for_path(item),
                cache_path=download_dir / item,
                source_url=self.conf_server.file_url(item),
            )
            for item in self.items
        ]

        self.presence = PresenceRegistry(self.connection)
        self.watcher = ConfigWatcher(
            self.connection,
            handles,
            fetch=self.conf_server.fetch,
            on_change=self._on_snapshot_change,
            presence=self.presence,
            overrides=self._read_local(self.local_conf),
            file_callbacks=self._file_callbacks,
        )
        self.mode = MODE_REMOTE
        logger.info("fileDownloadDir = %s, cwd = %s", download_dir, os.getcwd())

    def _start_local(self) -> None:
        self.mode = MODE_LOCAL
        self._local_snapshot = self._load_local_snapshot()

    def _load_local_snapshot(self) -> Snapshot:
        sources = [
            self._read_local(Path(item)) for item in self.items
            if ResourceKind.for_path(item) is ResourceKind.PROPERTIES and Path(item).exists()
        ]
        sources.append(self._read_local(self.local_conf))
        return Snapshot.merged(*sources)

    def _on_snapshot_change(self, old: Snapshot, new: Snapshot) -> None:
        changes = self.diff_engine.compute_changes(old, new)
        if changes:
            self.registry.on_change(changes, new)

    @property
    def snapshot(self) -> Snapshot:
        if self.watcher is not None:
            return self.watcher.snapshot
        return self._local_snapshot

    # Binding Methods
    def register(self, key: str, consumer: Consumer, shape: Optional[str] = None,
                 deliver_now: bool = True) -> Binding:
        """Bind a consumer to a key or pattern, optionally delivering the current value"""

        binding = self.registry.register(key, Binding(key, consumer, shape))
        if deliver_now:
            self._deliver_current([key])
        return binding

    def bind(self, expression: str, consumer: Consumer, shape: Optional[str] = None,
             deliver_now: bool = True) -> List[Binding]:
        """Bind a consumer to every key referenced by a placeholder expression"""

        bindings = self.registry.bind(expression, consumer, shape)
        if deliver_now:
            self._deliver_current([binding.key for binding in bindings])
        return bindings

    def _deliver_current(self, keys: List[str]) -> DeliveryReport:
        if self.watcher is None:
            return self.registry.on_change(keys, self._local_snapshot)
        return self.watcher.deliver_current(lambda snapshot: self.registry.on_change(keys, snapshot))

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Resolved value of a key or pattern in the current snapshot"""
        value = self.registry.value_for(key, self.snapshot)
        return default if value is None else value

    # Refresh Methods
    def refresh(self) -> Snapshot:
        """Force a full reload and change cycle outside the watch path"""

        if self.watcher is not None:
            self.watcher.overrides = self._read_local(self.local_conf)
            return self.watcher.refresh_all()

        old = self._local_snapshot
        new = self._load_local_snapshot()
        self._local_snapshot = new
        self._on_snapshot_change(old, new)
        return new

    def push(self, properties: Mapping[str, str],
             previous: Optional[Mapping[str, str]] = None) -> DeliveryReport:
        """Deliver a caller-supplied configuration to the bound consumers

        Without ``previous`` every key of ``properties`` is redelivered.
        """

        new = Snapshot(properties)
        if previous is None:
            changes = self.diff_engine.full_change_set(new)
        else:
            changes = self.diff_engine.compute_changes(Snapshot(previous), new)
        return self.registry.on_change(changes, new)

    def save_to_local(self, properties: Mapping[str, Any], comment: Optional[str] = None) -> str:
        """Store entries in the local override file, keeping its layout"""
        return PropertiesFile(self.local_conf).save(properties, comment)

    # Coordination Methods
    def add_file_update_callback(self, callback: Callable[[Path], None]) -> None:
        """Call ``callback`` with the cached file path whenever a resource is downloaded"""
        self._file_callbacks.append(callback)
        if self.watcher is not None and callback not in self.watcher.file_callbacks:
            self.watcher.add_file_callback(callback)

    def cluster_hosts(self) -> Optional[List[str]]:
        """Hosts of every process consuming the first monitored resource"""
        if self.watcher is None or not self.watcher.handles:
            return None
        first = next(iter(self.watcher.handles))
        return self.presence.cluster_hosts(first)

    def get_status(self) -> Dict[str, Any]:
        """Get status of the sync service"""

        status = {
            "app_name": self.app_name,
            "mode": self.mode,
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
            "start_time": self.start_time.isoformat(),
            "configuration": {
                "total_keys": len(self.snapshot),
                "items": self.items,
                "local_conf": str(self.local_conf),
            },
            "bindings": {
                "keys": len(self.registry.keys()),
                "patterns": self.registry.patterns,
            },
            "timestamp": datetime.now().isoformat(),
        }

        if self.watcher is not None:
            status["coordination"] = {
                "hosts": self.connection.hosts,
                "state": self.connection.state.value,
                "fingerprint": self.presence.fingerprint,
                "resources": list(self.watcher.handles),
            }

        return status

    def health_check(self) -> Dict[str, Any]:
        """Health check for the sync service"""

        healthy = self.watcher is None or self.connection.state is ConnectionState.CONNECTED
        return {
            "status": "healthy" if healthy else "degraded",
            "mode": self.mode,
            "timestamp": datetime.now().isoformat(),
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
        }

    def close(self) -> None:
        if self.watcher is not None:
            self.watcher.close()
        if self.connection is not None:
            self.connection.close()
        if self.conf_server is not None:
            self.conf_server.close()
