"""Shared fixtures: an in-memory ZooKeeper stand-in and resource helpers."""

import threading
from concurrent.futures import Executor, Future
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict, List

import pytest
from kazoo.client import KazooState
from kazoo.exceptions import ConnectionLoss, NoNodeError
from kazoo.protocol.states import EventType, KeeperState, WatchedEvent

from config_sync.connection import ResilientConnection
from config_sync.errors import DownloadFailure
from config_sync.snapshot import ResourceHandle, ResourceKind

HOSTS = "127.0.0.1:2181"


class InlineHandler:
    def spawn(self, func, *args, **kwargs):
        func(*args, **kwargs)


class FakeKazooClient:
    """Implements the subset of KazooClient used by ResilientConnection."""

    def __init__(self, server: "FakeZooKeeper", hosts: str, timeout: float):
        self.server = server
        self.hosts = hosts
        self.timeout = timeout
        self.listeners: List[Callable] = []
        self.watches: Dict[str, set] = {}
        self.handler = InlineHandler()
        self.connected = False
        self.stopped = False

    def add_listener(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners.remove(listener)

    def start_async(self):
        self.connected = True
        started = threading.Event()
        started.set()
        return started

    def stop(self):
        self.stopped = True
        self.connected = False

    def close(self):
        pass

    def _maybe_fail(self):
        if self.server.failures > 0:
            self.server.failures -= 1
            raise ConnectionLoss()

    def exists(self, path, watch=None):
        self._maybe_fail()
        if watch is not None:
            self.watches.setdefault(path, set()).add(watch)
        if path not in self.server.nodes:
            return None
        return SimpleNamespace(version=self.server.versions[path])

    def create(self, path, value=b"", ephemeral=False):
        self._maybe_fail()
        self.server.nodes[path] = value
        self.server.versions[path] = 0
        if ephemeral:
            self.server.ephemeral.add(path)

    def set(self, path, value, version=-1):
        self._maybe_fail()
        self.server.nodes[path] = value
        self.server.versions[path] += 1

    def get_children(self, path):
        self._maybe_fail()
        if path not in self.server.nodes:
            raise NoNodeError()
        prefix = path.rstrip("/") + "/"
        return [
            node[len(prefix):] for node in self.server.nodes
            if node.startswith(prefix) and "/" not in node[len(prefix):]
        ]


class FakeZooKeeper:
    """Shared node store surviving reconnects; hands out fake clients."""

    def __init__(self):
        self.nodes: Dict[str, bytes] = {}
        self.versions: Dict[str, int] = {}
        self.ephemeral = set()
        self.clients: List[FakeKazooClient] = []
        self.failures = 0

    def __call__(self, hosts, timeout):
        client = FakeKazooClient(self, hosts, timeout)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeKazooClient:
        return self.clients[-1]

    def add_node(self, path: str, data: bytes = b""):
        self.nodes[path] = data
        self.versions[path] = 0

    def fire(self, path: str, event_type=EventType.CHANGED):
        """Deliver a one-shot data watch on the current client"""
        watchers = self.client.watches.pop(path, set())
        for watcher in watchers:
            watcher(WatchedEvent(event_type, KeeperState.CONNECTED, path))
        return len(watchers)

    def expire_session(self):
        for listener in list(self.client.listeners):
            listener(KazooState.LOST)


class ImmediateExecutor(Executor):
    """Runs submitted work inline so presence writes are observable at once."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeConfServer:
    """Serves resource content by node path."""

    def __init__(self):
        self.content: Dict[str, bytes] = {}
        self.requests: List[str] = []

    def __call__(self, handle: ResourceHandle) -> bytes:
        self.requests.append(handle.path)
        if handle.path not in self.content:
            raise DownloadFailure(handle.path, "unreachable")
        return self.content[handle.path]


@pytest.fixture
def zookeeper() -> FakeZooKeeper:
    return FakeZooKeeper()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def connection(zookeeper, sleeps) -> ResilientConnection:
    conn = ResilientConnection(client_factory=zookeeper, sleep=sleeps.append)
    conn.connect(HOSTS)
    return conn


@pytest.fixture
def conf_server() -> FakeConfServer:
    return FakeConfServer()


@pytest.fixture
def make_handle(tmp_path: Path) -> Callable[..., ResourceHandle]:
    def _make(name: str) -> ResourceHandle:
        return ResourceHandle(
            path=f"/disconf/app_1.0_dev/file/{name}",
            kind=ResourceKind.for_path(name),
            cache_path=tmp_path / "download" / name,
        )
    return _make
