"""Resilient session to the ZooKeeper coordination service"""

import logging
import socket
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from kazoo.client import KazooClient, KazooState
from kazoo.exceptions import KazooException
from kazoo.handlers.threading import KazooTimeoutError

from .errors import SessionError, SessionExpired

logger = logging.getLogger(__name__)

CHARSET = "utf-8"

# Maximum attempts for a retried write
MAX_RETRIES = 3

# Backoff base, multiplied by the attempt number
RETRY_PERIOD_SECONDS = 2

COORDINATION_ERRORS = (KazooException, KazooTimeoutError)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SESSION_EXPIRED = "session_expired"


def _resolvable(hosts: str) -> bool:
    for entry in hosts.split(","):
        entry = entry.strip()
        if not entry:
            continue
        host, _, port = entry.rpartition(":")
        if not host:
            host, port = entry, "2181"
        try:
            socket.getaddrinfo(host, int(port))
            return True
        except (socket.gaierror, ValueError):
            continue
    return False


class ResilientConnection:
    """Owns the ZooKeeper session and retries ephemeral writes.

    State changes are driven only by kazoo session events. Expiry listeners
    are dispatched on the client's handler so the connection thread is never
    blocked by recovery work.
    """

    def __init__(self, client_factory: Callable[..., KazooClient] = KazooClient,
                 session_timeout: float = 10.0,
                 sleep: Callable[[float], None] = time.sleep):
        self._client_factory = client_factory
        self.session_timeout = session_timeout
        self._sleep = sleep
        self._client: Optional[KazooClient] = None
        self._started = None
        self._hosts: Optional[str] = None
        self._state = ConnectionState.DISCONNECTED
        self._expiry_listeners: List[Callable[[], None]] = []
        self._session_listeners: List[Callable[[], None]] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client(self) -> Optional[KazooClient]:
        return self._client

    @property
    def hosts(self) -> Optional[str]:
        return self._hosts

    def add_expiry_listener(self, listener: Callable[[], None]) -> None:
        self._expiry_listeners.append(listener)

    def add_session_listener(self, listener: Callable[[], None]) -> None:
        """Call ``listener`` whenever reconnect() has replaced the session.

        Watches and ephemeral nodes belong to the old session, so listeners
        are where they get registered again.
        """
        self._session_listeners.append(listener)

    def connect(self, hosts: str) -> None:
        """Start a session against ``hosts`` without waiting for the handshake

        Raises:
            SessionError: when no host in the list can be resolved
        """

        if not hosts or not _resolvable(hosts):
            raise SessionError(f"Cannot resolve any coordination host in '{hosts}'")

        with self._lock:
            self._hosts = hosts
            client = self._client_factory(hosts=hosts, timeout=self.session_timeout)
            client.add_listener(self._on_state_change)
            self._client = client
            self._state = ConnectionState.CONNECTING
            self._started = client.start_async()
        logger.info("Connecting to coordination service: %s", hosts)

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        """Block until the session is established or ``timeout`` elapses"""
        started = self._started
        if started is None:
            return False
        started.wait(timeout)
        return self._client is not None and bool(self._client.connected)

    def reconnect(self) -> None:
        """Tear down the current session and open a new one on the same hosts

        Session listeners run once the new session is started, outside the
        connection lock.
        """
        with self._lock:
            logger.info("Reconnecting to coordination service: %s", self._hosts)
            self._teardown()
            self.connect(self._hosts)
        self._dispatch(self._session_listeners)

    def close(self) -> None:
        with self._lock:
            self._teardown()

    def _teardown(self) -> None:
        client, self._client = self._client, None
        self._state = ConnectionState.DISCONNECTED
        if client is None:
            return
        client.remove_listener(self._on_state_change)
        try:
            client.stop()
            client.close()
        except COORDINATION_ERRORS as e:
            logger.warning("Error closing coordination session: %s", e)

    def _on_state_change(self, state) -> None:
        if state == KazooState.LOST:
            self._state = ConnectionState.SESSION_EXPIRED
            logger.warning("Coordination session expired")
            self._dispatch(self._expiry_listeners)
        elif state == KazooState.SUSPENDED:
            self._state = ConnectionState.DISCONNECTED
            logger.warning("Coordination session suspended")
        else:
            self._state = ConnectionState.CONNECTED
            logger.info("Coordination session connected")

    def _dispatch(self, listeners: List[Callable[[], None]]) -> None:
        client = self._client
        for listener in list(listeners):
            if client is not None:
                client.handler.spawn(listener)
            else:
                listener()

    def _require_client(self) -> KazooClient:
        if self._state is ConnectionState.SESSION_EXPIRED:
            raise SessionExpired("Coordination session expired")
        if self._client is None:
            raise SessionError("Not connected to the coordination service")
        return self._client

    def watch(self, path: str, callback: Callable) -> None:
        """Register a one-shot data watch; it must be re-armed after it fires"""
        self._require_client().exists(path, watch=callback)

    def get_children(self, path: str) -> List[str]:
        return self._require_client().get_children(path)

    def write_ephemeral(self, path: str, value: Optional[str]) -> None:
        """Create an ephemeral node, or overwrite it when ``value`` is given.

        Each failed attempt that will be retried triggers a reconnect and a
        sleep of ``attempt * RETRY_PERIOD_SECONDS`` seconds.

        Raises:
            SessionError: after MAX_RETRIES failed attempts
        """

        data = (value or "").encode(CHARSET)
        last_error = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                client = self._require_client()
                stat = client.exists(path)
                if stat is None:
                    client.create(path, data, ephemeral=True)
                elif value is not None:
                    client.set(path, data, version=stat.version)
                logger.info("Ephemeral node written: path=%s, stat=%s", path, stat)
                return
            except COORDINATION_ERRORS + (SessionError,) as e:
                last_error = e
                logger.warning("Ephemeral write to %s failed (attempt %d/%d): %s",
                               path, attempt, MAX_RETRIES, e)
                if attempt < MAX_RETRIES:
                    try:
                        self.reconnect()
                    except SessionError:
                        logger.error("Reconnect before retrying %s failed", path, exc_info=True)
                    delay = RETRY_PERIOD_SECONDS * attempt
                    logger.warning("Sleeping %ss before retrying", delay)
                    self._sleep(delay)

        raise SessionError(f"Ephemeral write to {path} failed after {MAX_RETRIES} attempts") from last_error
