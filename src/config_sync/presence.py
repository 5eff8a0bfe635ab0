"""Ephemeral presence records for the management plane"""

import json
import logging
import socket
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .connection import ResilientConnection
from .errors import SessionError

logger = logging.getLogger(__name__)


def local_address() -> str:
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return ""


def process_fingerprint() -> str:
    """Identity of this process: local address plus a random instance id"""
    return f"{local_address()}_{uuid.uuid4().hex}"


@dataclass
class PresenceRecord:
    """Ephemeral node advertising which configuration this process consumes"""
    resource_path: str
    fingerprint: str
    payload: Dict[str, Any] = field(default_factory=dict)
    written_at: Optional[str] = None

    @property
    def node_path(self) -> str:
        return f"{self.resource_path}/{self.fingerprint}"

    def to_json(self) -> str:
        return json.dumps(self.payload, ensure_ascii=False)


class PresenceRegistry:
    """Publishes presence records without blocking the event thread"""

    def __init__(self, connection: ResilientConnection, fingerprint: Optional[str] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.connection = connection
        self.fingerprint = fingerprint or process_fingerprint()
        self.records: Dict[str, PresenceRecord] = {}
        self._executor = executor or ThreadPoolExecutor(max_workers=1,
                                                        thread_name_prefix="presence")

    def publish(self, resource_path: str, pairs: Optional[Dict[str, Any]] = None) -> Future:
        """Queue a write of this process's view of a resource

        Args:
            resource_path: Node path of the monitored resource
            pairs: Resolved key/value pairs, empty for opaque files

        Returns:
            Future: Completes once the write finished or was abandoned
        """

        record = PresenceRecord(
            resource_path=resource_path,
            fingerprint=self.fingerprint,
            payload=dict(pairs or {}),
        )
        self.records[resource_path] = record
        return self._executor.submit(self._write, record)

    def republish(self) -> List[Future]:
        """Queue the last record of every resource again, e.g. after a new session"""
        return [self._executor.submit(self._write, record) for record in list(self.records.values())]

    def _write(self, record: PresenceRecord) -> None:
        try:
            self.connection.write_ephemeral(record.node_path, record.to_json())
            record.written_at = datetime.now().isoformat()
        except SessionError:
            logger.error("Cannot create presence node: %s", record.node_path, exc_info=True)

    def cluster_hosts(self, resource_path: str) -> Optional[List[str]]:
        """Hosts of every process currently present under a resource"""
        try:
            children = self.connection.get_children(resource_path)
        except Exception:
            logger.error("Failed to list cluster hosts under %s", resource_path, exc_info=True)
            return None
        return [name.split("_", 1)[0] for name in children]

    def close(self) -> None:
        self._executor.shutdown(wait=True)
