"""Configuration snapshots and remote resource handles"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, Optional


class Snapshot(Mapping):
    """Immutable, ordered view of every configuration key at one point in time"""

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping] = None):
        self._data: Dict[str, str] = dict(data or {})

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @classmethod
    def merged(cls, *sources: Mapping) -> "Snapshot":
        """Build a snapshot from several sources, later sources winning"""
        data: Dict[str, str] = {}
        for source in sources:
            if source:
                data.update(source)
        return cls(data)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Snapshot({self._data!r})"


class ResourceKind(str, Enum):
    PROPERTIES = "properties"
    OPAQUE_FILE = "opaque-file"

    @classmethod
    def for_path(cls, path: str) -> "ResourceKind":
        return cls.PROPERTIES if path.endswith(".properties") else cls.OPAQUE_FILE


@dataclass(frozen=True)
class ResourceHandle:
    """One monitored remote configuration resource"""
    path: str
    kind: ResourceKind
    cache_path: Path
    source_url: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def is_properties(self) -> bool:
        return self.kind is ResourceKind.PROPERTIES
