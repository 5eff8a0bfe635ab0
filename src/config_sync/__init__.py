"""Configuration Sync Client"""

from .bindings import Binding, BindingRegistry, DeliveryReport
from .config_service import ConfigService
from .connection import ConnectionState, ResilientConnection
from .diff import ChangeSet, DiffEngine
from .errors import (
    BootstrapUnavailable,
    ConfigSyncError,
    DeliveryFailure,
    DownloadFailure,
    ResolutionFailure,
    SessionError,
    SessionExpired,
)
from .properties_file import PropertiesFile, load_properties
from .resolver import ValueResolver
from .snapshot import ResourceHandle, ResourceKind, Snapshot
from .watcher import ConfigWatcher

__version__ = "0.1.0"
__all__ = [
    "Binding",
    "BindingRegistry",
    "BootstrapUnavailable",
    "ChangeSet",
    "ConfigService",
    "ConfigSyncError",
    "ConfigWatcher",
    "ConnectionState",
    "DeliveryFailure",
    "DeliveryReport",
    "DiffEngine",
    "DownloadFailure",
    "PropertiesFile",
    "ResilientConnection",
    "ResolutionFailure",
    "ResourceHandle",
    "ResourceKind",
    "SessionError",
    "SessionExpired",
    "Snapshot",
    "ValueResolver",
    "load_properties",
]
