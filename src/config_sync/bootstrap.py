"""Bootstrap discovery file and configuration server HTTP calls"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlencode

import httpx
import yaml

from .errors import BootstrapUnavailable, DownloadFailure
from .properties_file import read_properties
from .snapshot import ResourceHandle

logger = logging.getLogger(__name__)

BOOTSTRAP_FILENAME = "disconf.properties"
YAML_BOOTSTRAP_FILENAMES = ("disconf.yaml", "disconf.yml")
HOME_ENV = "CONFIG_SYNC_HOME"


@dataclass
class BootstrapSettings:
    """Where to find the configuration server and which configuration to use"""
    conf_server_host: str
    version: str = ""
    env: str = ""
    download_dir: Optional[str] = None


def locate_bootstrap_file(app_name: str) -> Path:
    """Resolve the bootstrap file for an application

    ``$CONFIG_SYNC_HOME/appconfig/<app>/disconf.properties`` when the
    variable is set, otherwise ``disconf.properties`` in the working
    directory. A YAML file with the same stem is used when the properties
    file does not exist.
    """

    home = os.environ.get(HOME_ENV)
    logger.info("%s = %s", HOME_ENV, home)
    if home:
        base = Path(home) / "appconfig" / app_name
    else:
        base = Path.cwd()

    candidate = base / BOOTSTRAP_FILENAME
    if not candidate.exists():
        for name in YAML_BOOTSTRAP_FILENAMES:
            if (base / name).exists():
                return base / name
    return candidate


def load_bootstrap(path: Union[str, Path]) -> BootstrapSettings:
    """Read bootstrap settings

    Raises:
        BootstrapUnavailable: file missing, unreadable or without a server host
    """

    path = Path(path)
    try:
        if path.suffix in (".yaml", ".yml"):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            data = read_properties(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise BootstrapUnavailable(f"Cannot read bootstrap file {path}: {e}") from e

    if not isinstance(data, dict) or not data.get("conf_server_host"):
        raise BootstrapUnavailable(f"No conf_server_host in bootstrap file {path}")

    download_dir = data.get("user_define_download_dir")
    return BootstrapSettings(
        conf_server_host=str(data["conf_server_host"]),
        version=str(data.get("version", "")),
        env=str(data.get("env", "")),
        download_dir=str(download_dir) if download_dir else None,
    )


class ConfServerClient:
    """HTTP client for host discovery and configuration file downloads"""

    def __init__(self, settings: BootstrapSettings, app_name: str,
                 client: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.settings = settings
        self.app_name = app_name
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def base_url(self) -> str:
        host = self.settings.conf_server_host.rstrip("/")
        if host.startswith("http"):
            return host
        return f"http://{host}"

    def node_path(self, item: str) -> str:
        """Coordination-service node holding a configuration item"""
        s = self.settings
        return f"/disconf/{self.app_name}_{s.version}_{s.env}/file/{item}"

    def file_url(self, item: str) -> str:
        query = urlencode({
            "type": 0,
            "app": self.app_name,
            "version": self.settings.version,
            "env": self.settings.env,
            "key": item,
        })
        return f"{self.base_url}/api/config/file?{query}"

    def fetch_zookeeper_hosts(self) -> str:
        """Ask the configuration server for the coordination-service host list

        Raises:
            BootstrapUnavailable: server unreachable or answer malformed
        """

        url = f"{self.base_url}/api/zoo/hosts"
        try:
            response = self._client.get(url)
            response.raise_for_status()
            hosts = response.json().get("value")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            raise BootstrapUnavailable(f"Host discovery failed at {url}: {e}") from e

        if not hosts:
            raise BootstrapUnavailable(f"Host discovery at {url} returned no hosts")
        logger.info("Coordination hosts: %s", hosts)
        return hosts

    def fetch(self, handle: ResourceHandle) -> bytes:
        """Download the full content of a resource

        Raises:
            DownloadFailure: request failed or returned no content
        """

        url = handle.source_url or self.file_url(handle.name)
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DownloadFailure(handle.path, str(e)) from e

        if not response.content:
            raise DownloadFailure(handle.path, "empty content")
        return response.content

    def close(self) -> None:
        self._client.close()
