"""Connection settings and host runtime configuration.

Two layers of configuration exist:

* :class:`ConnectionSettings` is the user-editable broker record kept in the
  settings store. It is immutable and replaced wholesale on save; the
  connection manager re-reads it on every connect attempt.
* :class:`RuntimeConfig` describes the host process itself (where the
  settings file and TLS material live, the topic root, logging, metrics).
  It is loaded once at startup from an optional TOML file.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import msgspec
from marshmallow import ValidationError

from ..const import (
    DEFAULT_COMMAND_SOURCE,
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_KEEP_ALIVE,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MQTT_CLIENT_ID,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_RUNTIME_CONFIG_PATH,
    DEFAULT_SETTINGS_PATH,
    DEFAULT_STATUS_FILE_PATH,
    DEFAULT_STATUS_INTERVAL,
    DEFAULT_TOPIC_ROOT,
    DEFAULT_USE_SECURE_TRANSPORT,
    RECONNECT_DELAY_SECONDS,
)
from ..protocol.topics import normalize_root
from ..security.identity import TlsMaterial

logger = logging.getLogger(__name__)

DEFAULT_CA_BUNDLE_PATH = "/etc/sensorhub/bundle.pem"
DEFAULT_CLIENT_CERT_PATH = "/etc/sensorhub/client.crt"
DEFAULT_CLIENT_KEY_PATH = "/etc/sensorhub/client.key"


class ConnectionSettings(msgspec.Struct, frozen=True):
    """Broker connection record; equality is full value equality."""

    host: str = DEFAULT_MQTT_HOST
    port: int = DEFAULT_MQTT_PORT
    client_id: str = DEFAULT_MQTT_CLIENT_ID
    username: str = ""
    password: str = ""
    use_secure_transport: bool = DEFAULT_USE_SECURE_TRANSPORT
    connection_timeout_seconds: int = DEFAULT_CONNECTION_TIMEOUT
    keep_alive_seconds: int = DEFAULT_KEEP_ALIVE

    def __post_init__(self) -> None:
        if not self.host.strip():
            raise ValueError("host must not be empty")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be within 1-65535, got {self.port}")
        if not self.client_id.strip():
            raise ValueError("client_id must not be empty")

    @property
    def scheme(self) -> str:
        return "ssl" if self.use_secure_transport else "tcp"

    @property
    def broker_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the host process."""

    settings_path: str = DEFAULT_SETTINGS_PATH
    topic_root: str = DEFAULT_TOPIC_ROOT
    ca_bundle_path: str | None = DEFAULT_CA_BUNDLE_PATH
    client_cert_path: str | None = DEFAULT_CLIENT_CERT_PATH
    client_key_path: str | None = DEFAULT_CLIENT_KEY_PATH
    reconnect_delay: float = RECONNECT_DELAY_SECONDS
    command_source: str = DEFAULT_COMMAND_SOURCE
    status_file: str = DEFAULT_STATUS_FILE_PATH
    status_interval: int = DEFAULT_STATUS_INTERVAL
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT

    def __post_init__(self) -> None:
        self.topic_root = normalize_root(self.topic_root)
        self.ca_bundle_path = self.ca_bundle_path or None
        self.client_cert_path = self.client_cert_path or None
        self.client_key_path = self.client_key_path or None
        if self.reconnect_delay <= 0:
            raise ValueError("reconnect_delay must be positive")
        if self.status_interval <= 0:
            raise ValueError("status_interval must be positive")
        if bool(self.client_cert_path) != bool(self.client_key_path):
            raise ValueError("client_cert_path and client_key_path must be set together")
        if self.ca_bundle_path is None:
            logger.warning("No CA bundle configured; secure broker connections will be refused.")

    def tls_material(self) -> TlsMaterial:
        """Read TLS material from disk; called once per secure connect attempt."""
        if self.ca_bundle_path is None:
            raise FileNotFoundError("no CA bundle configured (ca_bundle_path)")
        return TlsMaterial.from_files(
            self.ca_bundle_path,
            self.client_cert_path,
            self.client_key_path,
        )


def load_runtime_config(path: str | Path = DEFAULT_RUNTIME_CONFIG_PATH) -> RuntimeConfig:
    """Load RuntimeConfig from a TOML file, falling back to defaults.

    A missing file yields defaults. A file that exists but does not parse or
    validate raises RuntimeError so the daemon refuses to start half
    configured.
    """
    from .schema import RuntimeConfigSchema

    config_path = Path(path)
    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as handle:
                raw = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise RuntimeError(f"Cannot read runtime config {config_path}: {exc}") from exc
    else:
        logger.info("Runtime config %s not found; using defaults.", config_path)

    try:
        return RuntimeConfigSchema().load(raw.get("sensorhub", raw))
    except (ValidationError, ValueError) as exc:
        raise RuntimeError(f"Invalid runtime config {config_path}: {exc}") from exc


__all__ = [
    "ConnectionSettings",
    "RuntimeConfig",
    "load_runtime_config",
    "DEFAULT_CA_BUNDLE_PATH",
    "DEFAULT_CLIENT_CERT_PATH",
    "DEFAULT_CLIENT_KEY_PATH",
]
