"""Shared constants for sensorhub components."""

from __future__ import annotations

from ssl import TLSVersion
from typing import Final

# Connection defaults, matching the values the mobile client shipped with.
DEFAULT_MQTT_HOST: Final[str] = "192.168.1.100"
DEFAULT_MQTT_PORT: Final[int] = 8883
DEFAULT_MQTT_CLIENT_ID: Final[str] = "android_home_security"
DEFAULT_USE_SECURE_TRANSPORT: Final[bool] = True
DEFAULT_CONNECTION_TIMEOUT: Final[int] = 10
DEFAULT_KEEP_ALIVE: Final[int] = 20

MIN_CONNECTION_TIMEOUT: Final[int] = 5
MAX_CONNECTION_TIMEOUT: Final[int] = 60
MIN_KEEP_ALIVE: Final[int] = 10
MAX_KEEP_ALIVE: Final[int] = 300

DEFAULT_TOPIC_ROOT: Final[str] = "sensor_hub"
DEFAULT_COMMAND_SOURCE: Final[str] = "android_app"
MQTT_QOS: Final[int] = 1
MQTT_TLS_MIN_VERSION: Final[TLSVersion] = TLSVersion.TLSv1_2

RECONNECT_DELAY_SECONDS: Final[float] = 5.0

DEFAULT_SETTINGS_PATH: Final[str] = "/etc/sensorhub/settings.json"
DEFAULT_RUNTIME_CONFIG_PATH: Final[str] = "/etc/sensorhub/sensorhub.toml"
DEFAULT_STATUS_FILE_PATH: Final[str] = "/tmp/sensorhub_status.json"
DEFAULT_STATUS_INTERVAL: Final[int] = 5
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9130
DEFAULT_COMMAND_RESPONSE_TIMEOUT: Final[float] = 10.0

SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 1.0
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_DEFAULT_RESTART_INTERVAL: Final[float] = 60.0
SUPERVISOR_MIN_RESTART_WINDOW: Final[float] = 10.0

__all__ = [
    "DEFAULT_MQTT_HOST",
    "DEFAULT_MQTT_PORT",
    "DEFAULT_MQTT_CLIENT_ID",
    "DEFAULT_USE_SECURE_TRANSPORT",
    "DEFAULT_CONNECTION_TIMEOUT",
    "DEFAULT_KEEP_ALIVE",
    "MIN_CONNECTION_TIMEOUT",
    "MAX_CONNECTION_TIMEOUT",
    "MIN_KEEP_ALIVE",
    "MAX_KEEP_ALIVE",
    "DEFAULT_TOPIC_ROOT",
    "DEFAULT_COMMAND_SOURCE",
    "MQTT_QOS",
    "MQTT_TLS_MIN_VERSION",
    "RECONNECT_DELAY_SECONDS",
    "DEFAULT_SETTINGS_PATH",
    "DEFAULT_RUNTIME_CONFIG_PATH",
    "DEFAULT_STATUS_FILE_PATH",
    "DEFAULT_STATUS_INTERVAL",
    "DEFAULT_DEBUG_LOGGING",
    "DEFAULT_METRICS_ENABLED",
    "DEFAULT_METRICS_HOST",
    "DEFAULT_METRICS_PORT",
    "DEFAULT_COMMAND_RESPONSE_TIMEOUT",
    "SUPERVISOR_DEFAULT_MIN_BACKOFF",
    "SUPERVISOR_DEFAULT_MAX_BACKOFF",
    "SUPERVISOR_DEFAULT_RESTART_INTERVAL",
    "SUPERVISOR_MIN_RESTART_WINDOW",
]
