"""Marshmallow schemas for persisted settings and runtime configuration."""

from __future__ import annotations

from typing import Any

from marshmallow import EXCLUDE, Schema, fields, post_load, validate, validates_schema, ValidationError

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
    DEFAULT_SETTINGS_PATH,
    DEFAULT_STATUS_FILE_PATH,
    DEFAULT_STATUS_INTERVAL,
    DEFAULT_TOPIC_ROOT,
    DEFAULT_USE_SECURE_TRANSPORT,
    MAX_CONNECTION_TIMEOUT,
    MAX_KEEP_ALIVE,
    MIN_CONNECTION_TIMEOUT,
    MIN_KEEP_ALIVE,
    RECONNECT_DELAY_SECONDS,
)
from .settings import (
    DEFAULT_CA_BUNDLE_PATH,
    DEFAULT_CLIENT_CERT_PATH,
    DEFAULT_CLIENT_KEY_PATH,
    ConnectionSettings,
    RuntimeConfig,
)


class ConnectionSettingsSchema(Schema):
    """Persisted layout of ConnectionSettings.

    Keys keep the names the mobile client used in its preference store.
    """

    class Meta:
        unknown = EXCLUDE

    host = fields.Str(data_key="mqtt_host", load_default=DEFAULT_MQTT_HOST, validate=validate.Length(min=1))
    port = fields.Int(
        data_key="mqtt_port",
        load_default=DEFAULT_MQTT_PORT,
        validate=validate.Range(min=1, max=65535),
    )
    client_id = fields.Str(
        data_key="mqtt_client_id",
        load_default=DEFAULT_MQTT_CLIENT_ID,
        validate=validate.Length(min=1),
    )
    username = fields.Str(data_key="mqtt_username", load_default="")
    password = fields.Str(data_key="mqtt_password", load_default="")
    use_secure_transport = fields.Bool(data_key="use_ssl", load_default=DEFAULT_USE_SECURE_TRANSPORT)
    connection_timeout_seconds = fields.Int(
        data_key="connection_timeout",
        load_default=DEFAULT_CONNECTION_TIMEOUT,
        validate=validate.Range(min=MIN_CONNECTION_TIMEOUT, max=MAX_CONNECTION_TIMEOUT),
    )
    keep_alive_seconds = fields.Int(
        data_key="keep_alive_interval",
        load_default=DEFAULT_KEEP_ALIVE,
        validate=validate.Range(min=MIN_KEEP_ALIVE, max=MAX_KEEP_ALIVE),
    )

    @post_load
    def make_settings(self, data: dict[str, Any], **kwargs: Any) -> ConnectionSettings:
        return ConnectionSettings(**data)


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for the host runtime configuration."""

    class Meta:
        unknown = EXCLUDE

    settings_path = fields.Str(load_default=DEFAULT_SETTINGS_PATH, validate=validate.Length(min=1))
    topic_root = fields.Str(load_default=DEFAULT_TOPIC_ROOT, validate=validate.Length(min=1))
    ca_bundle_path = fields.Str(load_default=DEFAULT_CA_BUNDLE_PATH, allow_none=True)
    client_cert_path = fields.Str(load_default=DEFAULT_CLIENT_CERT_PATH, allow_none=True)
    client_key_path = fields.Str(load_default=DEFAULT_CLIENT_KEY_PATH, allow_none=True)
    reconnect_delay = fields.Float(load_default=RECONNECT_DELAY_SECONDS, validate=validate.Range(min=0.1))
    command_source = fields.Str(load_default=DEFAULT_COMMAND_SOURCE, validate=validate.Length(min=1))
    status_file = fields.Str(load_default=DEFAULT_STATUS_FILE_PATH, validate=validate.Length(min=1))
    status_interval = fields.Int(load_default=DEFAULT_STATUS_INTERVAL, validate=validate.Range(min=1))
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    metrics_enabled = fields.Bool(load_default=DEFAULT_METRICS_ENABLED)
    metrics_host = fields.Str(load_default=DEFAULT_METRICS_HOST)
    metrics_port = fields.Int(load_default=DEFAULT_METRICS_PORT, validate=validate.Range(min=0, max=65535))

    @validates_schema
    def validate_client_identity(self, data: dict[str, Any], **kwargs: Any) -> None:
        cert = data.get("client_cert_path")
        key = data.get("client_key_path")
        if bool(cert) != bool(key):
            raise ValidationError(
                "client_cert_path and client_key_path must be set together",
                "client_key_path",
            )

    @post_load
    def make_config(self, data: dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        return RuntimeConfig(**data)


__all__ = ["ConnectionSettingsSchema", "RuntimeConfigSchema"]
