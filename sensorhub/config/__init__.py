"""Configuration: connection settings, runtime config and logging."""

from .schema import ConnectionSettingsSchema, RuntimeConfigSchema
from .settings import ConnectionSettings, RuntimeConfig, load_runtime_config
from .store import JsonSettingsStore, MemorySettingsStore, SettingsStore

__all__ = [
    "ConnectionSettings",
    "ConnectionSettingsSchema",
    "JsonSettingsStore",
    "MemorySettingsStore",
    "RuntimeConfig",
    "RuntimeConfigSchema",
    "SettingsStore",
    "load_runtime_config",
]
