"""Persistence of the user-editable connection settings."""

from __future__ import annotations

import abc
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile

import msgspec
from marshmallow import ValidationError

from ..const import DEFAULT_SETTINGS_PATH
from .schema import ConnectionSettingsSchema
from .settings import ConnectionSettings

logger = logging.getLogger("sensorhub.settings")


class SettingsStore(abc.ABC):
    """Source of truth for :class:`ConnectionSettings`.

    ``load`` never fails: a store that cannot produce a valid record falls
    back to the defaults so the connection manager can always attempt a
    connect.
    """

    @abc.abstractmethod
    def load(self) -> ConnectionSettings: ...

    @abc.abstractmethod
    def save(self, settings: ConnectionSettings) -> None: ...

    def reset_to_defaults(self) -> ConnectionSettings:
        defaults = ConnectionSettings()
        self.save(defaults)
        return defaults


class MemorySettingsStore(SettingsStore):
    def __init__(self, settings: ConnectionSettings | None = None) -> None:
        self._settings = settings if settings is not None else ConnectionSettings()
        self.saves = 0

    def load(self) -> ConnectionSettings:
        return self._settings

    def save(self, settings: ConnectionSettings) -> None:
        self._settings = settings
        self.saves += 1


class JsonSettingsStore(SettingsStore):
    """Settings kept as a flat JSON object on disk.

    Writes go through a temporary file in the same directory followed by a
    rename, so readers never observe a partially written record.
    """

    def __init__(self, path: str | Path = DEFAULT_SETTINGS_PATH) -> None:
        self.path = Path(path)
        self._schema = ConnectionSettingsSchema()

    def load(self) -> ConnectionSettings:
        try:
            raw = msgspec.json.decode(self.path.read_bytes())
        except FileNotFoundError:
            logger.info("Settings file %s not found; using defaults.", self.path)
            return ConnectionSettings()
        except (OSError, msgspec.DecodeError) as exc:
            logger.warning("Cannot read settings file %s (%s); using defaults.", self.path, exc)
            return ConnectionSettings()

        if not isinstance(raw, dict):
            logger.warning("Settings file %s does not hold an object; using defaults.", self.path)
            return ConnectionSettings()

        try:
            return self._schema.load(raw)
        except (ValidationError, ValueError) as exc:
            logger.warning("Settings file %s is invalid (%s); using defaults.", self.path, exc)
            return ConnectionSettings()

    def save(self, settings: ConnectionSettings) -> None:
        payload = self._schema.dump(settings)
        # Round-trip through the schema so out-of-range values never hit disk.
        self._schema.load(payload)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile("wb", dir=self.path.parent, delete=False) as handle:
            handle.write(msgspec.json.encode(payload))
            temp_name = handle.name
        Path(temp_name).replace(self.path)
        logger.info("Saved connection settings for %s.", settings.broker_url)


__all__ = ["SettingsStore", "MemorySettingsStore", "JsonSettingsStore"]
