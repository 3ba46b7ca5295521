"""Per-device status derived from observed broker traffic."""

from __future__ import annotations

from typing import Any

import msgspec

from ..protocol.structures import AlarmEvent, AlarmState, CommandResponse
from .broadcaster import EventObserver


class DeviceStatus(msgspec.Struct):
    device: str
    state: AlarmState = AlarmState.UNKNOWN
    last_action: str | None = None
    triggered_by: str | None = None
    last_event_ms: int | None = None
    last_message: str | None = None
    last_command: str | None = None
    last_command_status: str | None = None
    last_command_ms: int | None = None


class DeviceStatusTracker(EventObserver):
    """Keep the latest alarm state and command reply seen for each device."""

    def __init__(self) -> None:
        self.connected = False
        self._devices: dict[str, DeviceStatus] = {}

    def on_connection_status_changed(self, connected: bool) -> None:
        self.connected = connected

    def on_alarm_event(self, event: AlarmEvent) -> None:
        if not event.device:
            return
        status = self._status_for(event.device)
        status.state = event.state
        status.last_action = event.action
        status.triggered_by = event.triggered_by
        status.last_event_ms = event.timestamp
        status.last_message = event.raw_message

    def on_command_response(self, response: CommandResponse) -> None:
        if not response.device:
            return
        status = self._status_for(response.device)
        status.last_command = response.command
        status.last_command_status = response.status
        status.last_command_ms = response.timestamp

    def get(self, device: str) -> DeviceStatus | None:
        return self._devices.get(device)

    def devices(self) -> tuple[str, ...]:
        return tuple(sorted(self._devices))

    def snapshot(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "devices": {name: msgspec.structs.asdict(status) for name, status in sorted(self._devices.items())},
        }

    def _status_for(self, device: str) -> DeviceStatus:
        status = self._devices.get(device)
        if status is None:
            status = DeviceStatus(device=device)
            self._devices[device] = status
        return status


__all__ = ["DeviceStatus", "DeviceStatusTracker"]
