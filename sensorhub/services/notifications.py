"""Notification presenter that renders events as log records."""

from __future__ import annotations

import logging

from ..protocol.structures import AlarmEvent, AlarmState, CommandResponse
from ..state.broadcaster import EventObserver

logger = logging.getLogger("sensorhub.notifications")

STATUS_CONNECTED = "Connected to security system"
STATUS_DISCONNECTED = "Disconnected - Retrying..."


def alarm_title(event: AlarmEvent) -> str:
    match event.state:
        case AlarmState.TRIGGERED:
            return "ALARM TRIGGERED!"
        case AlarmState.ARMED:
            return "System Armed"
        case AlarmState.DISARMED:
            return "System Disarmed"
        case _:
            return "Security Alert"


def alarm_text(event: AlarmEvent) -> str:
    match event.state:
        case AlarmState.TRIGGERED:
            if event.triggered_by:
                return f"Triggered by: {event.triggered_by}"
            return "Security alarm has been triggered"
        case AlarmState.ARMED:
            return "Security system is now armed and monitoring"
        case AlarmState.DISARMED:
            return "Security system has been disarmed"
        case _:
            if event.raw_message:
                return event.raw_message
            if event.action:
                return f"Security system reported: {event.action}"
            return "Security system state changed"


class LoggingNotifier(EventObserver):
    """Present alarms and link status the way the phone showed them."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def on_connection_status_changed(self, connected: bool) -> None:
        self.log.info(STATUS_CONNECTED if connected else STATUS_DISCONNECTED)

    def on_alarm_event(self, event: AlarmEvent) -> None:
        level = logging.CRITICAL if event.state is AlarmState.TRIGGERED else logging.WARNING
        self.log.log(
            level,
            "%s: %s",
            alarm_title(event),
            alarm_text(event),
            extra={
                "device": event.device,
                "alarm_state": event.state,
                "alarm_action": event.action,
                "event_timestamp": event.timestamp,
            },
        )

    def on_command_response(self, response: CommandResponse) -> None:
        self.log.info(
            "Command %s on %s: %s (%s)",
            response.command,
            response.device,
            response.status,
            response.message,
        )


__all__ = ["LoggingNotifier", "alarm_title", "alarm_text", "STATUS_CONNECTED", "STATUS_DISCONNECTED"]
