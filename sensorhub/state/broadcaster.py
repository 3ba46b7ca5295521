"""Fan-out of connection status and domain events to observers."""

from __future__ import annotations

import logging

from ..protocol.structures import AlarmEvent, CommandResponse

logger = logging.getLogger("sensorhub.broadcaster")

class EventObserver:
    """Base observer; override only the hooks you care about."""

    def on_connection_status_changed(self, connected: bool) -> None:
        return None

    def on_alarm_event(self, event: AlarmEvent) -> None:
        return None

    def on_command_response(self, response: CommandResponse) -> None:
        return None


class StatusBroadcaster:
    """Ordered observer registry.

    Every registered observer receives every event, in registration order.
    A failing observer is logged and skipped so the others still see the
    event.
    """

    def __init__(self) -> None:
        self._observers: list[EventObserver] = []

    @property
    def observers(self) -> tuple[EventObserver, ...]:
        return tuple(self._observers)

    def register(self, observer: EventObserver) -> None:
        if observer in self._observers:
            logger.debug("Observer %r already registered.", observer)
            return
        self._observers.append(observer)

    def unregister(self, observer: EventObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            logger.debug("Observer %r was not registered.", observer)

    def connection_status_changed(self, connected: bool) -> None:
        for observer in tuple(self._observers):
            try:
                observer.on_connection_status_changed(connected)
            except Exception:
                logger.exception("Observer %r failed handling connection status.", observer)

    def alarm_event(self, event: AlarmEvent) -> None:
        for observer in tuple(self._observers):
            try:
                observer.on_alarm_event(event)
            except Exception:
                logger.exception("Observer %r failed handling alarm event.", observer)

    def command_response(self, response: CommandResponse) -> None:
        for observer in tuple(self._observers):
            try:
                observer.on_command_response(response)
            except Exception:
                logger.exception("Observer %r failed handling command response.", observer)


__all__ = ["EventObserver", "StatusBroadcaster"]
