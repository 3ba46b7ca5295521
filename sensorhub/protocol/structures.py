"""Sensor Hub data structures.

SINGLE SOURCE OF TRUTH for the domain types exchanged between the
connection manager, the topic router and observers.
"""

from __future__ import annotations

import time
from enum import Enum

import msgspec


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ConnectionState(Enum):
    """Broker connection lifecycle owned by the connection manager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class AlarmState(str, Enum):
    ARMED = "armed"
    DISARMED = "disarmed"
    TRIGGERED = "triggered"
    UNKNOWN = "unknown"

    @classmethod
    def from_action(cls, action: str | None) -> AlarmState:
        """Map a topic action segment onto a known state."""
        if not action:
            return cls.UNKNOWN
        try:
            return cls(action.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class Command(str, Enum):
    """Commands a sensor node accepts on ``<root>/<device>/cmd``."""

    ARM = "arm"
    DISARM = "disarm"
    RESET = "reset"
    STATUS = "status"


# --- Wire payloads ---


class AlarmPayload(msgspec.Struct, frozen=True):
    """Best-effort alarm body published by sensor nodes."""

    triggered_by: str | None = None
    timestamp: int | None = None
    state: str | None = None
    message: str | None = None


class CommandRequest(msgspec.Struct, frozen=True):
    command: Command
    source: str


# --- Domain events ---


class AlarmEvent(msgspec.Struct, frozen=True):
    """Alarm notification produced by the topic router.

    ``state`` always comes from the topic action, and ``action`` keeps the
    segment as published so unrecognised actions stay visible.
    ``raw_message`` carries the payload ``message`` field, or the raw payload
    text when it did not decode.
    """

    timestamp: int
    state: AlarmState = AlarmState.UNKNOWN
    device: str | None = None
    action: str | None = None
    triggered_by: str | None = None
    raw_message: str | None = None


class CommandResponse(msgspec.Struct, frozen=True):
    """Reply a sensor node publishes on ``<root>/<device>/cmd/response``.

    ``device`` is filled in by the router from the topic.
    """

    status: str
    message: str
    command: str
    timestamp: int
    device: str | None = None


class TopicAddress(msgspec.Struct, frozen=True):
    """Parsed ``<root>/<device>/<category>/<action>`` topic."""

    raw: str
    root: str
    device: str
    category: str
    action: str


__all__ = [
    "now_millis",
    "ConnectionState",
    "AlarmState",
    "Command",
    "AlarmPayload",
    "CommandRequest",
    "AlarmEvent",
    "CommandResponse",
    "TopicAddress",
]
