"""Runtime state shared by the connection manager, router and reporters."""

from __future__ import annotations

import time
from typing import Any

import msgspec

from .devices import DeviceStatusTracker


class LinkStats(msgspec.Struct):
    """Mutable counters describing the broker link since process start."""

    connect_attempts: int = 0
    connects: int = 0
    connection_losses: int = 0
    reconnects_scheduled: int = 0
    messages_received: int = 0
    alarms_routed: int = 0
    alarm_fallbacks: int = 0
    command_responses: int = 0
    messages_dropped: int = 0
    publishes: int = 0
    publish_failures: int = 0
    last_error: str | None = None
    last_connected_unix: float | None = None

    def record_error(self, exc: BaseException) -> None:
        self.last_error = f"{type(exc).__name__}: {exc}"

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class SupervisorStats(msgspec.Struct):
    """Task supervisor statistics."""

    restarts: int = 0
    last_failure_unix: float = 0.0
    last_exception: str | None = None
    backoff_seconds: float = 0.0
    fatal: bool = False

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class RuntimeState:
    """Everything the status file and the metrics exporter report on."""

    def __init__(self, tracker: DeviceStatusTracker | None = None) -> None:
        self.link = LinkStats()
        self.tracker = tracker if tracker is not None else DeviceStatusTracker()
        self.supervisor_stats: dict[str, SupervisorStats] = {}
        self.started_unix = time.time()

    def record_supervisor_failure(
        self,
        name: str,
        *,
        backoff: float,
        exc: BaseException,
        fatal: bool = False,
    ) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            stats = SupervisorStats()
            self.supervisor_stats[name] = stats
        stats.restarts += 1
        stats.last_failure_unix = time.time()
        stats.last_exception = f"{exc.__class__.__name__}: {exc}"
        stats.backoff_seconds = backoff
        stats.fatal = fatal

    def mark_supervisor_healthy(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            return
        stats.backoff_seconds = 0.0
        stats.fatal = False

    def build_status_snapshot(self) -> dict[str, Any]:
        tracked = self.tracker.snapshot()
        return {
            "connected": tracked["connected"],
            "devices": tracked["devices"],
            "link": self.link.as_dict(),
            "supervisors": {name: stats.as_dict() for name, stats in self.supervisor_stats.items()},
            "uptime_seconds": max(0.0, time.time() - self.started_unix),
        }


__all__ = ["LinkStats", "SupervisorStats", "RuntimeState"]
