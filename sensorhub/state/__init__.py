"""Observer registry, counters and derived device status."""

from .broadcaster import EventObserver, StatusBroadcaster
from .context import LinkStats, RuntimeState, SupervisorStats
from .devices import DeviceStatus, DeviceStatusTracker

__all__ = [
    "EventObserver",
    "StatusBroadcaster",
    "LinkStats",
    "RuntimeState",
    "SupervisorStats",
    "DeviceStatus",
    "DeviceStatusTracker",
]
