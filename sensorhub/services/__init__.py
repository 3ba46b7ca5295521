"""Services layered on top of the connection manager."""

from .commands import CommandResponseWaiter, PublishError, send_command
from .notifications import LoggingNotifier
from .task_supervisor import SupervisedTaskSpec, supervise_task

__all__ = [
    "CommandResponseWaiter",
    "LoggingNotifier",
    "PublishError",
    "SupervisedTaskSpec",
    "send_command",
    "supervise_task",
]
