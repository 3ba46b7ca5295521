"""Outbound commands to sensor nodes."""

from __future__ import annotations

import asyncio
import logging

from ..const import DEFAULT_COMMAND_SOURCE, DEFAULT_TOPIC_ROOT
from ..protocol import codec, topics
from ..protocol.structures import Command, CommandResponse
from ..state.broadcaster import EventObserver
from ..transport.mqtt import ConnectionManager

logger = logging.getLogger("sensorhub.commands")


class PublishError(RuntimeError):
    """A command could not be handed to the broker."""


async def send_command(
    manager: ConnectionManager,
    device: str,
    command: Command | str,
    *,
    topic_root: str = DEFAULT_TOPIC_ROOT,
    source: str = DEFAULT_COMMAND_SOURCE,
) -> str:
    """Publish *command* to ``<root>/<device>/cmd`` and return the topic.

    Raises ValueError for an unknown command or device name, and
    PublishError when the manager did not send the message.
    """
    payload = codec.encode_command(command, source)
    topic = topics.command_topic(topic_root, device)
    if not await manager.publish(topic, payload):
        raise PublishError(f"failed to send {Command(command).value} to {device}")
    logger.info("Sent %s command to %s.", Command(command).value, device)
    return topic


class CommandResponseWaiter(EventObserver):
    """Resolve once the next command response arrives.

    With *device* set, replies from other nodes are ignored.
    """

    def __init__(self, device: str | None = None) -> None:
        self.device = device
        self._future: asyncio.Future[CommandResponse] = asyncio.get_running_loop().create_future()

    def on_command_response(self, response: CommandResponse) -> None:
        if self.device is not None and response.device != self.device:
            return
        if not self._future.done():
            self._future.set_result(response)

    async def wait(self, timeout: float) -> CommandResponse:
        """Raises TimeoutError when no response arrives in *timeout* seconds."""
        async with asyncio.timeout(timeout):
            return await asyncio.shield(self._future)


__all__ = ["PublishError", "send_command", "CommandResponseWaiter"]
