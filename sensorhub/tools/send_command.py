"""Send one command to a sensor node, or inspect the stored settings.

Connects with the stored connection settings, waits for the broker link,
publishes ``{"command", "source"}`` to ``<root>/<device>/cmd`` and
optionally waits for the node's command response.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import msgspec

from sensorhub.config.schema import ConnectionSettingsSchema
from sensorhub.config.settings import RuntimeConfig, load_runtime_config
from sensorhub.config.store import JsonSettingsStore, SettingsStore
from sensorhub.const import DEFAULT_COMMAND_RESPONSE_TIMEOUT, DEFAULT_RUNTIME_CONFIG_PATH
from sensorhub.protocol.structures import Command
from sensorhub.services.commands import CommandResponseWaiter, PublishError, send_command
from sensorhub.state.broadcaster import EventObserver, StatusBroadcaster
from sensorhub.transport.mqtt import ConnectionManager


class _ConnectionWatcher(EventObserver):
    def __init__(self) -> None:
        self.connected = asyncio.Event()

    def on_connection_status_changed(self, connected: bool) -> None:
        if connected:
            self.connected.set()
        else:
            self.connected.clear()


def _positive_float(value: str) -> float:
    candidate = float(value)
    if candidate <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return candidate


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send a command to a sensor hub node.")
    parser.add_argument("device", nargs="?", help="Device name, e.g. pico_w_1.")
    parser.add_argument(
        "command",
        nargs="?",
        choices=[command.value for command in Command],
        help="Command to send.",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_RUNTIME_CONFIG_PATH,
        help=f"Runtime config file (default: {DEFAULT_RUNTIME_CONFIG_PATH}).",
    )
    parser.add_argument("--settings", help="Override the connection settings file.")
    parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait for the node's command response before exiting.",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=DEFAULT_COMMAND_RESPONSE_TIMEOUT,
        help=(
            "Seconds to wait for the broker connection and, with --wait, "
            f"for the response (default: {DEFAULT_COMMAND_RESPONSE_TIMEOUT:g})."
        ),
    )
    settings_group = parser.add_mutually_exclusive_group()
    settings_group.add_argument(
        "--show-settings",
        action="store_true",
        help="Print the stored connection settings (password masked) and exit.",
    )
    settings_group.add_argument(
        "--reset-settings",
        action="store_true",
        help="Restore default connection settings and exit.",
    )
    return parser


def _show_settings(store: SettingsStore) -> None:
    payload = ConnectionSettingsSchema().dump(store.load())
    if payload.get("mqtt_password"):
        payload["mqtt_password"] = "********"
    print(msgspec.json.format(msgspec.json.encode(payload), indent=2).decode("utf-8"))


async def _send(
    config: RuntimeConfig,
    store: SettingsStore,
    device: str,
    command: Command,
    *,
    wait: bool,
    timeout: float,
) -> int:
    broadcaster = StatusBroadcaster()
    watcher = _ConnectionWatcher()
    waiter = CommandResponseWaiter(device)
    broadcaster.register(watcher)
    broadcaster.register(waiter)

    manager = ConnectionManager(
        store,
        broadcaster,
        topic_root=config.topic_root,
        tls_material=config.tls_material,
        reconnect_delay=config.reconnect_delay,
    )
    manager.start()
    try:
        try:
            async with asyncio.timeout(timeout):
                await watcher.connected.wait()
        except TimeoutError:
            print(f"Could not connect to {manager.active_settings.broker_url}", file=sys.stderr)
            return 1

        try:
            topic = await send_command(
                manager,
                device,
                command,
                topic_root=config.topic_root,
                source=config.command_source,
            )
        except PublishError as exc:
            print(f"Failed to send command: {exc}", file=sys.stderr)
            return 1
        print(f"{command.value.capitalize()} command sent to {topic}")

        if wait:
            try:
                response = await waiter.wait(timeout)
            except TimeoutError:
                print("No command response before timeout", file=sys.stderr)
                return 1
            print(f"{response.command}: {response.status} - {response.message}")
        return 0
    finally:
        await manager.shutdown()


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = load_runtime_config(args.config)
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    store = JsonSettingsStore(args.settings or config.settings_path)

    if args.show_settings:
        _show_settings(store)
        return 0
    if args.reset_settings:
        store.reset_to_defaults()
        print(f"Connection settings reset in {store.path}")
        return 0

    if not args.device or not args.command:
        parser.error("device and command are required")

    try:
        return asyncio.run(
            _send(
                config,
                store,
                args.device,
                Command(args.command),
                wait=args.wait,
                timeout=args.timeout,
            )
        )
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
