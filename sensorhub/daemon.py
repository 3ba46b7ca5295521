#!/usr/bin/env python3
"""Async orchestrator for the sensor hub daemon.

Architecture:
    main() -> SensorHubDaemon -> TaskGroup
        ├── mqtt-link (ConnectionManager, self-reconnecting)
        ├── status-writer (status_writer)
        ├── prometheus-exporter (optional)
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import NoReturn

import uvloop

from sensorhub.config.logging import configure_logging
from sensorhub.config.settings import RuntimeConfig, load_runtime_config
from sensorhub.config.store import JsonSettingsStore, SettingsStore
from sensorhub.metrics import PrometheusExporter
from sensorhub.router.routers import TopicRouter
from sensorhub.services.notifications import LoggingNotifier
from sensorhub.services.task_supervisor import SupervisedTaskSpec, supervise_task
from sensorhub.state.broadcaster import StatusBroadcaster
from sensorhub.state.context import RuntimeState
from sensorhub.state.status import cleanup_status_file, status_writer
from sensorhub.transport.mqtt import ConnectionManager

logger = logging.getLogger("sensorhub")

SUPERVISOR_STATUS_MAX_BACKOFF = 10.0


class SensorHubDaemon:
    """Wire the connection manager to its observers and reporters.

    The manager owns broker reconnection itself; the supervisor only keeps
    its host task and the reporting loops alive.
    """

    def __init__(self, config: RuntimeConfig, store: SettingsStore | None = None) -> None:
        self.config = config
        self.state = RuntimeState()
        self.store = store if store is not None else JsonSettingsStore(config.settings_path)
        self.broadcaster = StatusBroadcaster()
        self.broadcaster.register(self.state.tracker)
        self.broadcaster.register(LoggingNotifier())
        self.router = TopicRouter(self.broadcaster, topic_root=config.topic_root, stats=self.state.link)
        self.manager = ConnectionManager(
            self.store,
            self.broadcaster,
            self.router,
            topic_root=config.topic_root,
            tls_material=config.tls_material,
            reconnect_delay=config.reconnect_delay,
            stats=self.state.link,
        )
        self.exporter: PrometheusExporter | None = None

    async def _run_mqtt_link(self) -> None:
        self.manager.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.manager.shutdown()

    async def _run_status_writer(self) -> None:
        await status_writer(self.state, self.config.status_file, self.config.status_interval)

    def _setup_supervision(self) -> list[SupervisedTaskSpec]:
        specs = [
            SupervisedTaskSpec(name="mqtt-link", factory=self._run_mqtt_link),
            SupervisedTaskSpec(
                name="status-writer",
                factory=self._run_status_writer,
                max_restarts=5,
                max_backoff=SUPERVISOR_STATUS_MAX_BACKOFF,
            ),
        ]
        if self.config.metrics_enabled:
            self.exporter = PrometheusExporter(self.state, self.config.metrics_host, self.config.metrics_port)
            specs.append(
                SupervisedTaskSpec(
                    name="prometheus-exporter",
                    factory=self.exporter.run,
                    max_restarts=5,
                )
            )
        return specs

    async def run(self) -> None:
        """Main async entry point; returns once cancelled."""
        specs = self._setup_supervision()
        try:
            async with asyncio.TaskGroup() as task_group:
                for spec in specs:
                    task_group.create_task(supervise_task(spec, state=self.state), name=spec.name)
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical("Unhandled exception in main task group: %s", group_exc, exc_info=group_exc)
            raise
        finally:
            cleanup_status_file(self.config.status_file)
            logger.info("Sensor hub daemon stopped.")


async def _run_until_signalled(daemon: SensorHubDaemon) -> None:
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    assert main_task is not None
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, main_task.cancel)
    try:
        await daemon.run()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)


def main() -> NoReturn:  # pragma: no cover
    try:
        config = load_runtime_config()
    except RuntimeError as exc:
        print(f"sensorhub: {exc}", file=sys.stderr)
        sys.exit(1)
    configure_logging(config)
    logger.info("Starting sensor hub daemon. Topic root: %s", config.topic_root)

    try:
        asyncio.run(_run_until_signalled(SensorHubDaemon(config)), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
