"""Broker connection manager for the sensor hub daemon."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import aiomqtt
from transitions import Machine

from ..config.settings import ConnectionSettings
from ..config.store import SettingsStore
from ..const import DEFAULT_TOPIC_ROOT, MQTT_QOS, RECONNECT_DELAY_SECONDS
from ..protocol import topics
from ..protocol.structures import ConnectionState
from ..router.routers import TopicRouter
from ..security.identity import IdentityError, TlsMaterial, build_from_material
from ..state.broadcaster import StatusBroadcaster
from ..state.context import LinkStats

logger = logging.getLogger("sensorhub.mqtt")

_CONNECT_ERRORS = (aiomqtt.MqttError, OSError, TimeoutError)


def _payload_text(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload).decode("utf-8", errors="replace")
    return str(payload)


class ConnectionManager:
    """Own the broker connection and its reconnection timer.

    ``start``, ``stop`` and ``update_settings`` only issue requests: the
    connect, TLS handshake and subscribe sequence runs in a session task on
    the event loop, and its failures reach observers through the
    broadcaster. After any loss while running, exactly one reconnect is
    scheduled after a fixed delay; a pending timer absorbs further losses.
    """

    def __init__(
        self,
        store: SettingsStore,
        broadcaster: StatusBroadcaster,
        router: TopicRouter | None = None,
        *,
        topic_root: str = DEFAULT_TOPIC_ROOT,
        tls_material: Callable[[], TlsMaterial] | None = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        client_factory: Callable[..., Any] = aiomqtt.Client,
        stats: LinkStats | None = None,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.topic_root = topics.normalize_root(topic_root)
        self.stats = stats if stats is not None else LinkStats()
        self.router = router or TopicRouter(broadcaster, topic_root=self.topic_root, stats=self.stats)
        self.reconnect_delay = reconnect_delay
        self._tls_material = tls_material
        self._client_factory = client_factory

        self._running = False
        self._client: Any | None = None
        self._session_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._active_settings: ConnectionSettings | None = None

        self.connection_state = ConnectionState.DISCONNECTED
        self.machine = Machine(
            model=self,
            states=ConnectionState,
            initial=ConnectionState.DISCONNECTED,
            model_attribute="connection_state",
            auto_transitions=False,
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition(
            "begin_connect",
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING,
        )
        self.machine.add_transition(
            "connection_established",
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            after="_announce_connected",
        )
        self.machine.add_transition(
            "connection_dropped",
            [ConnectionState.CONNECTING, ConnectionState.CONNECTED],
            ConnectionState.DISCONNECTED,
            after="_announce_disconnected",
        )

    # --- Properties ---

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self.connection_state is ConnectionState.CONNECTED and self._client is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def active_settings(self) -> ConnectionSettings:
        """Settings used by the current session, or the stored ones when idle."""
        if self._active_settings is None:
            return self.store.load()
        return self._active_settings

    # --- Lifecycle ---

    def start(self) -> None:
        if self._running:
            logger.debug("Connection manager already running.")
            return
        self._running = True
        logger.info("Connection manager starting.")
        self._launch_session()

    def stop(self) -> None:
        was_running = self._running
        self._running = False
        self._cancel_reconnect()

        task = self._session_task
        self._session_task = None
        if task is not None and not task.done():
            task.cancel()
        self._client = None
        self.connection_dropped()
        if was_running:
            logger.info("Connection manager stopped.")

    async def shutdown(self) -> None:
        """Stop and wait until the session task has released the socket."""
        task = self._session_task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def update_settings(self, settings: ConnectionSettings) -> bool:
        """Persist *settings* and reconnect with them.

        Returns False without side effects when *settings* equal the active
        ones. A stopped manager only saves; the next ``start`` uses them.
        """
        if settings == self.active_settings:
            logger.debug("Settings unchanged; not reconnecting.")
            return False

        self.store.save(settings)
        self._active_settings = settings
        if self._running:
            logger.info("Settings changed; reconnecting to %s.", settings.broker_url)
            self.stop()
            self.start()
        return True

    def handle_connection_lost(self, exc: BaseException | None = None) -> None:
        """Transport-level loss notification.

        Ignored once the manager is stopped, so a late callback racing with
        ``stop`` cannot resurrect the reconnect loop.
        """
        if not self._running:
            logger.debug("Connection loss after stop ignored.")
            return
        if exc is not None:
            self.stats.record_error(exc)
        self.stats.connection_losses += 1
        self.connection_dropped()
        self._schedule_reconnect()

    # --- Publishing ---

    async def publish(self, topic: str, payload: str | bytes) -> bool:
        """Send *payload* at QoS 1; returns False when nothing was sent."""
        client = self._client
        if client is None or self.connection_state is not ConnectionState.CONNECTED:
            logger.warning("Cannot publish to %s: not connected to broker.", topic)
            self.stats.publish_failures += 1
            return False
        try:
            await client.publish(topic, payload, qos=MQTT_QOS)
        except _CONNECT_ERRORS as exc:
            logger.error("Publish to %s failed: %s", topic, exc)
            self.stats.publish_failures += 1
            self.stats.record_error(exc)
            return False
        self.stats.publishes += 1
        logger.debug("Published to %s.", topic)
        return True

    # --- Reconnect timer ---

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            logger.debug("Reconnect already pending; not scheduling another.")
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._fire_reconnect)
        self.stats.reconnects_scheduled += 1
        logger.info("Reconnecting in %.1f seconds.", self.reconnect_delay)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if not self._running:
            return
        previous = self._session_task
        if previous is not None and not previous.done():
            previous.cancel()
        self._client = None
        logger.info("Attempting reconnect.")
        self._launch_session()

    # --- Session ---

    def _launch_session(self) -> None:
        loop = asyncio.get_running_loop()
        self._session_task = loop.create_task(self._run_session(), name="sensorhub-mqtt-session")

    async def _run_session(self) -> None:
        settings = self.store.load()
        self._active_settings = settings
        self.stats.connect_attempts += 1
        self.begin_connect()
        logger.info("Connecting to %s as %s.", settings.broker_url, settings.client_id)

        failure: BaseException | None = None
        try:
            await self._connect_and_listen(settings)
            logger.warning("Broker message stream ended.")
        except IdentityError as exc:
            logger.error("TLS identity rejected: %s", exc)
            failure = exc
        except _CONNECT_ERRORS as exc:
            logger.warning("Broker connection to %s failed: %s", settings.broker_url, exc)
            failure = exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error in broker session.")
            failure = exc
        self.handle_connection_lost(failure)

    def _build_tls_context(self, settings: ConnectionSettings) -> Any:
        if not settings.use_secure_transport:
            return None
        if self._tls_material is None:
            raise IdentityError("secure transport requested but no TLS material is configured")
        transport = build_from_material(self._tls_material())
        logger.debug(
            "TLS context ready (%d CA certificates, client identity: %s).",
            transport.ca_count,
            transport.has_client_identity,
        )
        return transport.ssl_context

    async def _connect_and_listen(self, settings: ConnectionSettings) -> None:
        tls_context = self._build_tls_context(settings)
        if not settings.has_credentials:
            logger.warning("Connecting to broker without authentication (anonymous).")

        async with self._client_factory(
            hostname=settings.host,
            port=settings.port,
            identifier=settings.client_id,
            username=settings.username or None,
            password=settings.password or None,
            tls_context=tls_context,
            clean_session=True,
            keepalive=settings.keep_alive_seconds,
            timeout=float(settings.connection_timeout_seconds),
            protocol=aiomqtt.ProtocolVersion.V311,
            logger=logging.getLogger("sensorhub.mqtt.client"),
        ) as client:
            try:
                for pattern in topics.subscriptions(self.topic_root):
                    await client.subscribe(pattern, qos=MQTT_QOS)
                logger.info("Subscribed to %s.", ", ".join(topics.subscriptions(self.topic_root)))

                self._client = client
                self.connection_established()
                await self._dispatch_messages(client)
            finally:
                if self._client is client:
                    self._client = None

    async def _dispatch_messages(self, client: Any) -> None:
        async for message in client.messages:
            topic = str(message.topic)
            self.stats.messages_received += 1
            try:
                self.router.route(topic, _payload_text(message.payload))
            except Exception:
                logger.exception("Error processing message on %s.", topic)

    # --- FSM callbacks ---

    def _announce_connected(self) -> None:
        self.stats.connects += 1
        self.stats.last_connected_unix = time.time()
        logger.info("Connected to broker.")
        self.broadcaster.connection_status_changed(True)

    def _announce_disconnected(self) -> None:
        logger.info("Disconnected from broker.")
        self.broadcaster.connection_status_changed(False)


__all__ = ["ConnectionManager"]
