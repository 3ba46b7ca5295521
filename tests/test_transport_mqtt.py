"""Tests for sensorhub.transport.mqtt.ConnectionManager."""

from __future__ import annotations

import asyncio
import ssl

import aiomqtt
import pytest

from sensorhub.config.settings import ConnectionSettings
from sensorhub.config.store import MemorySettingsStore
from sensorhub.protocol.structures import AlarmEvent, AlarmState, ConnectionState
from sensorhub.security.identity import TlsMaterial
from sensorhub.state.broadcaster import EventObserver
from sensorhub.transport.mqtt import ConnectionManager


def _manager(store, broadcaster, factory, **kwargs) -> ConnectionManager:
    kwargs.setdefault("reconnect_delay", 60.0)
    return ConnectionManager(store, broadcaster, client_factory=factory, **kwargs)


@pytest.mark.asyncio
async def test_start_connects_and_subscribes(memory_store, broadcaster, recorder, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    client = fake_factory.last
    assert client.subscriptions == [("sensor_hub/+/alarm/+", 1), ("sensor_hub/+/cmd/response", 1)]
    assert client.kwargs["hostname"] == "broker.local"
    assert client.kwargs["port"] == 1883
    assert client.kwargs["identifier"] == "android_home_security"
    assert client.kwargs["clean_session"] is True
    assert client.kwargs["tls_context"] is None
    assert client.kwargs["keepalive"] == 20
    assert client.kwargs["timeout"] == 10.0
    assert manager.connection_state is ConnectionState.CONNECTED
    assert recorder.statuses == [True]

    await manager.shutdown()
    assert client.exited is True
    assert recorder.statuses == [True, False]
    assert manager.connection_state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_start_is_idempotent(memory_store, broadcaster, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    manager.start()
    await wait_for(lambda: manager.is_connected)
    manager.start()

    assert len(fake_factory.instances) == 1
    await manager.shutdown()


@pytest.mark.asyncio
async def test_inbound_messages_reach_observers_in_order(
    memory_store, broadcaster, recorder, fake_factory, wait_for
) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    client = fake_factory.last
    client.feed("sensor_hub/pico/alarm/armed", b'{"state": "disarmed"}')
    client.feed("sensor_hub/pico/alarm/triggered", b"intruder")
    client.feed("sensor_hub/pico/cmd/response", b'{"status":"ok","message":"m","command":"arm","timestamp":1}')
    await wait_for(lambda: len(recorder.responses) == 1)

    assert [event.state for event in recorder.alarms] == [AlarmState.ARMED, AlarmState.TRIGGERED]
    assert recorder.alarms[1].raw_message == "intruder"
    assert manager.stats.messages_received == 3
    await manager.shutdown()


@pytest.mark.asyncio
async def test_publish_while_disconnected_sends_nothing(memory_store, broadcaster, fake_factory) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)

    assert await manager.publish("sensor_hub/pico/cmd", b"{}") is False
    assert fake_factory.instances == []
    assert manager.stats.publish_failures == 1


@pytest.mark.asyncio
async def test_publish_while_connected_uses_qos1(memory_store, broadcaster, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    assert await manager.publish("sensor_hub/pico/cmd", b'{"command":"arm"}') is True
    assert fake_factory.last.published == [("sensor_hub/pico/cmd", b'{"command":"arm"}', 1)]
    await manager.shutdown()


@pytest.mark.asyncio
async def test_publish_failure_is_reported_not_retried(memory_store, broadcaster, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)
    fake_factory.publish_error = aiomqtt.MqttError("broken pipe")

    assert await manager.publish("sensor_hub/pico/cmd", b"{}") is False
    assert manager.stats.publish_failures == 1
    assert fake_factory.last.published == []
    await manager.shutdown()


@pytest.mark.asyncio
async def test_connection_loss_schedules_single_reconnect(
    memory_store, broadcaster, recorder, fake_factory, wait_for
) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    manager.handle_connection_lost(aiomqtt.MqttError("lost"))
    manager.handle_connection_lost(aiomqtt.MqttError("lost again"))

    assert manager.reconnect_pending is True
    assert manager.stats.reconnects_scheduled == 1
    assert manager.connection_state is ConnectionState.DISCONNECTED
    assert recorder.statuses == [True, False]
    await manager.shutdown()
    assert manager.reconnect_pending is False


@pytest.mark.asyncio
async def test_loss_after_stop_does_not_reconnect(memory_store, broadcaster, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory, reconnect_delay=0.01)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    await manager.shutdown()
    manager.handle_connection_lost(aiomqtt.MqttError("late callback"))
    await asyncio.sleep(0.05)

    assert manager.reconnect_pending is False
    assert manager.stats.reconnects_scheduled == 0
    assert len(fake_factory.instances) == 1


@pytest.mark.asyncio
async def test_dropped_session_reconnects_after_delay(
    memory_store, broadcaster, recorder, fake_factory, wait_for
) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory, reconnect_delay=0.01)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    fake_factory.last.drop()
    await wait_for(lambda: len(fake_factory.instances) == 2 and manager.is_connected)

    assert recorder.statuses == [True, False, True]
    assert manager.stats.connection_losses == 1
    assert manager.stats.connects == 2
    await manager.shutdown()


class _IndexErrorObserver(EventObserver):
    def on_alarm_event(self, event: AlarmEvent) -> None:
        raise IndexError("observer bug")


class _FlakyRouter:
    def __init__(self) -> None:
        self.routed: list[str] = []

    def route(self, topic: str, payload: str) -> None:
        self.routed.append(topic)
        if len(self.routed) == 1:
            raise ZeroDivisionError("router bug")


@pytest.mark.asyncio
async def test_observer_error_keeps_session_alive(memory_store, broadcaster, recorder, fake_factory, wait_for) -> None:
    broadcaster.unregister(recorder)
    broadcaster.register(_IndexErrorObserver())
    broadcaster.register(recorder)
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    fake_factory.last.feed("sensor_hub/pico/alarm/triggered", b"{}")
    fake_factory.last.feed("sensor_hub/pico/alarm/armed", b"{}")
    await wait_for(lambda: len(recorder.alarms) == 2)

    assert manager.is_connected
    assert manager._session_task is not None and not manager._session_task.done()
    assert recorder.statuses == [True]
    await manager.shutdown()


@pytest.mark.asyncio
async def test_routing_error_skips_only_that_message(memory_store, broadcaster, fake_factory, wait_for) -> None:
    router = _FlakyRouter()
    manager = ConnectionManager(memory_store, broadcaster, router, client_factory=fake_factory, reconnect_delay=60.0)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    fake_factory.last.feed("sensor_hub/pico/alarm/triggered", b"{}")
    fake_factory.last.feed("sensor_hub/pico/alarm/armed", b"{}")
    await wait_for(lambda: len(router.routed) == 2)

    assert manager.is_connected
    await manager.shutdown()


@pytest.mark.asyncio
async def test_unexpected_session_error_disconnects_and_reconnects(
    memory_store, broadcaster, recorder, fake_factory, wait_for
) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory, reconnect_delay=0.01)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    fake_factory.last.drop(ZeroDivisionError("client bug"))
    await wait_for(lambda: len(fake_factory.instances) == 2 and manager.is_connected)

    assert recorder.statuses == [True, False, True]
    assert manager.stats.connection_losses == 1
    assert "ZeroDivisionError" in (manager.stats.last_error or "")
    await manager.shutdown()


@pytest.mark.asyncio
async def test_connect_failure_notifies_and_retries(memory_store, broadcaster, recorder, fake_factory, wait_for) -> None:
    fake_factory.connect_error = aiomqtt.MqttError("connection refused")
    manager = _manager(memory_store, broadcaster, fake_factory, reconnect_delay=0.01)
    manager.start()

    await wait_for(lambda: len(fake_factory.instances) >= 2)
    fake_factory.connect_error = None
    await wait_for(lambda: manager.is_connected)

    assert recorder.statuses[-1] is True
    assert False in recorder.statuses
    assert "connection refused" in (manager.stats.last_error or "")
    await manager.shutdown()


@pytest.mark.asyncio
async def test_settings_are_reread_on_every_connect(memory_store, broadcaster, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory, reconnect_delay=0.01)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    memory_store.save(ConnectionSettings(host="standby.local", port=1884, use_secure_transport=False))
    fake_factory.last.drop()
    await wait_for(lambda: len(fake_factory.instances) == 2 and manager.is_connected)

    assert fake_factory.last.kwargs["hostname"] == "standby.local"
    assert manager.active_settings.port == 1884
    await manager.shutdown()


@pytest.mark.asyncio
async def test_update_settings_with_equal_value_is_noop(
    memory_store, plain_settings, broadcaster, fake_factory, wait_for
) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    assert manager.update_settings(ConnectionSettings(host="broker.local", port=1883, use_secure_transport=False)) is False
    assert manager.update_settings(plain_settings) is False

    assert len(fake_factory.instances) == 1
    assert memory_store.saves == 0
    await manager.shutdown()


@pytest.mark.asyncio
async def test_update_settings_reconnects_once(memory_store, broadcaster, recorder, fake_factory, wait_for) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    new_settings = ConnectionSettings(host="new.local", port=1883, use_secure_transport=False, username="hub")
    assert manager.update_settings(new_settings) is True
    assert manager.update_settings(new_settings) is False
    await wait_for(lambda: len(fake_factory.instances) == 2 and manager.is_connected)

    assert memory_store.load() == new_settings
    assert memory_store.saves == 1
    assert fake_factory.instances[0].exited is True
    assert fake_factory.last.kwargs["hostname"] == "new.local"
    assert fake_factory.last.kwargs["username"] == "hub"
    await manager.shutdown()


@pytest.mark.asyncio
async def test_update_settings_while_stopped_only_saves(memory_store, broadcaster, fake_factory) -> None:
    manager = _manager(memory_store, broadcaster, fake_factory)

    assert manager.update_settings(ConnectionSettings(host="other.local", use_secure_transport=False)) is True
    await asyncio.sleep(0)

    assert fake_factory.instances == []
    assert memory_store.load().host == "other.local"


@pytest.mark.asyncio
async def test_secure_transport_without_material_retries(broadcaster, fake_factory, wait_for) -> None:
    store = MemorySettingsStore(ConnectionSettings(host="broker.local", use_secure_transport=True))
    manager = _manager(store, broadcaster, fake_factory)
    manager.start()

    await wait_for(lambda: manager.reconnect_pending)

    assert fake_factory.instances == []
    assert manager.connection_state is ConnectionState.DISCONNECTED
    assert "IdentityError" in (manager.stats.last_error or "")
    await manager.shutdown()


@pytest.mark.asyncio
async def test_secure_transport_passes_tls_context(broadcaster, fake_factory, wait_for, tls_material) -> None:
    store = MemorySettingsStore(ConnectionSettings(host="broker.local", use_secure_transport=True))
    material = TlsMaterial(
        ca_bundle=tls_material.ca_pem,
        client_cert=tls_material.client_cert_pem,
        client_key=tls_material.client_key_pkcs1,
    )
    manager = _manager(store, broadcaster, fake_factory, tls_material=lambda: material)
    manager.start()
    await wait_for(lambda: manager.is_connected)

    assert isinstance(fake_factory.last.kwargs["tls_context"], ssl.SSLContext)
    await manager.shutdown()


@pytest.mark.asyncio
async def test_missing_tls_files_are_retried(broadcaster, fake_factory, wait_for) -> None:
    store = MemorySettingsStore(ConnectionSettings(host="broker.local", use_secure_transport=True))

    def _missing() -> TlsMaterial:
        raise FileNotFoundError("bundle.pem")

    manager = _manager(store, broadcaster, fake_factory, tls_material=_missing)
    manager.start()

    await wait_for(lambda: manager.reconnect_pending)

    assert fake_factory.instances == []
    await manager.shutdown()
