"""Pytest configuration for sensorhub tests."""

from __future__ import annotations

import asyncio
import datetime
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import aiomqtt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from sensorhub.config.settings import ConnectionSettings
from sensorhub.config.store import MemorySettingsStore
from sensorhub.protocol.structures import AlarmEvent, CommandResponse
from sensorhub.state.broadcaster import EventObserver, StatusBroadcaster


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove root handlers installed by a test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if type(handler).__name__ == "LogCaptureHandler":
            continue
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


# --- Observers ---


class RecordingObserver(EventObserver):
    def __init__(self) -> None:
        self.statuses: list[bool] = []
        self.alarms: list[AlarmEvent] = []
        self.responses: list[CommandResponse] = []

    def on_connection_status_changed(self, connected: bool) -> None:
        self.statuses.append(connected)

    def on_alarm_event(self, event: AlarmEvent) -> None:
        self.alarms.append(event)

    def on_command_response(self, response: CommandResponse) -> None:
        self.responses.append(response)


@pytest.fixture()
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture()
def broadcaster(recorder: RecordingObserver) -> StatusBroadcaster:
    hub = StatusBroadcaster()
    hub.register(recorder)
    return hub


@pytest.fixture()
def plain_settings() -> ConnectionSettings:
    return ConnectionSettings(host="broker.local", port=1883, use_secure_transport=False)


@pytest.fixture()
def memory_store(plain_settings: ConnectionSettings) -> MemorySettingsStore:
    return MemorySettingsStore(plain_settings)


# --- Fake aiomqtt client ---

_DROP = object()


class FakeClient:
    """Stand-in for aiomqtt.Client driven by the test through a queue."""

    def __init__(self, factory: FakeClientFactory, **kwargs: Any) -> None:
        self.factory = factory
        self.kwargs = kwargs
        self.subscriptions: list[tuple[str, int]] = []
        self.published: list[tuple[str, Any, int]] = []
        self.exited = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    async def __aenter__(self) -> FakeClient:
        if self.factory.connect_error is not None:
            raise self.factory.connect_error
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.exited = True

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append((topic, qos))

    async def publish(self, topic: str, payload: Any = None, qos: int = 0) -> None:
        if self.factory.publish_error is not None:
            raise self.factory.publish_error
        self.published.append((topic, payload, qos))
        if self.factory.on_publish is not None:
            self.factory.on_publish(self, topic, payload)

    def feed(self, topic: str, payload: str | bytes) -> None:
        self._queue.put_nowait(SimpleNamespace(topic=topic, payload=payload))

    def drop(self, error: BaseException | None = None) -> None:
        self._queue.put_nowait(error if error is not None else _DROP)

    @property
    def messages(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._queue.get()
            if item is _DROP:
                raise aiomqtt.MqttError("connection lost")
            if isinstance(item, BaseException):
                raise item
            yield item


@dataclass
class FakeClientFactory:
    connect_error: BaseException | None = None
    publish_error: BaseException | None = None
    on_publish: Callable[[FakeClient, str, Any], None] | None = None

    def __post_init__(self) -> None:
        self.instances: list[FakeClient] = []

    def __call__(self, **kwargs: Any) -> FakeClient:
        client = FakeClient(self, **kwargs)
        self.instances.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.instances[-1]


@pytest.fixture()
def fake_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture()
def wait_for() -> Callable[..., Any]:
    async def _wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.001)

    return _wait_for


# --- TLS material ---


@dataclass(frozen=True)
class TlsFixture:
    ca_pem: bytes
    other_ca_pem: bytes
    client_cert_pem: bytes
    client_key_pkcs8: bytes
    client_key_pkcs1: bytes
    stray_key_pkcs8: bytes


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _certificate(
    subject: str,
    public_key: Any,
    issuer: str,
    signing_key: Any,
    *,
    ca: bool,
) -> x509.Certificate:
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(_name(issuer))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(signing_key, hashes.SHA256())
    )


def _pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def _key_pem(key: Any, key_format: serialization.PrivateFormat) -> bytes:
    return key.private_bytes(serialization.Encoding.PEM, key_format, serialization.NoEncryption())


@pytest.fixture(scope="session")
def tls_material() -> TlsFixture:
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_cert = _certificate("Sensor Hub Test CA", ca_key.public_key(), "Sensor Hub Test CA", ca_key, ca=True)
    other_key = ec.generate_private_key(ec.SECP256R1())
    other_cert = _certificate("Other CA", other_key.public_key(), "Other CA", other_key, ca=True)

    client_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    client_cert = _certificate("android_home_security", client_key.public_key(), "Sensor Hub Test CA", ca_key, ca=False)
    stray_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    return TlsFixture(
        ca_pem=_pem(ca_cert),
        other_ca_pem=_pem(other_cert),
        client_cert_pem=_pem(client_cert),
        client_key_pkcs8=_key_pem(client_key, serialization.PrivateFormat.PKCS8),
        client_key_pkcs1=_key_pem(client_key, serialization.PrivateFormat.TraditionalOpenSSL),
        stray_key_pkcs8=_key_pem(stray_key, serialization.PrivateFormat.PKCS8),
    )
