"""Prometheus exporter for sensor hub runtime state."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterator
from enum import Enum
from typing import Any, cast

import msgspec
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from .state.context import RuntimeState

logger = logging.getLogger("sensorhub.metrics")

_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_]")
_INFO_METRIC = "sensorhub_info"
_GAUGE_DOC = "Sensor hub auto-generated metric"
_INFO_DOC = "Sensor hub informational metric"


class RuntimeStateCollector(Collector):
    """Project RuntimeState status snapshots onto gauges and one info metric."""

    def __init__(self, state: RuntimeState) -> None:
        self._state = state

    def collect(self) -> Iterator[Any]:
        snapshot = self._state.build_status_snapshot()

        info_values: list[tuple[str, str]] = []
        for metric_type, name, value in self._flatten("sensorhub", snapshot):
            if metric_type == "gauge":
                metric = GaugeMetricFamily(_sanitize_metric_name(name), _GAUGE_DOC)
                metric.add_metric((), value)
                yield metric
            else:
                info_values.append((name, value))
        if info_values:
            info_metric = InfoMetricFamily(_INFO_METRIC, _INFO_DOC, labels=("key",))
            for key, value in info_values:
                info_metric.add_metric((key,), {"value": value})
            yield info_metric

    def _flatten(self, prefix: str, value: Any) -> Iterator[tuple[str, str, Any]]:
        if isinstance(value, msgspec.Struct):
            yield from self._flatten(prefix, msgspec.structs.asdict(value))
            return
        if isinstance(value, dict):
            typed_dict = cast(dict[Any, Any], value)
            for raw_key, sub_value in typed_dict.items():
                key = raw_key if isinstance(raw_key, str) else str(raw_key)
                next_prefix = f"{prefix}_{key}" if prefix else key
                yield from self._flatten(next_prefix, sub_value)
            return
        if isinstance(value, Enum):
            yield ("info", prefix, str(value.value))
            return
        if isinstance(value, bool):
            yield ("gauge", prefix, 1.0 if value else 0.0)
            return
        if isinstance(value, (int, float)):
            yield ("gauge", prefix, float(value))
            return
        if value is None:
            yield ("info", prefix, "null")
            return
        yield ("info", prefix, str(value))


class PrometheusExporter:
    """Serve the Prometheus text format over a minimal asyncio HTTP server."""

    def __init__(self, state: RuntimeState, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._resolved_port: int | None = None
        self._registry = CollectorRegistry()
        self._registry.register(RuntimeStateCollector(state))

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._handle_client, host=self._host, port=self._port)
        sockets = self._server.sockets or []
        if sockets:
            sockname = sockets[0].getsockname()
            if isinstance(sockname, tuple) and len(sockname) >= 2 and isinstance(sockname[1], int):
                self._resolved_port = sockname[1]
        logger.info("Prometheus exporter listening", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return
            parts = request_line.decode("ascii", errors="ignore").split()
            if len(parts) < 2:
                await self._write_response(writer, 400, b"")
                return
            method, path = parts[0], parts[1]
            while True:
                line = await reader.readline()
                if not line or line in {b"\r\n", b"\n"}:
                    break
            if method != "GET" or path not in {"/metrics", "/"}:
                await self._write_response(writer, 404, b"")
                return
            await self._write_response(writer, 200, self.render(), content_type=CONTENT_TYPE_LATEST)
        except (OSError, ValueError, IndexError) as exc:
            logger.warning("Prometheus client request error: %s", exc)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, RuntimeError):
                logger.debug("Error closing metrics client connection", exc_info=True)

    async def _write_response(
        self,
        writer: asyncio.StreamWriter,
        status: int,
        body: bytes,
        *,
        content_type: str = "text/plain; charset=utf-8",
    ) -> None:
        phrases = {200: "OK", 400: "Bad Request", 404: "Not Found"}
        status_line = f"HTTP/1.1 {status} {phrases.get(status, 'Error')}\r\n"
        headers = f"Content-Type: {content_type}\r\n" f"Content-Length: {len(body)}\r\n" "Connection: close\r\n\r\n"
        writer.write(status_line.encode("ascii") + headers.encode("ascii") + body)
        await writer.drain()

    def render(self) -> bytes:
        return generate_latest(self._registry)


def _sanitize_metric_name(name: str) -> str:
    cleaned = _SANITIZE_RE.sub("_", name.lower())
    cleaned = cleaned.strip("_") or "sensorhub_metric"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


__all__ = ["PrometheusExporter", "RuntimeStateCollector"]
