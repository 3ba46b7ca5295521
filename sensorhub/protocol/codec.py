"""JSON codec for sensor hub payloads."""

from __future__ import annotations

import msgspec

from .structures import AlarmPayload, Command, CommandRequest, CommandResponse

_ALARM_DECODER = msgspec.json.Decoder(AlarmPayload, strict=False)
_RESPONSE_DECODER = msgspec.json.Decoder(CommandResponse, strict=False)
_ENCODER = msgspec.json.Encoder()


class DecodeError(ValueError):
    """Raised when an inbound payload does not match its expected schema."""


def _as_bytes(payload: str | bytes | bytearray | memoryview) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)


def encode_command(command: Command | str, source: str) -> bytes:
    """Serialize an outbound ``{"command", "source"}`` request."""
    try:
        resolved = Command(command)
    except ValueError as exc:
        raise ValueError(f"unsupported command: {command!r}") from exc
    return _ENCODER.encode(CommandRequest(command=resolved, source=source))


def decode_alarm(payload: str | bytes) -> AlarmPayload:
    try:
        return _ALARM_DECODER.decode(_as_bytes(payload))
    except msgspec.DecodeError as exc:
        raise DecodeError(f"malformed alarm payload: {exc}") from exc


def decode_command_response(payload: str | bytes) -> CommandResponse:
    try:
        return _RESPONSE_DECODER.decode(_as_bytes(payload))
    except msgspec.DecodeError as exc:
        raise DecodeError(f"malformed command response: {exc}") from exc


__all__ = [
    "DecodeError",
    "encode_command",
    "decode_alarm",
    "decode_command_response",
]
