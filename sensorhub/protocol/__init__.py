"""Protocol helper utilities for sensorhub."""

from .codec import DecodeError, decode_alarm, decode_command_response, encode_command
from .structures import (
    AlarmEvent,
    AlarmState,
    Command,
    CommandResponse,
    ConnectionState,
    TopicAddress,
)
from .topics import command_topic, parse_topic, subscriptions, topic_path
from . import codec, structures, topics

__all__ = [
    "AlarmEvent",
    "AlarmState",
    "Command",
    "CommandResponse",
    "ConnectionState",
    "DecodeError",
    "TopicAddress",
    "command_topic",
    "decode_alarm",
    "decode_command_response",
    "encode_command",
    "parse_topic",
    "subscriptions",
    "topic_path",
    "codec",
    "structures",
    "topics",
]
