"""MQTT topic helpers shared across sensorhub components.

This module is the SINGLE SOURCE OF TRUTH for MQTT topic structures.
Avoid hardcoding topic strings elsewhere.
"""

from __future__ import annotations

from typing import Final

import aiomqtt

from ..const import DEFAULT_TOPIC_ROOT
from .structures import TopicAddress

ALARM_CATEGORY: Final[str] = "alarm"
COMMAND_CATEGORY: Final[str] = "cmd"
RESPONSE_ACTION: Final[str] = "response"
SINGLE_LEVEL_WILDCARD: Final[str] = "+"
MIN_ADDRESS_SEGMENTS: Final[int] = 4


def _split_segments(path: str) -> tuple[str, ...]:
    if not path:
        return ()
    return tuple(segment for segment in path.split("/") if segment)


def normalize_root(root: str) -> str:
    """Strip stray slashes so ``/sensor_hub/`` and ``sensor_hub`` agree."""
    segments = _split_segments(root)
    if not segments:
        raise ValueError("topic root cannot be empty")
    return "/".join(segments)


def topic_path(root: str, *segments: str) -> str:
    """Join the root and sub-segments into a topic path."""
    parts = list(_split_segments(root))
    for segment in segments:
        cleaned = segment.strip("/")
        if cleaned:
            parts.append(cleaned)
    return "/".join(parts)


def alarm_subscription(root: str = DEFAULT_TOPIC_ROOT) -> str:
    """e.g. sensor_hub/+/alarm/+"""
    return topic_path(root, SINGLE_LEVEL_WILDCARD, ALARM_CATEGORY, SINGLE_LEVEL_WILDCARD)


def command_response_subscription(root: str = DEFAULT_TOPIC_ROOT) -> str:
    """e.g. sensor_hub/+/cmd/response"""
    return topic_path(root, SINGLE_LEVEL_WILDCARD, COMMAND_CATEGORY, RESPONSE_ACTION)


def subscriptions(root: str = DEFAULT_TOPIC_ROOT) -> tuple[str, ...]:
    return (alarm_subscription(root), command_response_subscription(root))


def command_topic(root: str, device: str) -> str:
    """e.g. sensor_hub/pico_w_1/cmd"""
    device_segment = device.strip("/")
    if not device_segment or "/" in device_segment:
        raise ValueError(f"invalid device name: {device!r}")
    if device_segment in (SINGLE_LEVEL_WILDCARD, "#"):
        raise ValueError("device name cannot be a wildcard")
    return topic_path(root, device_segment, COMMAND_CATEGORY)


def matches(topic: str, pattern: str) -> bool:
    """Return True when a concrete *topic* matches a wildcard *pattern*."""
    try:
        return aiomqtt.Topic(topic).matches(pattern)
    except ValueError:
        return False


def parse_topic(topic_name: str, root: str = DEFAULT_TOPIC_ROOT) -> TopicAddress | None:
    """Parse an inbound topic into a TopicAddress.

    Returns None for topics with fewer than four segments or outside *root*.
    Extra trailing segments are tolerated; the action is the fourth segment.
    """
    root_segments = _split_segments(root)
    segments = tuple(topic_name.split("/"))
    if len(segments) < len(root_segments) + MIN_ADDRESS_SEGMENTS - 1:
        return None
    if segments[: len(root_segments)] != root_segments:
        return None
    device, category, action = segments[len(root_segments) : len(root_segments) + 3]
    return TopicAddress(
        raw=topic_name,
        root="/".join(root_segments),
        device=device,
        category=category,
        action=action,
    )


__all__ = [
    "ALARM_CATEGORY",
    "COMMAND_CATEGORY",
    "RESPONSE_ACTION",
    "normalize_root",
    "topic_path",
    "alarm_subscription",
    "command_response_subscription",
    "subscriptions",
    "command_topic",
    "matches",
    "parse_topic",
]
