"""Topic-based routing of inbound broker messages."""

from __future__ import annotations

import logging

import msgspec

from ..const import DEFAULT_TOPIC_ROOT
from ..protocol import codec, topics
from ..protocol.codec import DecodeError
from ..protocol.structures import AlarmEvent, AlarmState, CommandResponse, now_millis
from ..state.broadcaster import StatusBroadcaster
from ..state.context import LinkStats

logger = logging.getLogger("sensorhub.router")

RouteResult = AlarmEvent | CommandResponse | None

_ALARM_BUILD_ERRORS = (ValueError, TypeError, AttributeError, KeyError, IndexError)


class TopicRouter:
    """Classify inbound messages by topic shape and hand them to observers.

    The topic is the authoritative source of alarm state: publishers are
    bound to the ``<root>/<device>/alarm/<action>`` naming convention while
    the payload schema is best-effort, so the action segment always wins.
    """

    def __init__(
        self,
        broadcaster: StatusBroadcaster,
        *,
        topic_root: str = DEFAULT_TOPIC_ROOT,
        stats: LinkStats | None = None,
    ) -> None:
        self.broadcaster = broadcaster
        self.topic_root = topics.normalize_root(topic_root)
        self.stats = stats if stats is not None else LinkStats()
        self._response_pattern = topics.command_response_subscription(self.topic_root)

    def route(self, topic: str, payload: str) -> RouteResult:
        if topics.matches(topic, self._response_pattern):
            return self._handle_command_response(topic, payload)

        address = topics.parse_topic(topic, self.topic_root)
        if address is None:
            logger.warning(
                "Topic %s is outside %s or has fewer than %d parts; dropped.",
                topic,
                self.topic_root,
                topics.MIN_ADDRESS_SEGMENTS,
            )
            self.stats.messages_dropped += 1
            return None

        if address.category != topics.ALARM_CATEGORY:
            logger.info("Ignoring %s message on %s; no notification.", address.category, topic)
            self.stats.messages_dropped += 1
            return None

        try:
            event = self._build_alarm(address.device, address.action, payload)
        except _ALARM_BUILD_ERRORS:
            logger.exception("Error handling alarm message on %s; emitting generic alert.", topic)
            self.stats.alarm_fallbacks += 1
            event = AlarmEvent(
                timestamp=now_millis(),
                state=AlarmState.UNKNOWN,
                device=address.device,
                action=address.action,
                raw_message=payload,
            )

        logger.debug(
            "Routed alarm event: device=%s state=%s triggered_by=%s",
            event.device,
            event.state.value,
            event.triggered_by,
        )
        self.stats.alarms_routed += 1
        self.broadcaster.alarm_event(event)
        return event

    def _handle_command_response(self, topic: str, payload: str) -> CommandResponse | None:
        try:
            response = codec.decode_command_response(payload)
        except DecodeError as exc:
            logger.error("Error parsing command response on %s: %s", topic, exc)
            self.stats.messages_dropped += 1
            return None
        address = topics.parse_topic(topic, self.topic_root)
        response = msgspec.structs.replace(response, device=address.device if address else None)
        logger.info(
            "Command response from %s: %s - %s: %s",
            response.device,
            response.command,
            response.status,
            response.message,
        )
        self.stats.command_responses += 1
        self.broadcaster.command_response(response)
        return response

    def _build_alarm(self, device: str, action: str, payload: str) -> AlarmEvent:
        state = AlarmState.from_action(action)
        try:
            body = codec.decode_alarm(payload)
        except DecodeError as exc:
            logger.warning("JSON parsing failed (%s); creating simple alarm message.", exc)
            self.stats.alarm_fallbacks += 1
            return AlarmEvent(
                timestamp=now_millis(),
                state=state,
                device=device,
                action=action,
                raw_message=payload,
            )
        return AlarmEvent(
            timestamp=body.timestamp if body.timestamp is not None else now_millis(),
            state=state,
            device=device,
            action=action,
            triggered_by=body.triggered_by,
            raw_message=body.message,
        )


__all__ = ["RouteResult", "TopicRouter"]
