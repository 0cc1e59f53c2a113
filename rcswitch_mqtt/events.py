"""Serial event handling: firmware line in, MQTT JSON payload out."""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Callable, Optional, Protocol, Sequence

from .config import TopicsConfig
from .messages import (
    PUBLISHABLE_EVENTS,
    STATUS_TOKENS,
    DeviceErrorEvent,
    EventToken,
    ReceiveEvent,
    SerialEvent,
    SetReceiveEvent,
    StatusEvent,
    UnknownEvent,
)
from .topics import build_topic

LOGGER = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


class MQTTEventsClient(Protocol):
    def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> None: ...


def parse_decimal(token: Optional[str]) -> Optional[int]:
    """Parse the leading base-10 integer of ``token``.

    Trailing garbage is ignored (``"184x"`` -> 184). Missing or non-numeric
    tokens give None.
    """

    if token is None:
        return None
    match = _LEADING_INT.match(token)
    if match is None:
        return None
    return int(match.group(1), 10)


def _arg(args: Sequence[str], index: int) -> Optional[str]:
    return args[index] if index < len(args) else None


class EventTranslator:
    """Turns lines emitted by the transceiver into MQTT publishes."""

    def __init__(
        self,
        topics: TopicsConfig,
        mqtt: MQTTEventsClient,
        *,
        qos: int = 0,
        retain: bool = False,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._prefix = topics.publish_prefix
        self._mqtt = mqtt
        self._qos = qos
        self._retain = retain
        self._clock = clock
        self._log = logger or LOGGER

    def translate(self, line: str) -> SerialEvent:
        parts = line.split(" ")
        token = parts[0].lower()
        args = tuple(parts[1:])
        ts = int(self._clock() * 1000)

        try:
            kind = EventToken(token)
        except ValueError:
            return UnknownEvent(token=token, args=args, ts=ts)

        if kind in STATUS_TOKENS:
            return StatusEvent(token=kind, ts=ts)
        if kind is EventToken.SETRECEIVE:
            return SetReceiveEvent(state=_arg(args, 0) == "ON", ts=ts)
        if kind is EventToken.RECEIVE:
            return ReceiveEvent(
                protocol=parse_decimal(_arg(args, 0)),
                num_bits=parse_decimal(_arg(args, 1)),
                value=parse_decimal(_arg(args, 2)),
                pulse_length=parse_decimal(_arg(args, 3)),
                ts=ts,
            )
        return DeviceErrorEvent(args=args, ts=ts)

    def handle_line(self, line: str) -> None:
        """Serial line handler: publish at most one MQTT message."""

        self._log.info("Serial receive: %s", line)
        event = self.translate(line)

        if isinstance(event, DeviceErrorEvent):
            self._log.error("Device error: %s", list(event.args))
            return
        if isinstance(event, UnknownEvent):
            self._log.error(
                "Unknown serial command: %s %s", event.token, list(event.args)
            )
            return
        if not isinstance(event, PUBLISHABLE_EVENTS):
            return

        topic = build_topic(self._prefix, event.token.value)
        payload = json.dumps(event.to_payload(), separators=(",", ":"))
        self._log.info("MQTT send: %s %s", topic, payload)
        try:
            self._mqtt.publish(
                topic, payload.encode("utf-8"), qos=self._qos, retain=self._retain
            )
        except Exception as exc:
            self._log.error("MQTT publish to %s failed: %s", topic, exc)
