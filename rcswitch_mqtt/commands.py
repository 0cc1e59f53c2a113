"""MQTT command handling: topic + JSON body in, serial command line out."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol, Union

from .config import TopicsConfig
from .messages import (
    COMMANDS_WITH_PAYLOAD,
    CommandName,
    InboundCommand,
    PingCommand,
    SendCommand,
    SetReceiveCommand,
)
from .topics import strip_prefix, subscription_topics

LOGGER = logging.getLogger(__name__)


class CommandTranslationError(RuntimeError):
    """Raised when an MQTT command cannot be turned into a serial line."""

    def __init__(self, message: str, *, command: Optional[str] = None) -> None:
        super().__init__(message)
        self.command = command


class SerialLineWriter(Protocol):
    async def write_line(self, line: str) -> None: ...


class CommandTranslator:
    """Consumes MQTT command messages and forwards them to the transceiver."""

    def __init__(
        self,
        topics: TopicsConfig,
        serial: SerialLineWriter,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._prefix = topics.subscribe_prefix
        self._serial = serial
        self._log = logger or LOGGER

    @property
    def subscriptions(self) -> list[str]:
        return subscription_topics(self._prefix, [name.value for name in CommandName])

    def translate(
        self, topic: str, payload: Union[bytes, str]
    ) -> Optional[InboundCommand]:
        """Map an MQTT message onto a command variant.

        Returns None for topics outside the subscribe prefix. Raises
        :class:`CommandTranslationError` for unknown commands and malformed
        bodies.
        """

        command_name = strip_prefix(topic, self._prefix)
        if command_name is None:
            self._log.warning("Unknown topic: %s", topic)
            return None
        return self._build_command(command_name, payload)

    async def handle_message(self, topic: str, payload: Union[bytes, str]) -> None:
        """MQTT message handler: translate and write at most one serial line."""

        command_name = strip_prefix(topic, self._prefix)
        if command_name is None:
            self._log.warning("Unknown topic: %s", topic)
            return

        self._log.info("MQTT receive: %s %s", topic, _preview(payload))
        try:
            command = self._build_command(command_name, payload)
        except CommandTranslationError as exc:
            self._log.error("%s", exc)
            return

        line = command.to_line()
        self._log.info("Serial send: %s", line)
        try:
            await self._serial.write_line(line)
        except Exception as exc:
            self._log.error("Serial write failed for %r: %s", line, exc)

    def _build_command(
        self, command_name: str, payload: Union[bytes, str]
    ) -> InboundCommand:
        try:
            command = CommandName(command_name)
        except ValueError:
            raise CommandTranslationError(
                f"Unknown MQTT command: {command_name}", command=command_name
            ) from None

        data: Dict[str, Any] = {}
        if command in COMMANDS_WITH_PAYLOAD:
            data = _parse_payload(payload, command.value)

        if command is CommandName.SEND:
            return SendCommand(
                protocol=_require_int(data, "protocol"),
                num_bits=_require_int(data, "numBits"),
                value=_require_int(data, "value"),
                pulse_length=_optional_int(data, "pulseLength"),
                num_repeats=_optional_int(data, "numRepeats"),
            )
        if command is CommandName.SETRECEIVE:
            return SetReceiveCommand(state=_is_truthy(data.get("state")))
        return PingCommand()


def _parse_payload(raw_payload: Union[bytes, str], command: str) -> Dict[str, Any]:
    if isinstance(raw_payload, bytes):
        try:
            decoded = raw_payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CommandTranslationError(
                f"Payload for {command} is not valid UTF-8", command=command
            ) from exc
    else:
        decoded = raw_payload

    # Oversized integers raise a plain ValueError and deep nesting a
    # RecursionError; both count as unparsable bodies.
    try:
        data = json.loads(decoded)
    except (ValueError, RecursionError) as exc:
        raise CommandTranslationError(
            f"Payload for {command} is not valid JSON: {exc}", command=command
        ) from exc

    if not isinstance(data, dict):
        raise CommandTranslationError(
            f"Payload for {command} must be a JSON object", command=command
        )
    return data


def _is_truthy(value: Any) -> bool:
    # Empty arrays and objects still switch the receiver on.
    if isinstance(value, (list, dict)):
        return True
    return bool(value)


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise CommandTranslationError(f"{field_name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            pass
    raise CommandTranslationError(f"{field_name} must be an integer, got {value!r}")


def _require_int(data: Dict[str, Any], field_name: str) -> int:
    value = data.get(field_name)
    if value is None:
        raise CommandTranslationError(f"Missing {field_name} in send payload", command="send")
    return _coerce_int(value, field_name)


def _optional_int(data: Dict[str, Any], field_name: str) -> Optional[int]:
    value = data.get(field_name)
    if value is None:
        return None
    return _coerce_int(value, field_name)


def _preview(payload: Union[bytes, str]) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8", errors="replace")
    return payload
