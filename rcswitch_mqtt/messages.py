"""Message variants exchanged with the transceiver and the broker.

Inbound commands arrive over MQTT and leave as serial lines::

    SEND <protocol> <numBits> <value> [<pulseLength> [<numRepeats>]]
    SETRECEIVE <0|1>
    PING

Outbound events arrive as serial lines and leave as JSON payloads, each
stamped with ``ts`` in epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class CommandName(str, Enum):
    """Command suffixes accepted under the subscribe prefix."""

    SEND = "send"
    SETRECEIVE = "setreceive"
    PING = "ping"


# Commands whose MQTT body is parsed as JSON.
COMMANDS_WITH_PAYLOAD = frozenset({CommandName.SEND, CommandName.SETRECEIVE})


class EventToken(str, Enum):
    """Leading tokens of lines emitted by the firmware."""

    INIT = "init"
    READY = "ready"
    SENT = "sent"
    PONG = "pong"
    SETRECEIVE = "setreceive"
    RECEIVE = "receive"
    ERROR = "error"


# Tokens forwarded without any extra payload fields.
STATUS_TOKENS = frozenset(
    {EventToken.INIT, EventToken.READY, EventToken.SENT, EventToken.PONG}
)


# ----------------------------------------------------------------------
# MQTT -> serial
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SendCommand:
    protocol: int
    num_bits: int
    value: int
    pulse_length: Optional[int] = None
    num_repeats: Optional[int] = None

    def to_line(self) -> str:
        parts = ["SEND", str(self.protocol), str(self.num_bits), str(self.value)]

        # The firmware parses arguments by position: a repeat count without a
        # pulse length still needs the pulse length slot filled.
        if self.pulse_length:
            parts.append(str(self.pulse_length))
        if self.num_repeats:
            if not self.pulse_length:
                parts.append("0")
            parts.append(str(self.num_repeats))

        return " ".join(parts)


@dataclass(frozen=True, slots=True)
class SetReceiveCommand:
    state: bool

    def to_line(self) -> str:
        return f"SETRECEIVE {'1' if self.state else '0'}"


@dataclass(frozen=True, slots=True)
class PingCommand:
    def to_line(self) -> str:
        return "PING"


InboundCommand = Union[SendCommand, SetReceiveCommand, PingCommand]


# ----------------------------------------------------------------------
# serial -> MQTT
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StatusEvent:
    """``init``, ``ready``, ``sent`` and ``pong``: no fields beyond ``ts``."""

    token: EventToken
    ts: int

    def to_payload(self) -> Dict[str, Any]:
        return {"ts": self.ts}


@dataclass(frozen=True, slots=True)
class SetReceiveEvent:
    state: bool
    ts: int

    token = EventToken.SETRECEIVE

    def to_payload(self) -> Dict[str, Any]:
        return {"ts": self.ts, "state": self.state}


@dataclass(frozen=True, slots=True)
class ReceiveEvent:
    """A code picked up by the receiver.

    Fields the firmware sent as non-numeric text are ``None`` and serialize
    as JSON ``null``.
    """

    protocol: Optional[int]
    num_bits: Optional[int]
    value: Optional[int]
    pulse_length: Optional[int]
    ts: int

    token = EventToken.RECEIVE

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "protocol": self.protocol,
            "numBits": self.num_bits,
            "value": self.value,
            "pulseLength": self.pulse_length,
        }


@dataclass(frozen=True, slots=True)
class DeviceErrorEvent:
    """``error`` line reported by the firmware. Logged, never published."""

    args: Tuple[str, ...]
    ts: int

    token = EventToken.ERROR


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    """Line with an unrecognized leading token. Logged, never published."""

    token: str
    args: Tuple[str, ...]
    ts: int


SerialEvent = Union[
    StatusEvent, SetReceiveEvent, ReceiveEvent, DeviceErrorEvent, UnknownEvent
]

PUBLISHABLE_EVENTS = (StatusEvent, SetReceiveEvent, ReceiveEvent)
