"""Constants used across the rcswitch-mqtt package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "rcswitch-mqtt"
DEFAULT_CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(DEFAULT_CONFIG_FILENAME)

DEFAULT_SERIAL_PATH = "/dev/ttyUSB0"
DEFAULT_BAUD_RATE = 9600

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_KEEPALIVE = 60

DEFAULT_SUBSCRIBE_PREFIX = "rcswitch/cmd/"
DEFAULT_PUBLISH_PREFIX = "rcswitch/"

# Inbound lines from the firmware end in CRLF, outbound commands in LF.
SERIAL_RX_DELIMITER = b"\r\n"
SERIAL_TX_TERMINATOR = "\n"
SERIAL_ENCODING = "ascii"
