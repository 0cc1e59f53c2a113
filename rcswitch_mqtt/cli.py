"""Command-line interface for rcswitch-mqtt."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import RcSwitchBridgeApp
from .config import ConfigurationError, load_config

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Bridge an rc-switch serial transceiver to an MQTT broker",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the bridge")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def _resolved_config(config) -> dict:
    return {
        "serial": {
            "path": config.serial.path,
            "baudrate": config.serial.baudrate,
            "options": config.serial.options,
        },
        "mqtt": {
            "host": config.mqtt.broker_host,
            "port": config.mqtt.broker_port,
            "username": config.mqtt.username,
            "password": "***" if config.mqtt.password else None,
            "clientId": config.mqtt.client_id,
            "keepalive": config.mqtt.keepalive,
            "qos": config.mqtt.qos,
            "retain": config.mqtt.retain,
            "topics": {
                "subscribePrefix": config.mqtt.topics.subscribe_prefix,
                "publishPrefix": config.mqtt.topics.publish_prefix,
            },
        },
        "logging": {
            "level": config.logging.level,
            "path": str(config.logging.path) if config.logging.path else None,
            "logNetwork": config.logging.log_network,
        },
    }


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    if args.command == "start":
        return 0 if RcSwitchBridgeApp.start(config) else 1

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        print(json.dumps(_resolved_config(config), indent=2))
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
