"""Configuration loader for rcswitch-mqtt."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from . import constants


class ConfigurationError(RuntimeError):
    """Raised when the configuration file cannot be read or is invalid."""


# node-serialport option names mapped onto pyserial keyword arguments.
_SERIAL_OPTION_NAMES = {
    "baudRate": "baudrate",
    "dataBits": "bytesize",
    "stopBits": "stopbits",
    "parity": "parity",
    "rtscts": "rtscts",
    "xon": "xonxoff",
    "xoff": "xonxoff",
}

_PARITY_NAMES = {
    "none": "N",
    "even": "E",
    "odd": "O",
    "mark": "M",
    "space": "S",
}


@dataclass(slots=True)
class SerialConfig:
    path: str = constants.DEFAULT_SERIAL_PATH
    baudrate: int = constants.DEFAULT_BAUD_RATE
    options: Dict[str, Any] = field(default_factory=dict)

    def open_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``serial_asyncio.open_serial_connection``."""

        kwargs: Dict[str, Any] = {"url": self.path, "baudrate": self.baudrate}
        kwargs.update(self.options)
        return kwargs


@dataclass(slots=True)
class TopicsConfig:
    subscribe_prefix: str = constants.DEFAULT_SUBSCRIBE_PREFIX
    publish_prefix: str = constants.DEFAULT_PUBLISH_PREFIX


@dataclass(slots=True)
class MqttConfig:
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
    keepalive: int = constants.DEFAULT_KEEPALIVE
    qos: int = 0
    retain: bool = False
    topics: TopicsConfig = field(default_factory=TopicsConfig)


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class BridgeConfig:
    serial: SerialConfig
    mqtt: MqttConfig
    logging: LoggingConfig
    path: Path


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{name}' must be a JSON object")
    return value


def _parse_serial(data: Dict[str, Any]) -> SerialConfig:
    section = _section(data, "serial")
    options = _section(section, "options")

    baudrate = constants.DEFAULT_BAUD_RATE
    mapped: Dict[str, Any] = {}
    for key, value in options.items():
        if key == "autoOpen":
            continue
        target = _SERIAL_OPTION_NAMES.get(key, key)
        if target == "baudrate":
            baudrate = _as_int(value, "serial.options.baudRate")
            continue
        if target == "parity" and isinstance(value, str):
            value = _PARITY_NAMES.get(value.lower(), value)
        if target == "xonxoff":
            value = bool(value) or bool(mapped.get("xonxoff"))
        mapped[target] = value

    return SerialConfig(
        path=str(section.get("path") or constants.DEFAULT_SERIAL_PATH),
        baudrate=baudrate,
        options=mapped,
    )


def _parse_mqtt(data: Dict[str, Any]) -> MqttConfig:
    section = _section(data, "mqtt")
    options = _section(section, "options")
    topics_section = _section(section, "topics")

    broker_host = str(options.get("host") or options.get("hostname") or "")
    broker_port = _as_int(
        options.get("port", constants.DEFAULT_BROKER_PORT), "mqtt.options.port"
    )
    username = options.get("username")
    password = options.get("password")

    url = options.get("url") or options.get("href")
    if url:
        parts = urlsplit(str(url))
        broker_host = parts.hostname or broker_host
        if parts.port:
            broker_port = parts.port
        username = parts.username or username
        password = parts.password or password

    if ":" in broker_host:
        host_part, port_part = broker_host.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            broker_host = host_part
            broker_port = parsed_port

    topics = TopicsConfig(
        subscribe_prefix=str(
            topics_section.get("subscribePrefix", constants.DEFAULT_SUBSCRIBE_PREFIX)
        ),
        publish_prefix=str(
            topics_section.get("publishPrefix", constants.DEFAULT_PUBLISH_PREFIX)
        ),
    )

    qos = _as_int(section.get("qos", 0), "mqtt.qos")
    if qos not in (0, 1, 2):
        raise ConfigurationError(f"mqtt.qos must be 0, 1 or 2 (got {qos})")

    return MqttConfig(
        broker_host=broker_host or constants.DEFAULT_BROKER_HOST,
        broker_port=broker_port,
        username=username or None,
        password=password or None,
        client_id=options.get("clientId") or None,
        keepalive=max(
            1,
            _as_int(
                options.get("keepalive", constants.DEFAULT_KEEPALIVE),
                "mqtt.options.keepalive",
            ),
        ),
        qos=qos,
        retain=bool(section.get("retain", False)),
        topics=topics,
    )


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    section = _section(data, "logging")
    path_value = section.get("path")
    return LoggingConfig(
        level=str(section.get("level") or "INFO"),
        path=Path(path_value).expanduser() if path_value else None,
        log_network=bool(section.get("logNetwork", False)),
    )


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer (got {value!r})") from exc


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(f"Cannot read {config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"{config_path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")

    return BridgeConfig(
        serial=_parse_serial(data),
        mqtt=_parse_mqtt(data),
        logging=_parse_logging(data),
        path=config_path,
    )
