"""Adapter modules for external integrations."""

from .mqtt import MQTTClient, MQTTConnectionError
from .serial import SerialLineTransport, SerialTransportError

__all__ = [
    "MQTTClient",
    "MQTTConnectionError",
    "SerialLineTransport",
    "SerialTransportError",
]
