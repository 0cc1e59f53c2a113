"""Bridge between an rc-switch serial transceiver and an MQTT broker."""

__version__ = "0.3.0"
