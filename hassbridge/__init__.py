"""hassbridge: HTTP-polled remote devices bridged to MQTT and Home Assistant."""

__version__ = "0.1.0"
