"""MQTT transport, Home Assistant discovery and inbound command handling.

Submodules are imported directly (``from hassbridge.mqtt.client import
MqttBridge``); the stove entity mapping in :mod:`hassbridge.providers`
depends on :mod:`hassbridge.mqtt.discovery` alone.
"""
