"""Autohome integration clients."""

from .drivers import DriverError, ReadError, SimulatedDriver, WriteError, build_driver
from .mqtt_client import ConfigEvent, MQTTClient
from .remote_client import RemoteClientError, RemoteConfigClient

__all__ = [
    "ConfigEvent",
    "DriverError",
    "MQTTClient",
    "ReadError",
    "RemoteClientError",
    "RemoteConfigClient",
    "SimulatedDriver",
    "WriteError",
    "build_driver",
]
