"""Device registry - maps a device identifier to the channel that drives it."""

import logging

from .channel import SerialChannel
from .constants import LINK_BAUDRATE, DEMO_DEVICE
from .demo import SimulatedChannel

log = logging.getLogger(__name__)


class DeviceRegistry:
    """Identifier -> channel factory.

    Identifiers that are not registered are treated as serial port paths.
    """

    def __init__(self, default_factory=SerialChannel):
        self._factories = {}
        self._default = default_factory

    def register(self, identifier, factory):
        self._factories[identifier] = factory

    def resolve(self, identifier):
        """Return a new, unopened channel for identifier."""
        factory = self._factories.get(identifier, self._default)
        return factory()

    def identifiers(self):
        return list(self._factories)


registry = DeviceRegistry()
registry.register(DEMO_DEVICE, SimulatedChannel)


def open_device(identifier, baudrate=LINK_BAUDRATE, devices=None):
    """Resolve identifier and open the channel. Raises ChannelError."""
    channel = (devices or registry).resolve(identifier)
    log.info("Opening %s with %s", identifier, type(channel).__name__)
    channel.open(identifier, baudrate)
    return channel
