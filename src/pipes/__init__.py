"""Local pipe transports for the MQTT bridge.

This package provides the channel capability the bridge reads telemetry
from and writes broker commands to.
"""

from .base import BaseChannelTransport, ChannelError, ChannelMode
from .constants import DEFAULT_PIPE_DIR, PIPE_READ_BUF_SIZE
from .fifo import FifoPipeTransport

__all__ = [
    # Base classes
    "BaseChannelTransport",
    "ChannelError",
    "ChannelMode",
    # Transport implementations
    "FifoPipeTransport",
    # Constants
    "DEFAULT_PIPE_DIR",
    "PIPE_READ_BUF_SIZE",
]
