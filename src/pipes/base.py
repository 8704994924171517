"""Base classes for local pipe transports."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

DataCallback = Callable[[int, bytes], None]
ChannelCallback = Callable[[int], None]


class ChannelError(Exception):
    """Raised when a pipe channel cannot be opened."""


class ChannelMode(Enum):
    """Direction of a pipe channel relative to the bridge."""

    READ = "read"
    WRITE = "write"


class BaseChannelTransport(ABC):
    """Abstract base class for local channel transports.

    Callbacks are invoked on threads owned by the transport and must not block.
    """

    def __init__(self):
        self.on_data: Optional[DataCallback] = None
        self.on_connect: Optional[ChannelCallback] = None
        self.on_disconnect: Optional[ChannelCallback] = None

    def set_callbacks(
        self,
        on_data: Optional[DataCallback] = None,
        on_connect: Optional[ChannelCallback] = None,
        on_disconnect: Optional[ChannelCallback] = None,
    ) -> None:
        """Register the callbacks invoked for channel events."""
        self.on_data = on_data
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect

    @abstractmethod
    def open(self, name: str, mode: ChannelMode = ChannelMode.READ) -> int:
        """Open a named channel and return its channel id.

        Raises:
            ChannelError: If the channel cannot be opened
        """
        ...

    @abstractmethod
    def write(self, channel_id: int, data: bytes) -> bool:
        """Write a payload to a channel opened for writing."""
        ...

    @abstractmethod
    def close_all(self) -> None:
        """Close every open channel and stop any reader threads."""
        ...
