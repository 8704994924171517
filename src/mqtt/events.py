"""Typed events passed from transport callbacks to the bridge's I/O loop."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BrokerConnected:
    """The broker answered a connection attempt (result_code 0 is success)."""

    result_code: int

    @property
    def success(self) -> bool:
        return self.result_code == 0


@dataclass(frozen=True)
class BrokerDisconnected:
    result_code: int


@dataclass(frozen=True)
class MessageReceived:
    topic: str
    payload: bytes


@dataclass(frozen=True)
class ChannelData:
    channel_id: int
    data: bytes


@dataclass(frozen=True)
class ChannelConnected:
    channel_id: int


@dataclass(frozen=True)
class ChannelDisconnected:
    channel_id: int
