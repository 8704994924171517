"""Pipelines moving data between pipes and the MQTT broker."""

import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..encoders import EncoderChain
    from ..pipes import BaseChannelTransport
    from .buffer import CoalescingBuffer
    from .routing import RoutingTable


class InboundPipeline:
    """Pipe -> MQTT: routes channel data into the coalescing buffer."""

    def __init__(
        self,
        routing: "RoutingTable",
        buffer: "CoalescingBuffer",
        encoders: Optional["EncoderChain"] = None,
    ):
        """Initialize the inbound pipeline.

        Args:
            routing: Routing table resolving channel ids to topics
            buffer: Buffer the routed payloads are written into
            encoders: Encoder chain, or None to forward raw bytes
        """
        self.routing = routing
        self.buffer = buffer
        self.encoders = encoders
        self.logger = logging.getLogger(__name__)

    def handle(self, channel_id: int, data: bytes) -> bool:
        """Handle data read from a pipe channel.

        Returns:
            True if the data was routed into the buffer
        """
        route = self.routing.resolve_publish_route(channel_id)
        if route is None:
            self.logger.debug(f"No publish route for channel {channel_id}, dropping {len(data)} bytes")
            return False

        payload = data
        if self.encoders is not None:
            payload = self.encoders.encode(route.pipe_name, data)

        self.buffer.buffer_update(channel_id, route.topic, payload, route.qos, route.policy)
        self.logger.debug(f"Buffered {len(data)} bytes from channel {channel_id} for '{route.topic}'")
        return True


class OutboundPipeline:
    """MQTT -> pipe: writes broker messages to their routed channel."""

    def __init__(self, routing: "RoutingTable", transport: "BaseChannelTransport"):
        self.routing = routing
        self.transport = transport
        self.logger = logging.getLogger(__name__)

    def handle(self, topic: str, payload: bytes) -> bool:
        """Handle a message delivered by the broker.

        Returns:
            True if the payload was written to a pipe
        """
        channel_id = self.routing.resolve_subscribe_route(topic)
        if channel_id is None:
            self.logger.debug(f"No subscribe route for topic '{topic}', dropping message")
            return False

        if not self.transport.write(channel_id, payload):
            self.logger.warning(f"Failed to forward message on '{topic}' to channel {channel_id}")
            return False

        self.logger.debug(f"Wrote {len(payload)} bytes from '{topic}' to channel {channel_id}")
        return True
