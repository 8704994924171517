"""MQTT bridge between local pipes and an MQTT broker."""

import logging
import queue
import threading
from typing import TYPE_CHECKING, Optional

from ..encoders import EncoderChain
from .buffer import CoalescingBuffer
from .connection import ConnectionManager
from .events import (
    BrokerConnected,
    BrokerDisconnected,
    ChannelConnected,
    ChannelData,
    ChannelDisconnected,
    MessageReceived,
)
from .handlers import InboundPipeline, OutboundPipeline
from .routing import RoutingTable
from .timers import DEFAULT_FLUSH_INTERVAL, FlushTimer, Supervisor

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..pipes import BaseChannelTransport

DEFAULT_POLL_TIMEOUT = 0.1


class PipeMQTTBridge:
    """Bridges pipe channels to MQTT topics and back.

    Transport callbacks never touch bridge state directly. Each one posts a
    typed event onto a single queue that the I/O loop thread consumes. Only
    the flush timer touches the buffer from another thread.
    """

    def __init__(
        self,
        config: "AppConfig",
        transport: "BaseChannelTransport",
        encoders: Optional[EncoderChain] = None,
        flush_interval: int = DEFAULT_FLUSH_INTERVAL,
        encode_payloads: bool = True,
        debug: bool = False,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
    ):
        """Initialize the bridge.

        Args:
            config: Application configuration object (use AppConfig.load())
            transport: Local channel transport the pipes are opened on
            encoders: Encoder chain for outgoing telemetry; defaults to EncoderChain()
            flush_interval: Seconds between buffer flushes
            encode_payloads: Set False to always publish raw pipe bytes
            debug: Enable paho's internal logging
            poll_timeout: Longest the I/O loop blocks before checking the stop flag

        Raises:
            Exception: If the MQTT client cannot be created
        """
        self.config = config
        self.transport = transport
        self.flush_interval = flush_interval
        self.poll_timeout = poll_timeout
        self.logger = logging.getLogger(__name__)

        if encode_payloads:
            self.encoders: Optional[EncoderChain] = encoders or EncoderChain()
        else:
            self.encoders = None

        self.events: queue.Queue = queue.Queue()
        self.connection = ConnectionManager(config.mqtt, self.events, debug=debug)
        self.buffer = CoalescingBuffer(self.connection.publish)

        # Set while stopped; every loop exits once it is set
        self.stop_event = threading.Event()
        self.stop_event.set()

        self.flush_timer = FlushTimer(self.buffer, flush_interval, self.stop_event)
        self.supervisor = Supervisor(self.connection, config.mqtt.reconnect_delay, self.stop_event)

        self.routing = RoutingTable()
        self.inbound = InboundPipeline(self.routing, self.buffer, self.encoders)
        self.outbound = OutboundPipeline(self.routing, self.transport)

        self._io_thread: Optional[threading.Thread] = None
        self._shutdown = threading.Event()

        self.transport.set_callbacks(
            on_data=lambda channel_id, data: self.events.put(ChannelData(channel_id, data)),
            on_connect=lambda channel_id: self.events.put(ChannelConnected(channel_id)),
            on_disconnect=lambda channel_id: self.events.put(ChannelDisconnected(channel_id)),
        )

    @property
    def is_running(self) -> bool:
        return not self.stop_event.is_set()

    def setup(self) -> RoutingTable:
        """Open the configured pipes and build the routing table.

        Returns:
            The routing table now in use
        """
        self.routing = RoutingTable.build(self.config, self.transport.open)
        self.inbound = InboundPipeline(self.routing, self.buffer, self.encoders)
        self.outbound = OutboundPipeline(self.routing, self.transport)
        self.logger.info(
            f"Routing {len(self.routing.publish_routes)} pipes to MQTT and "
            f"{len(self.routing.subscribe_routes)} topics to pipes"
        )
        return self.routing

    def start(self) -> None:
        """Start the I/O loop, flush timer and supervisor, then connect.

        A failed initial connection is not fatal; the supervisor retries it.
        """
        if self.is_running:
            self.logger.warning("Bridge already running")
            return

        self.stop_event.clear()
        self._io_thread = threading.Thread(target=self._io_loop, name="mqtt-io", daemon=True)
        self._io_thread.start()

        if not self.connection.connect():
            self.logger.warning("Initial connection to MQTT broker failed, will retry")

        self.flush_timer.start()
        self.supervisor.start()
        self.logger.info(f"Bridge started (publish interval {self.flush_interval}s)")

    def stop(self) -> None:
        """Stop all loops, drop buffered data and release the broker and pipes."""
        self.logger.info("Stopping bridge...")
        self.stop_event.set()

        if self._io_thread is not None:
            self._io_thread.join()
            self._io_thread = None
        self.flush_timer.join()
        self.supervisor.join()

        self.buffer.clear()
        self.connection.disconnect()
        self.transport.close_all()
        self._shutdown.clear()
        self.logger.info("Bridge stopped")

    def request_stop(self) -> None:
        """Ask run_forever() to return; safe to call from a signal handler."""
        self._shutdown.set()

    def run_forever(self) -> None:
        """Start the bridge and block until request_stop() is called."""
        self.start()
        try:
            while not self._shutdown.wait(1.0):
                pass
        finally:
            self.stop()

    def _io_loop(self) -> None:
        """Service the broker socket and dispatch queued events until stopped."""
        self.logger.debug("I/O loop started")
        while not self.stop_event.is_set():
            try:
                serviced = self.connection.loop(self.poll_timeout)
            except Exception as e:
                self.logger.error(f"Error in MQTT network loop: {e}", exc_info=True)
                serviced = False

            # Without a live socket the loop returns at once, so wait on the queue instead
            self.process_events(timeout=None if serviced else self.poll_timeout)
        self.logger.debug("I/O loop stopped")

    def process_events(self, timeout: Optional[float] = None) -> int:
        """Dispatch every queued event.

        Args:
            timeout: Seconds to wait for the first event, or None not to wait

        Returns:
            Number of events dispatched
        """
        handled = 0
        block = timeout is not None
        while True:
            try:
                event = self.events.get(block=block, timeout=timeout)
            except queue.Empty:
                return handled
            block = False
            handled += 1
            self._dispatch(event)

    def _dispatch(self, event) -> None:
        try:
            if isinstance(event, ChannelData):
                self.inbound.handle(event.channel_id, event.data)
            elif isinstance(event, MessageReceived):
                self.outbound.handle(event.topic, event.payload)
            elif isinstance(event, BrokerConnected):
                if event.success:
                    self._subscribe_to_topics()
            elif isinstance(event, BrokerDisconnected):
                self.logger.debug(f"Broker session ended (rc={event.result_code})")
            elif isinstance(event, ChannelConnected):
                self.logger.info(f"Pipe channel {event.channel_id} connected")
            elif isinstance(event, ChannelDisconnected):
                self.logger.info(f"Pipe channel {event.channel_id} disconnected")
            else:
                self.logger.warning(f"Ignoring unknown event: {event!r}")
        except Exception as e:
            self.logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)

    def _subscribe_to_topics(self) -> None:
        """Subscribe to every routed topic after a successful (re)connect."""
        for route in self.routing.subscribe_routes:
            self.connection.subscribe(route.topic, route.qos)
