"""MQTT broker session management."""

import logging
import queue
import ssl
import threading
import time
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .events import BrokerConnected, BrokerDisconnected, MessageReceived

if TYPE_CHECKING:
    from ..config import MQTTConfig, TLSConfig


class ConnectionState(Enum):
    """Lifecycle of the broker session.

    The state only becomes CONNECTED once the broker acknowledges a
    connection; an attempt still waiting for that ack reads DISCONNECTED.
    """

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


def _reason_value(reason_code) -> int:
    """Normalize a paho ReasonCode (or plain int) to its integer value."""
    return int(getattr(reason_code, "value", reason_code))


class ConnectionManager:
    """Owns the paho client and the broker connection state.

    Broker callbacks run on whichever thread calls loop(). They update the
    state and post typed events to the events queue; they never call back
    into the rest of the bridge directly.
    """

    def __init__(
        self,
        config: "MQTTConfig",
        events: Optional[queue.Queue] = None,
        debug: bool = False,
    ):
        """Initialize the connection manager.

        Args:
            config: MQTT broker configuration
            events: Queue receiving BrokerConnected/BrokerDisconnected/MessageReceived
            debug: Forward paho's internal log to the Python logger

        Raises:
            Exception: If the MQTT client or its TLS settings cannot be set up
        """
        self.config = config
        self.events: queue.Queue = events if events is not None else queue.Queue()
        self.debug = debug
        self.logger = logging.getLogger(__name__)

        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._session_lock = threading.RLock()
        self.last_connect_rc: Optional[int] = None
        self.last_disconnect_rc: Optional[int] = None
        # monotonic start of an attempt still waiting for its CONNACK
        self._handshake_started: Optional[float] = None

        self.mqtt_client = self._create_mqtt_client()

    def _create_mqtt_client(self) -> mqtt.Client:
        """Create and configure MQTT client.

        Returns:
            Configured MQTT client instance
        """
        client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=self.config.client_id or "",
            clean_session=True,
        )

        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect

        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password or None)

        tls_config = self.config.tls
        if tls_config:
            self._configure_tls(client, tls_config)

        if self.debug:
            client.enable_logger(logging.getLogger("paho.mqtt"))

        return client

    def _configure_tls(self, client: mqtt.Client, tls_config: "TLSConfig") -> None:
        """Configure TLS/SSL for MQTT connection.

        Raises:
            Exception: If TLS configuration fails
        """
        try:
            client.tls_set(
                ca_certs=tls_config.ca_certs,
                certfile=tls_config.certfile,
                keyfile=tls_config.keyfile,
                cert_reqs=ssl.CERT_REQUIRED,
                tls_version=ssl.PROTOCOL_TLS_CLIENT,
                ciphers=None,
            )
            self.logger.info("TLS/SSL configured successfully")
        except Exception as e:
            self.logger.error(f"Failed to configure TLS/SSL: {e}")
            raise

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def handshake_pending(self) -> bool:
        """True while a started attempt awaits the broker's ack.

        An attempt that has not been answered within one keepalive interval
        no longer counts as pending.
        """
        with self._state_lock:
            started = self._handshake_started
        return started is not None and time.monotonic() - started < self.config.keepalive

    def _end_handshake(self) -> None:
        with self._state_lock:
            self._handshake_started = None

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        if previous is not state:
            self.logger.debug(f"Connection state {previous.value} -> {state.value}")

    def connect(self, reconnect: bool = False) -> bool:
        """Start a broker session without waiting for the handshake.

        Completion is reported through the connect callback.

        Args:
            reconnect: Log the attempt as a reconnection

        Returns:
            True if the connection attempt was started
        """
        with self._session_lock:
            action = "Reconnecting" if reconnect else "Connecting"
            self.logger.info(f"{action} to MQTT broker at {self.config.host}:{self.config.port}")
            try:
                rc = self.mqtt_client.connect(self.config.host, self.config.port, self.config.keepalive)
            except Exception as e:
                self.logger.error(f"Failed to connect to MQTT broker: {e}")
                self._end_handshake()
                return False

            if rc != mqtt.MQTT_ERR_SUCCESS:
                self.logger.error(f"Failed to connect to MQTT broker: {mqtt.error_string(rc)}")
                self._end_handshake()
                return False

            with self._state_lock:
                self._handshake_started = time.monotonic()
            return True

    def disconnect(self) -> None:
        """Tear down the session; the state is always DISCONNECTED afterwards."""
        with self._session_lock:
            try:
                self.mqtt_client.disconnect()
            except Exception as e:
                self.logger.warning(f"Error disconnecting from MQTT broker: {e}")
            self._end_handshake()
            self._set_state(ConnectionState.DISCONNECTED)

    def publish(self, topic: str, payload: Union[str, bytes], qos: int = 0) -> bool:
        """Publish a message if connected.

        Returns:
            True if the message was handed to the client
        """
        if not self.is_connected:
            self.logger.debug(f"Not connected, cannot publish to '{topic}'")
            return False

        try:
            result = self.mqtt_client.publish(topic, payload, qos=qos)
        except Exception as e:
            self.logger.error(f"Failed to publish to topic '{topic}': {e}")
            return False

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error(f"Failed to publish to topic '{topic}': {mqtt.error_string(result.rc)}")
            return False

        self.logger.debug(f"Published to topic '{topic}': {len(payload)} bytes")
        return True

    def subscribe(self, topic: str, qos: int = 0) -> bool:
        """Subscribe to a topic if connected."""
        if not self.is_connected:
            self.logger.debug(f"Not connected, cannot subscribe to '{topic}'")
            return False

        rc, _mid = self.mqtt_client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error(f"Failed to subscribe to topic '{topic}': {mqtt.error_string(rc)}")
            return False

        self.logger.debug(f"Subscribed to topic '{topic}' with QoS {qos}")
        return True

    def unsubscribe(self, topic: str) -> bool:
        """Unsubscribe from a topic if connected."""
        if not self.is_connected:
            return False

        rc, _mid = self.mqtt_client.unsubscribe(topic)
        return rc == mqtt.MQTT_ERR_SUCCESS

    def loop(self, timeout: float) -> bool:
        """Run one network iteration, invoking callbacks on this thread.

        Args:
            timeout: Maximum seconds to block waiting for socket activity

        Returns:
            True if a live session was serviced
        """
        with self._session_lock:
            rc = self.mqtt_client.loop(timeout=timeout)

        if rc == mqtt.MQTT_ERR_SUCCESS:
            return True
        if rc != mqtt.MQTT_ERR_NO_CONN:
            self.logger.debug(f"MQTT loop error: {mqtt.error_string(rc)}")
        return False

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback for when the broker answers a connection attempt."""
        rc = _reason_value(reason_code)
        self.last_connect_rc = rc
        self._end_handshake()
        if rc == 0:
            self._set_state(ConnectionState.CONNECTED)
            self.logger.info("Connected to MQTT broker")
        else:
            self._set_state(ConnectionState.DISCONNECTED)
            self.logger.error(f"Failed to connect to MQTT broker: {reason_code}")
        self.events.put(BrokerConnected(rc))

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback for voluntary disconnects and connection loss."""
        rc = _reason_value(reason_code)
        self.last_disconnect_rc = rc
        self._end_handshake()
        self._set_state(ConnectionState.DISCONNECTED)
        if rc != 0:
            self.logger.warning(f"Unexpected disconnection from MQTT broker: {reason_code}")
        else:
            self.logger.info("Disconnected from MQTT broker")
        self.events.put(BrokerDisconnected(rc))

    def _on_message(self, client, userdata, message):
        """Callback for messages delivered on subscribed topics."""
        payload = bytes(message.payload)
        self.logger.debug(f"Received message on topic '{message.topic}': {len(payload)} bytes")
        self.events.put(MessageReceived(message.topic, payload))
