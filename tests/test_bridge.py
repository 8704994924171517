"""Tests for PipeMQTTBridge event dispatch and lifecycle."""

from unittest.mock import Mock, call, patch

import paho.mqtt.client as mqtt
import pytest

from src.mqtt import PipeMQTTBridge
from src.mqtt.connection import ConnectionState
from src.mqtt.events import ChannelConnected, MessageReceived
from tests.conftest import (
    FakeChannelTransport,
    create_mock_mqtt_client,
    create_test_app_config,
    create_test_mqtt_config,
    create_test_topic,
)


@pytest.fixture
def mock_client():
    with patch("src.mqtt.connection.mqtt.Client") as mock_client_class:
        client = create_mock_mqtt_client()
        mock_client_class.return_value = client
        yield client


def create_bridge(transport=None, config=None, **kwargs) -> PipeMQTTBridge:
    bridge = PipeMQTTBridge(
        config or create_test_app_config(), transport or FakeChannelTransport(), **kwargs
    )
    bridge.setup()
    return bridge


def simulate_connect(bridge: PipeMQTTBridge, client: Mock) -> None:
    bridge.connection.connect()
    bridge.connection._on_connect(client, None, {}, 0, None)


class TestSetup:
    """Test bridge construction and routing setup."""

    def test_setup_opens_configured_pipes(self, mock_client):
        transport = FakeChannelTransport()

        bridge = create_bridge(transport)

        assert [name for name, _mode in transport.opened] == ["battery", "offboard_mqtt_cmd"]
        assert bridge.routing.resolve_subscribe_route("voxl/offboard_cmd") == 1

    def test_encoding_can_be_disabled(self, mock_client):
        bridge = create_bridge(encode_payloads=False)

        assert bridge.encoders is None
        assert bridge.inbound.encoders is None

    def test_reconnect_delay_from_config(self, mock_client):
        config = create_test_app_config(mqtt_config=create_test_mqtt_config(reconnect_delay=9))

        bridge = create_bridge(config=config)

        assert bridge.supervisor.reconnect_delay == 9

    def test_not_running_before_start(self, mock_client):
        bridge = create_bridge()

        assert bridge.is_running is False


class TestEventDispatch:
    """Test the events consumed by the I/O loop."""

    def test_subscribes_to_routes_on_connect(self, mock_client):
        bridge = create_bridge()

        simulate_connect(bridge, mock_client)
        bridge.process_events()

        mock_client.subscribe.assert_called_once_with("voxl/offboard_cmd", qos=0)

    def test_resubscribes_after_reconnect(self, mock_client):
        bridge = create_bridge()
        simulate_connect(bridge, mock_client)
        bridge.connection._on_disconnect(mock_client, None, Mock(), 7, None)
        simulate_connect(bridge, mock_client)

        bridge.process_events()

        assert mock_client.subscribe.call_args_list == [
            call("voxl/offboard_cmd", qos=0),
            call("voxl/offboard_cmd", qos=0),
        ]

    def test_no_subscribe_on_refused_connect(self, mock_client):
        bridge = create_bridge()
        bridge.connection.connect()
        bridge.connection._on_connect(mock_client, None, {}, 5, None)

        bridge.process_events()

        mock_client.subscribe.assert_not_called()

    def test_broker_message_written_to_pipe(self, mock_client):
        transport = FakeChannelTransport()
        bridge = create_bridge(transport)
        simulate_connect(bridge, mock_client)

        bridge.connection._on_message(
            mock_client, None, Mock(topic="voxl/offboard_cmd", payload=b"ARM")
        )
        bridge.process_events()

        assert transport.writes == [(transport.channel_for("offboard_mqtt_cmd"), b"ARM")]

    def test_unrouted_message_dropped(self, mock_client):
        transport = FakeChannelTransport()
        bridge = create_bridge(transport)

        bridge.events.put(MessageReceived("voxl/nobody", b"ARM"))
        bridge.process_events()

        assert transport.writes == []

    def test_pipe_data_published_at_flush(self, mock_client):
        transport = FakeChannelTransport()
        bridge = create_bridge(transport)
        simulate_connect(bridge, mock_client)
        channel_id = transport.channel_for("battery")

        for level in (b"10%", b"9%", b"8%"):
            transport.on_data(channel_id, level)
        bridge.process_events()
        bridge.buffer.flush()

        mock_client.publish.assert_called_once_with("voxl/battery", b"8%", qos=0)

    def test_pipe_data_dropped_while_disconnected(self, mock_client):
        transport = FakeChannelTransport()
        bridge = create_bridge(transport)

        transport.on_data(transport.channel_for("battery"), b"10%")
        bridge.process_events()
        bridge.buffer.flush()

        mock_client.publish.assert_not_called()
        assert bridge.buffer.get(0).pending is False

    def test_channel_events_handled(self, mock_client):
        transport = FakeChannelTransport()
        bridge = create_bridge(transport)

        transport.on_connect(0)
        transport.on_disconnect(0)

        assert bridge.process_events() == 2

    def test_handler_error_does_not_escape(self, mock_client):
        bridge = create_bridge()
        bridge.outbound = Mock()
        bridge.outbound.handle.side_effect = RuntimeError("boom")

        bridge.events.put(MessageReceived("voxl/offboard_cmd", b"ARM"))
        bridge.events.put(ChannelConnected(0))

        assert bridge.process_events() == 2


class TestLifecycle:
    """Test starting and stopping the bridge threads."""

    def test_start_and_stop(self, mock_client):
        mock_client.loop.return_value = mqtt.MQTT_ERR_NO_CONN
        transport = FakeChannelTransport()
        bridge = create_bridge(transport, poll_timeout=0.01)

        bridge.start()
        assert bridge.is_running is True
        mock_client.connect.assert_called_once_with("localhost", 1883, 60)

        bridge.stop()

        assert bridge.is_running is False
        assert bridge.connection.state is ConnectionState.DISCONNECTED
        mock_client.disconnect.assert_called_once()
        assert transport.closed is True
        assert len(bridge.buffer) == 0

    def test_initial_connect_failure_not_fatal(self, mock_client):
        mock_client.connect.side_effect = OSError("connection refused")
        mock_client.loop.return_value = mqtt.MQTT_ERR_NO_CONN
        bridge = create_bridge(poll_timeout=0.01)

        bridge.start()
        try:
            assert bridge.is_running is True
            assert bridge.connection.is_connected is False
        finally:
            bridge.stop()

    def test_run_forever_returns_after_request_stop(self, mock_client):
        mock_client.loop.return_value = mqtt.MQTT_ERR_NO_CONN
        transport = FakeChannelTransport()
        bridge = create_bridge(transport, poll_timeout=0.01)

        bridge.request_stop()
        bridge.run_forever()

        assert bridge.is_running is False
        assert transport.closed is True

    def test_stop_clears_buffer(self, mock_client):
        mock_client.loop.return_value = mqtt.MQTT_ERR_NO_CONN
        bridge = create_bridge(poll_timeout=0.01)
        bridge.buffer.buffer_update(0, "voxl/battery", b"10%", 0)

        bridge.start()
        bridge.stop()

        assert len(bridge.buffer) == 0

    def test_multiple_route_config(self, mock_client):
        config = create_test_app_config(
            publish_topics=[
                create_test_topic("voxl/battery", "battery"),
                create_test_topic("voxl/heartbeat", "mavlink_ap_heartbeat", qos=1),
            ],
            subscribe_topics=[
                create_test_topic("voxl/offboard_cmd", "offboard_mqtt_cmd"),
                create_test_topic("voxl/mission", "mission_cmd", qos=2),
            ],
        )
        bridge = create_bridge(config=config)

        simulate_connect(bridge, mock_client)
        bridge.process_events()

        mock_client.subscribe.assert_has_calls(
            [call("voxl/offboard_cmd", qos=0), call("voxl/mission", qos=2)]
        )
