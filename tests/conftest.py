"""Pytest configuration and fixtures for the pipe MQTT bridge tests."""

from typing import Dict, List, Optional, Tuple
from unittest.mock import Mock

import pytest

from src.config import AppConfig, BufferPolicy, MQTTConfig, TopicConfig
from src.pipes import BaseChannelTransport, ChannelError, ChannelMode

# ============================================================================
# Helper Functions for Creating Test Configurations
# ============================================================================


def create_test_mqtt_config(
    host: str = "localhost",
    port: int = 1883,
    client_id: str = "test-client",
    username: str = "",
    password: str = "",
    use_tls: bool = False,
    ca_cert_path: str = "",
    cert_path: str = "",
    key_path: str = "",
    keepalive: int = 60,
    reconnect_delay: int = 5,
) -> MQTTConfig:
    """Create an MQTTConfig for testing with sensible defaults.

    Returns:
        MQTTConfig instance ready for testing
    """
    return MQTTConfig(
        host=host,
        port=port,
        client_id=client_id,
        username=username,
        password=password,
        use_tls=use_tls,
        ca_cert_path=ca_cert_path,
        cert_path=cert_path,
        key_path=key_path,
        keepalive=keepalive,
        reconnect_delay=reconnect_delay,
    )


def create_test_topic(
    topic: str, pipe_name: str, qos: int = 0, policy: BufferPolicy = BufferPolicy.COALESCE
) -> TopicConfig:
    """Create a TopicConfig route for testing."""
    return TopicConfig(topic=topic, pipe_name=pipe_name, qos=qos, policy=policy)


def create_test_app_config(
    mqtt_config: MQTTConfig = None,
    publish_topics: List[TopicConfig] = None,
    subscribe_topics: List[TopicConfig] = None,
    pipe_dir: str = "/tmp/mpa",
) -> AppConfig:
    """Create an AppConfig for testing with sensible defaults.

    The default routes mirror a small drone setup: battery telemetry out,
    offboard commands in.

    Args:
        mqtt_config: Pre-built MQTTConfig (optional, defaults to basic config)
        publish_topics: Pipe -> MQTT routes (default: battery -> voxl/battery)
        subscribe_topics: MQTT -> pipe routes (default: voxl/offboard_cmd -> offboard_mqtt_cmd)
        pipe_dir: Base directory for pipes

    Returns:
        AppConfig instance ready for testing

    Examples:
        >>> config = create_test_app_config()
        >>> config = create_test_app_config(publish_topics=[create_test_topic("a/b", "pipe")])
    """
    if mqtt_config is None:
        mqtt_config = create_test_mqtt_config()
    if publish_topics is None:
        publish_topics = [create_test_topic("voxl/battery", "battery")]
    if subscribe_topics is None:
        subscribe_topics = [create_test_topic("voxl/offboard_cmd", "offboard_mqtt_cmd")]

    return AppConfig(
        mqtt=mqtt_config,
        publish_topics=publish_topics,
        subscribe_topics=subscribe_topics,
        pipe_dir=pipe_dir,
    )


class FakeChannelTransport(BaseChannelTransport):
    """In-memory channel transport recording opens and writes."""

    def __init__(self, fail_on: Optional[List[str]] = None):
        super().__init__()
        self.fail_on = set(fail_on or [])
        self.opened: List[Tuple[str, ChannelMode]] = []
        self.names: Dict[int, str] = {}
        self.writes: List[Tuple[int, bytes]] = []
        self.write_result = True
        self.closed = False

    def open(self, name: str, mode: ChannelMode = ChannelMode.READ) -> int:
        if name in self.fail_on:
            raise ChannelError(f"cannot open {name}")
        channel_id = len(self.opened)
        self.opened.append((name, mode))
        self.names[channel_id] = name
        return channel_id

    def write(self, channel_id: int, data: bytes) -> bool:
        self.writes.append((channel_id, data))
        return self.write_result

    def close_all(self) -> None:
        self.closed = True

    def channel_for(self, name: str) -> int:
        for channel_id, channel_name in self.names.items():
            if channel_name == name:
                return channel_id
        raise KeyError(name)


def create_mock_mqtt_client() -> Mock:
    """Create a paho client mock whose calls report success."""
    client = Mock()
    client.connect.return_value = 0
    client.loop.return_value = 0
    client.publish.return_value = Mock(rc=0)
    client.subscribe.return_value = (0, 1)
    client.unsubscribe.return_value = (0, 2)
    return client


# ============================================================================
# Pytest Fixtures
# ============================================================================


@pytest.fixture
def test_mqtt_config():
    """Fixture providing a standard MQTTConfig for testing."""
    return create_test_mqtt_config()


@pytest.fixture
def test_app_config():
    """Fixture providing a standard AppConfig for testing."""
    return create_test_app_config()


@pytest.fixture
def fake_transport():
    """Fixture providing an in-memory channel transport."""
    return FakeChannelTransport()
