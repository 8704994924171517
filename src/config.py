"""Configuration models using Pydantic for type safety and validation."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .pipes.constants import DEFAULT_PIPE_DIR

DEFAULT_CONFIG_PATH = "/etc/modalai/voxl-mqtt-client.conf"

PUBLISH_SECTION = "[publish_topics]"
SUBSCRIBE_SECTION = "[subscribe_topics]"

logger = logging.getLogger(__name__)


class BufferPolicy(str, Enum):
    """How pending updates for one channel are held between flushes."""

    COALESCE = "coalesce"
    QUEUE = "queue"


class TLSConfig(BaseModel):
    """TLS/SSL configuration for MQTT connection."""

    ca_certs: str = Field(..., min_length=1, description="Path to CA certificate file")
    certfile: Optional[str] = Field(None, description="Path to client certificate file")
    keyfile: Optional[str] = Field(None, description="Path to client key file")


class TopicConfig(BaseModel):
    """One configured route between an MQTT topic and a local pipe."""

    topic: str = Field(..., min_length=1, description="MQTT topic")
    pipe_name: str = Field(..., min_length=1, description="Local pipe name or directory path")
    qos: int = Field(0, ge=0, le=2, description="QoS level (0-2)")
    policy: BufferPolicy = Field(BufferPolicy.COALESCE, description="Buffering policy")


class MQTTConfig(BaseModel):
    """MQTT broker configuration."""

    host: str = Field("localhost", description="MQTT broker hostname")
    port: int = Field(1883, ge=1, le=65535, description="MQTT broker port")
    client_id: str = Field("voxl-mavlink-mqtt-client", description="MQTT client ID")
    username: str = Field("", description="MQTT username")
    password: str = Field("", description="MQTT password")
    use_tls: bool = Field(False, description="Enable TLS when a CA certificate is given")
    ca_cert_path: str = Field("", description="Path to CA certificate file")
    cert_path: str = Field("", description="Path to client certificate file")
    key_path: str = Field("", description="Path to client key file")
    keepalive: int = Field(60, ge=1, description="Keep-alive interval in seconds")
    reconnect_delay: int = Field(5, ge=1, description="Seconds to wait before reconnecting")

    @property
    def tls(self) -> Optional[TLSConfig]:
        """TLS settings, or None when TLS is off or no CA certificate is set."""
        if not self.use_tls or not self.ca_cert_path:
            return None
        return TLSConfig(
            ca_certs=self.ca_cert_path,
            certfile=self.cert_path or None,
            keyfile=self.key_path or None,
        )


def normalize_log_level(value: str) -> str:
    """Upper-case a log level name, rejecting unknown levels."""
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    level = value.upper().strip()
    if level not in valid_levels:
        raise ValueError(f"Invalid log_level: '{value}'. Valid options: {', '.join(sorted(valid_levels))}")
    return level


def default_publish_topics() -> List[TopicConfig]:
    return [
        TopicConfig(topic="voxl/vio", pipe_name="vvhub_aligned_vio"),
        TopicConfig(topic="voxl/battery", pipe_name="/run/mpa/mavlink_sys_status/"),
        TopicConfig(topic="voxl/heartbeat", pipe_name="mavlink_ap_heartbeat"),
    ]


def default_subscribe_topics() -> List[TopicConfig]:
    return [TopicConfig(topic="voxl/offboard_cmd", pipe_name="offboard_mqtt_cmd")]


def resolve_config_path(path: Optional[str] = None) -> str:
    """Pick the config file path, reading .env first so it can set MQTT_BRIDGE_CONFIG."""
    load_dotenv()
    return path or os.getenv("MQTT_BRIDGE_CONFIG", DEFAULT_CONFIG_PATH)

class AppConfig(BaseModel):
    """Main application configuration."""

    mqtt: MQTTConfig = Field(default_factory=MQTTConfig, description="MQTT configuration")
    publish_topics: List[TopicConfig] = Field(
        default_factory=default_publish_topics, description="Pipe -> MQTT routes"
    )
    subscribe_topics: List[TopicConfig] = Field(
        default_factory=default_subscribe_topics, description="MQTT -> pipe routes"
    )
    pipe_dir: str = Field(DEFAULT_PIPE_DIR, description="Base directory for named pipes")
    flush_interval: int = Field(1, ge=1, description="Seconds between buffer flushes")
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        return normalize_log_level(v)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "AppConfig":
        """Load configuration from the environment and the config file.

        Args:
            path: Config file path (defaults to MQTT_BRIDGE_CONFIG or the system path)

        Returns:
            AppConfig with defaults overlaid by whatever the file provides
        """
        config = cls.from_file(resolve_config_path(path))

        pipe_dir = os.getenv("MQTT_BRIDGE_PIPE_DIR")
        if pipe_dir:
            config.pipe_dir = pipe_dir

        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            try:
                config.log_level = normalize_log_level(log_level)
            except ValueError as e:
                logger.warning(f"Ignoring LOG_LEVEL: {e}")

        return config

    @classmethod
    def from_file(cls, path: str) -> "AppConfig":
        """Parse a key=value config file on top of the defaults.

        A missing or unreadable file is not an error; malformed values and
        records are skipped so one bad line never prevents the rest loading.

        Args:
            path: Config file path

        Returns:
            Parsed AppConfig
        """
        config = cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            logger.info(f"Config file {path} not found, using defaults")
            return config
        except OSError as e:
            logger.warning(f"Could not read config file {path}, using defaults: {e}")
            return config

        broker_values = {}
        sections: dict = {}
        section: Optional[List[TopicConfig]] = None
        record: dict = {}

        for line_no, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue

            if line == PUBLISH_SECTION:
                section = sections["publish_topics"] = []
                record = {}
                continue
            if line == SUBSCRIBE_SECTION:
                section = sections["subscribe_topics"] = []
                record = {}
                continue
            if line.startswith("[") and line.endswith("]"):
                section = None
                continue

            if "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            value = _strip_quotes(value)

            if section is None:
                if key in _BROKER_KEYS:
                    broker_values[key] = value
                continue

            if key in ("topic", "pipe_name", "policy"):
                record[key] = value
            elif key == "qos":
                # qos is the trailing field and closes the record
                record["qos"] = value
                topic = _build_topic(record, path, line_no)
                if topic is not None:
                    section.append(topic)
                record = {}

        for name, topics in sections.items():
            setattr(config, name, topics)
        config.mqtt = _build_mqtt_config(broker_values, path)
        return config

    def describe(self) -> str:
        """Render the configuration as a human-readable summary."""
        mqtt = self.mqtt
        lines = [
            "MAVLink MQTT Configuration:",
            f"  Broker: {mqtt.host}:{mqtt.port}",
            f"  Client ID: {mqtt.client_id}",
            f"  Username: {mqtt.username}",
            f"  TLS: {'enabled' if mqtt.tls else 'disabled'}",
            f"  Keepalive: {mqtt.keepalive}s",
            f"  Reconnect delay: {mqtt.reconnect_delay}s",
            "",
            "Publish Topics (Pipe -> MQTT):",
        ]
        for topic in self.publish_topics:
            lines.append(f"  {topic.topic} <- {topic.pipe_name} (QoS {topic.qos}, {topic.policy.value})")
        lines.append("")
        lines.append("Subscribe Topics (MQTT -> Pipe):")
        for topic in self.subscribe_topics:
            lines.append(f"  {topic.topic} -> {topic.pipe_name} (QoS {topic.qos})")
        return "\n".join(lines)

    @staticmethod
    def save_default(path: str = DEFAULT_CONFIG_PATH) -> None:
        """Write the default configuration file.

        Raises:
            OSError: If the directory or file cannot be written
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(DEFAULT_CONFIG_TEXT)


_BROKER_KEYS = {
    "broker_host": "host",
    "broker_port": "port",
    "client_id": "client_id",
    "username": "username",
    "password": "password",
    "use_tls": "use_tls",
    "ca_cert_path": "ca_cert_path",
    "cert_path": "cert_path",
    "key_path": "key_path",
    "keepalive": "keepalive",
    "reconnect_delay": "reconnect_delay",
}

_INT_KEYS = {"broker_port", "keepalive", "reconnect_delay"}


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _build_topic(record: dict, path: str, line_no: int) -> Optional[TopicConfig]:
    """Build one topic record, or None if it is malformed."""
    try:
        fields = dict(record)
        fields["qos"] = int(fields["qos"])
        return TopicConfig(**fields)
    except (ValueError, ValidationError) as e:
        logger.warning(f"{path}:{line_no}: skipping malformed topic record {record}: {e}")
        return None


def _build_mqtt_config(values: dict, path: str) -> MQTTConfig:
    """Apply broker keys one at a time so a bad value only loses itself."""
    fields = {}
    for key, value in values.items():
        name = _BROKER_KEYS[key]
        if key in _INT_KEYS:
            try:
                fields[name] = int(value)
            except ValueError:
                logger.warning(f"{path}: ignoring non-integer {key} = {value!r}")
                continue
        elif key == "use_tls":
            fields[name] = _parse_bool(value)
        else:
            fields[name] = value

        try:
            MQTTConfig(**fields)
        except ValidationError as e:
            logger.warning(f"{path}: ignoring invalid {key} = {value!r}: {e.errors()[0]['msg']}")
            del fields[name]

    return MQTTConfig(**fields)


DEFAULT_CONFIG_TEXT = """\
# VOXL MAVLink MQTT Client Configuration
# This file configures the MAVLink MQTT client for publishing to topics

[broker]
broker_host = "localhost"
broker_port = 1883
client_id = "voxl-mavlink-mqtt-client"
username = ""
password = ""
keepalive = 60
reconnect_delay = 5

[tls]
use_tls = false
ca_cert_path = ""
cert_path = ""
key_path = ""

[publish_topics]
# Pipes to read and publish to MQTT (optional: policy = queue)
topic = "voxl/vio"
pipe_name = "vvhub_aligned_vio"
qos = 0

topic = "voxl/battery"
pipe_name = "/run/mpa/mavlink_sys_status/"
qos = 0

topic = "voxl/heartbeat"
pipe_name = "mavlink_ap_heartbeat"
qos = 0

[subscribe_topics]
# MQTT topics to subscribe to and forward to pipes
topic = "voxl/offboard_cmd"
pipe_name = "offboard_mqtt_cmd"
qos = 0
"""
