"""Static routing between MQTT topics and pipe channels."""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Optional, Tuple

from ..config import BufferPolicy
from ..pipes import ChannelError, ChannelMode

if TYPE_CHECKING:
    from ..config import AppConfig

OpenChannel = Callable[[str, ChannelMode], int]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteEntry:
    """One directional mapping between a pipe channel and an MQTT topic."""

    channel_id: int
    topic: str
    qos: int = 0
    pipe_name: str = ""
    policy: BufferPolicy = BufferPolicy.COALESCE


class RoutingTable:
    """Read-only lookup tables for both directions of the bridge.

    The publish table is keyed by channel id (pipe -> MQTT) and the
    subscribe table by topic (MQTT -> pipe). Both are fixed at construction,
    so lookups need no locking.
    """

    def __init__(
        self,
        publish_routes: Iterable[RouteEntry] = (),
        subscribe_routes: Iterable[RouteEntry] = (),
    ):
        publish: Dict[int, RouteEntry] = {}
        for route in publish_routes:
            if route.channel_id in publish:
                logger.warning(f"Duplicate publish route for channel {route.channel_id}, keeping first")
                continue
            publish[route.channel_id] = route

        subscribe: Dict[str, RouteEntry] = {}
        for route in subscribe_routes:
            if route.topic in subscribe:
                logger.warning(f"Duplicate subscribe route for topic '{route.topic}', keeping first")
                continue
            subscribe[route.topic] = route

        self._publish = MappingProxyType(publish)
        self._subscribe = MappingProxyType(subscribe)

    @property
    def publish_routes(self) -> Tuple[RouteEntry, ...]:
        return tuple(self._publish.values())

    @property
    def subscribe_routes(self) -> Tuple[RouteEntry, ...]:
        return tuple(self._subscribe.values())

    def resolve_publish_route(self, channel_id: int) -> Optional[RouteEntry]:
        """Look up where data read from a channel should be published."""
        return self._publish.get(channel_id)

    def resolve_subscribe_route(self, topic: str) -> Optional[int]:
        """Look up the channel a message on an MQTT topic should be written to."""
        route = self._subscribe.get(topic)
        return route.channel_id if route is not None else None

    @classmethod
    def build(cls, config: "AppConfig", open_channel: OpenChannel) -> "RoutingTable":
        """Open every configured pipe and build the routing table.

        Malformed entries and pipes that fail to open are skipped; the rest
        of the table still loads.

        Args:
            config: Application configuration with publish/subscribe topics
            open_channel: Opens a pipe by name and mode, returning its channel id

        Returns:
            RoutingTable for the pipes that opened successfully
        """
        publish_routes = []
        opened_readers: Dict[str, str] = {}
        for entry in config.publish_topics:
            if not entry.topic or not entry.pipe_name:
                logger.warning(f"Skipping publish route with missing topic or pipe name: {entry}")
                continue
            if entry.pipe_name in opened_readers:
                logger.warning(
                    f"Pipe '{entry.pipe_name}' already publishes to '{opened_readers[entry.pipe_name]}'; "
                    f"route to '{entry.topic}' is ignored"
                )
                continue

            channel_id = _open(open_channel, entry.pipe_name, ChannelMode.READ)
            if channel_id is None:
                continue
            opened_readers[entry.pipe_name] = entry.topic
            publish_routes.append(
                RouteEntry(channel_id, entry.topic, entry.qos, entry.pipe_name, entry.policy)
            )

        subscribe_routes = []
        writers: Dict[str, int] = {}
        seen_topics = set()
        for entry in config.subscribe_topics:
            if not entry.topic or not entry.pipe_name:
                logger.warning(f"Skipping subscribe route with missing topic or pipe name: {entry}")
                continue
            if entry.topic in seen_topics:
                logger.warning(f"Topic '{entry.topic}' is already subscribed, skipping duplicate")
                continue

            channel_id = writers.get(entry.pipe_name)
            if channel_id is None:
                channel_id = _open(open_channel, entry.pipe_name, ChannelMode.WRITE)
                if channel_id is None:
                    continue
                writers[entry.pipe_name] = channel_id
            seen_topics.add(entry.topic)
            subscribe_routes.append(RouteEntry(channel_id, entry.topic, entry.qos, entry.pipe_name))

        return cls(publish_routes, subscribe_routes)


def _open(open_channel: OpenChannel, pipe_name: str, mode: ChannelMode) -> Optional[int]:
    try:
        return open_channel(pipe_name, mode)
    except ChannelError as e:
        logger.error(f"Failed to open {mode.value} pipe '{pipe_name}': {e}")
        return None
