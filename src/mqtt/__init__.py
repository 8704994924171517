"""MQTT side of the pipe bridge.

This package provides the broker connection, the routing table, the
coalescing publish buffer and the bridge that ties them to local pipes.
"""

from .bridge import PipeMQTTBridge
from .buffer import CoalescingBuffer
from .connection import ConnectionManager, ConnectionState
from .handlers import InboundPipeline, OutboundPipeline
from .routing import RouteEntry, RoutingTable
from .timers import FlushTimer, Supervisor

__all__ = [
    "PipeMQTTBridge",
    "CoalescingBuffer",
    "ConnectionManager",
    "ConnectionState",
    "InboundPipeline",
    "OutboundPipeline",
    "RouteEntry",
    "RoutingTable",
    "FlushTimer",
    "Supervisor",
]
