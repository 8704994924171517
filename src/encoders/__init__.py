"""Payload encoders turning binary pipe data into JSON text."""

from .base import BaseEncoder, EncodeError
from .chain import EncoderChain, default_rules
from .imu import ImuEncoder
from .mavlink import MavlinkEncoder
from .vio import VioEncoder

__all__ = [
    "BaseEncoder",
    "EncodeError",
    "EncoderChain",
    "ImuEncoder",
    "MavlinkEncoder",
    "VioEncoder",
    "default_rules",
]
