"""Ordered encoder selection by pipe name."""

import logging
from fnmatch import fnmatchcase
from typing import List, Optional, Sequence, Tuple, Union

from .base import BaseEncoder
from .imu import ImuEncoder
from .mavlink import MavlinkEncoder
from .vio import VioEncoder

EncoderRule = Tuple[str, BaseEncoder]


def default_rules() -> List[EncoderRule]:
    """Pipe name patterns tried before the generic fallback, in priority order."""
    return [
        ("*vio*", VioEncoder()),
        ("*imu*", ImuEncoder()),
        ("*mavlink*", MavlinkEncoder()),
    ]


class EncoderChain:
    """Picks the encoder for a pipe payload.

    The first rule whose pattern matches the pipe name is tried, then the
    fallback encoder, then the raw payload is returned unchanged. Encoding
    never raises.
    """

    def __init__(
        self,
        rules: Optional[Sequence[EncoderRule]] = None,
        fallback: Optional[BaseEncoder] = None,
        use_default_fallback: bool = True,
    ):
        """Initialize the chain.

        Args:
            rules: (glob pattern, encoder) pairs; defaults to default_rules()
            fallback: Generic encoder tried for every pipe; defaults to MAVLink
            use_default_fallback: Set False to have no generic fallback at all
        """
        self.rules = list(rules) if rules is not None else default_rules()
        if fallback is None and use_default_fallback:
            fallback = MavlinkEncoder()
        self.fallback = fallback
        self.logger = logging.getLogger(__name__)

    def candidates(self, pipe_name: str) -> List[BaseEncoder]:
        """Encoders to try for a pipe, in order, without repeats."""
        name = pipe_name.lower()
        encoders: List[BaseEncoder] = []
        for pattern, encoder in self.rules:
            if fnmatchcase(name, pattern.lower()):
                encoders.append(encoder)
                break

        if self.fallback is not None and not any(
            type(encoder) is type(self.fallback) for encoder in encoders
        ):
            encoders.append(self.fallback)
        return encoders

    def encode(self, pipe_name: str, data: bytes) -> Union[str, bytes]:
        """Encode a payload read from a pipe.

        Args:
            pipe_name: Name of the pipe the data came from
            data: Raw payload

        Returns:
            Encoded text, or the raw payload if no encoder accepted it
        """
        for encoder in self.candidates(pipe_name):
            try:
                return encoder.encode(data)
            except Exception as e:
                self.logger.debug(f"{encoder.name} encoder rejected {len(data)} bytes from '{pipe_name}': {e}")

        self.logger.debug(f"Using raw data for pipe '{pipe_name}'")
        return data
