"""Base classes for payload encoders."""

from abc import ABC, abstractmethod


class EncodeError(Exception):
    """Raised when an encoder cannot interpret a payload."""


class BaseEncoder(ABC):
    """Converts a raw pipe payload into structured text."""

    name = "base"

    @abstractmethod
    def encode(self, data: bytes) -> str:
        """Encode a raw payload.

        Raises:
            EncodeError: If the payload is not in this encoder's format
        """
        ...
