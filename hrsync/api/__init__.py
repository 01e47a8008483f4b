"""HiBob REST API client."""

from .client import HiBobClient, HiBobError, TransientNetworkError, UnexpectedResponseError

__all__ = [
    "HiBobClient",
    "HiBobError",
    "TransientNetworkError",
    "UnexpectedResponseError",
]
