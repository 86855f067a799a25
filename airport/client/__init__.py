"""Provider clients: the only part of Airport that touches the network."""

from airport.client.errors import (
    BlobTooLargeError,
    NotAuthenticatedError,
    RemoteError,
    TransportError,
    normalize_error,
)
from airport.client.protocol import RemoteCapabilityClient
from airport.client.xrpc import ProviderSession, XrpcCapabilityClient

__all__ = [
    "BlobTooLargeError",
    "NotAuthenticatedError",
    "ProviderSession",
    "RemoteCapabilityClient",
    "RemoteError",
    "TransportError",
    "XrpcCapabilityClient",
    "normalize_error",
]
