"""Chat completion client and transport wiring."""

from .client import (
    CancellationToken,
    ChatClient,
    ChatClientError,
    ClientSettings,
    RequestCancelledError,
    TransportKind,
    TransportRegistry,
)

__all__ = [
    "CancellationToken",
    "ChatClient",
    "ChatClientError",
    "ClientSettings",
    "RequestCancelledError",
    "TransportKind",
    "TransportRegistry",
]
