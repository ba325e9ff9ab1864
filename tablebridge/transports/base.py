"""Base transport interface for TableBridge.

Transports handle the raw I/O connection lifecycle of one call leg.
They are responsible for connecting, sending, receiving, and disconnecting.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class TransportClosed(Exception):
    """Raised by :meth:`BaseTransport.recv` once the peer has closed the leg.

    Implementations translate their library's close exception into this
    one so the bridge never depends on a particular WebSocket stack.
    """


class BaseTransport(ABC):
    """Abstract base class for transport connections.

    One transport wraps the telephony leg (accepted by the HTTP server) and
    another wraps the agent leg (dialled out by the bridge).
    """

    @abstractmethod
    async def connect(self, **kwargs) -> None:
        """Establish the transport connection."""
        ...

    @abstractmethod
    async def send(self, data: bytes | str) -> None:
        """Send data over the transport."""
        ...

    @abstractmethod
    async def recv(self) -> bytes | str:
        """Receive the next message from the transport.

        Raises:
            TransportClosed: If the connection is closed.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the transport connection gracefully. Safe to call twice."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the transport is currently connected."""
        ...
