"""Error taxonomy for httpwire.

HttpClientError is the base class callers catch. NetworkError and RequestError
carry the Request that was being dispatched; ClientUsageError never does,
because it is raised before a request reaches the transport.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from httpwire.models import Request


DEFAULT_FAILURE_MESSAGE = "HTTP request failed."


class ErrorKind(str, Enum):
    """Which side of the exchange a failure belongs to."""

    NETWORK = "network"  # Exchange could not complete (refused, timeout, DNS, TLS)
    PROTOCOL = "protocol"  # Peer or URL violated the protocol
    CLIENT_USAGE = "client_usage"  # Caller misconfiguration, no I/O attempted


class HttpClientError(Exception):
    """Base class for client errors. Raised directly for usage errors."""

    kind: ErrorKind = ErrorKind.CLIENT_USAGE

    def __init__(self, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ClientUsageError(HttpClientError):
    """Raised when a capability is used without the configuration it needs."""


class _RequestBoundError(HttpClientError):
    def __init__(self, message: str, request: Request, code: int = 0) -> None:
        super().__init__(message or DEFAULT_FAILURE_MESSAGE, code)
        self._request = request

    @property
    def request(self) -> Request:
        """The request being dispatched when the failure happened."""
        return self._request

    def __str__(self) -> str:
        return f"{self.message} (code {self.code}, {self._request.method} {self._request.url})"


class NetworkError(_RequestBoundError):
    """Raised when the transport could not complete the exchange."""

    kind = ErrorKind.NETWORK


class RequestError(_RequestBoundError):
    """Raised when the exchange failed at the protocol level."""

    kind = ErrorKind.PROTOCOL


class TransportFailure(Exception):
    """Raised by a transport to report a failed exchange.

    Transports raise this instead of library-specific exceptions so the
    dispatcher can classify failures without knowing the transport.
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message
