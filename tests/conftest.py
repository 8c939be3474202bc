"""Pytest configuration and fixtures for httpwire tests.

This file provides:
- PortReservation: Race-free port allocation for "nothing listening" tests
- RecordingTransport: In-memory Transport that records every execute() call
- Fixtures: Shared test infrastructure (reference server, factories)
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Any, Generator, Mapping

import pytest

from httpwire.errors import TransportFailure
from httpwire.models import RequestFactory
from httpwire.reference_server import ReferenceServer
from httpwire.transport import RawResponse


def make_raw_response(
    status_code: int = 200,
    headers: list[str] | None = None,
    body: bytes = b"",
    status_line: str | None = None,
    with_header_size: bool = True,
) -> RawResponse:
    """Build a RawResponse the way a transport would.

    Prefer this over hand-writing CRLF strings in tests.
    """
    lines = [status_line or f"HTTP/1.1 {status_code} OK", *(headers or [])]
    head = ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")
    return RawResponse(
        status_code=status_code,
        raw=head + body,
        header_size=len(head) if with_header_size else None,
    )


@dataclass
class TransportCall:
    method: str
    url: str
    headers: list[str]
    body: bytes | None
    options: dict[int, Any]


@dataclass
class RecordingTransport:
    """Transport double returning a canned response or raising a failure."""

    response: RawResponse = field(default_factory=make_raw_response)
    failure: TransportFailure | None = None
    calls: list[TransportCall] = field(default_factory=list)

    def execute(
        self,
        method: str,
        url: str,
        headers: list[str],
        body: bytes | None,
        options: Mapping[int, Any],
    ) -> RawResponse:
        self.calls.append(TransportCall(method, url, list(headers), body, dict(options)))
        if self.failure is not None:
            raise self.failure
        return self.response


class PortReservation:
    """Holds a bound-but-not-listening port so nothing can accept on it.

    Connecting to it is refused, which makes it a reliable unreachable
    address for the lifetime of the reservation.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> None:
        self._socket.close()

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def request_factory() -> RequestFactory:
    return RequestFactory()


@pytest.fixture
def reference_server() -> Generator[ReferenceServer, None, None]:
    """A started one-shot reference server; stopped after the test."""
    with ReferenceServer() as server:
        yield server


@pytest.fixture
def unreachable_url() -> Generator[str, None, None]:
    """URL of a local port with nothing listening."""
    with PortReservation() as reservation:
        yield f"http://127.0.0.1:{reservation.port}/"
