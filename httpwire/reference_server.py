"""Minimal HTTP/1.1 reference server for exercising the client end to end.

Accepts one connection, reads one request using the same framing rules as the
client (httpwire.framing and httpwire.headers), answers with a fixed JSON echo
of what it received, then stops listening.

Usage:
    with ReferenceServer() as server:
        response = client.post(server.url + "/?ping=1", "payload")

The server runs on a daemon thread; the caller only talks to it over the
socket. Malformed requests (no header boundary within the byte cap or the
deadline) abort the connection without raising into the caller; the outcome
is recorded in ``state`` and ``error``.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from httpwire.framing import MAX_HEADER_BYTES, frame
from httpwire.headers import CRLF, HEADER_ENCODING, parse_header_lines, parse_request_line, split_start_line

logger = logging.getLogger(__name__)

READ_DEADLINE_SECONDS = 2.0
ACCEPT_TIMEOUT_SECONDS = 5.0
STREAM_TIMEOUT_SECONDS = 5.0
POLL_INTERVAL_SECONDS = 0.01
READ_CHUNK_SIZE = 1024


class ServerState(str, Enum):
    """Lifecycle of the single connection the server handles."""

    LISTENING = "listening"
    AWAITING_BOUNDARY = "awaiting_boundary"
    READING_DECLARED_BODY = "reading_declared_body"
    COMPLETE = "complete"
    ABORTED = "aborted"


class MalformedRequestError(Exception):
    """Raised when a peer's request cannot be framed within the limits."""


@dataclass(frozen=True)
class ReceivedRequest:
    """A request as decoded by the reference server."""

    method: str
    target: str
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""


def read_request(
    conn: socket.socket,
    deadline_seconds: float = READ_DEADLINE_SECONDS,
    max_header_bytes: int = MAX_HEADER_BYTES,
    stream_timeout: float = STREAM_TIMEOUT_SECONDS,
    on_state: Callable[[ServerState], None] | None = None,
) -> ReceivedRequest:
    """Read and decode one request from *conn*.

    The header block is read in full before any body bytes are awaited. The
    boundary phase polls with a short socket timeout; the body phase blocks
    up to *stream_timeout* per read and stops early on timeout or peer close.

    Raises:
        MalformedRequestError: If no CRLFCRLF arrives within *deadline_seconds*
            or *max_header_bytes*, if the header block itself is longer than
            *max_header_bytes*, or if the peer closes before the boundary.
    """
    def enter(state: ServerState) -> None:
        if on_state is not None:
            on_state(state)

    enter(ServerState.AWAITING_BOUNDARY)
    buffer = b""
    deadline = time.monotonic() + deadline_seconds
    conn.settimeout(POLL_INTERVAL_SECONDS)

    decision = frame(buffer)
    while decision.header_end is None:
        if len(buffer) > max_header_bytes:
            raise MalformedRequestError(
                f"No header boundary within {max_header_bytes} bytes ({len(buffer)} read)"
            )
        if time.monotonic() >= deadline:
            raise MalformedRequestError(
                f"Header block incomplete after {deadline_seconds}s ({len(buffer)} bytes read)"
            )
        try:
            chunk = conn.recv(READ_CHUNK_SIZE)
        except socket.timeout:
            continue
        if not chunk:
            raise MalformedRequestError(f"Peer closed after {len(buffer)} bytes, before the header boundary")
        buffer += chunk
        decision = frame(buffer)

    header_end = decision.header_end
    if header_end > max_header_bytes:
        raise MalformedRequestError(
            f"Header block of {header_end} bytes exceeds the {max_header_bytes} bytes allowed"
        )

    enter(ServerState.READING_DECLARED_BODY)
    # Content-Length comes from the peer; never size a read by it directly.
    conn.settimeout(stream_timeout)
    while decision.needs_more:
        missing = header_end + decision.body_length - len(buffer)
        try:
            chunk = conn.recv(min(READ_CHUNK_SIZE, missing))
        except socket.timeout:
            logger.warning(
                "body read timed out with %d of %d bytes", len(buffer) - header_end, decision.body_length
            )
            break
        if not chunk:
            break
        buffer += chunk
        decision = frame(buffer)

    start_line, lines = split_start_line(buffer[:header_end].decode(HEADER_ENCODING))
    method, target = parse_request_line(start_line)
    headers = parse_header_lines(lines)
    body = buffer[header_end:header_end + decision.body_length]

    return ReceivedRequest(method=method, target=target, headers=headers, body=body)


def build_echo_response(received: ReceivedRequest) -> bytes:
    """Render the fixed 200 response echoing *received* as JSON."""
    payload = json.dumps({
        "method": received.method,
        "uri": received.target,
        "body": received.body.decode("utf-8", errors="replace"),
        "headers": received.headers,
    }).encode("utf-8")

    head = CRLF.join([
        "HTTP/1.1 200 OK",
        "Content-Type: application/json",
        "X-Test: ok",
        f"Content-Length: {len(payload)}",
        "Connection: close",
    ])
    return (head + CRLF + CRLF).encode(HEADER_ENCODING) + payload


class ReferenceServer:
    """One-shot HTTP server running on its own thread.

    The listening socket is bound in __init__ so the port is known before
    start(), and it is closed on every exit path: after the response, after
    an abort, after the accept timeout, or in stop() if never started.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        accept_timeout: float = ACCEPT_TIMEOUT_SECONDS,
        read_deadline: float = READ_DEADLINE_SECONDS,
        max_header_bytes: int = MAX_HEADER_BYTES,
        stream_timeout: float = STREAM_TIMEOUT_SECONDS,
    ) -> None:
        """Bind the listening socket.

        Args:
            host: Interface to bind.
            port: Port to bind; 0 lets the OS choose.
            accept_timeout: Seconds to wait for the single connection.
            read_deadline: Seconds allowed to receive the header block.
            max_header_bytes: Bytes allowed before the header boundary.
            stream_timeout: Seconds per body read before giving up.
        """
        self._accept_timeout = accept_timeout
        self._read_deadline = read_deadline
        self._max_header_bytes = max_header_bytes
        self._stream_timeout = stream_timeout

        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._listener.bind((host, port))
            self._listener.listen(1)
        except OSError:
            self._listener.close()
            raise

        self.host, self.port = self._listener.getsockname()[:2]
        self.state = ServerState.LISTENING
        self.error: Exception | None = None
        self.received: ReceivedRequest | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def closed(self) -> bool:
        """True once the listening socket has been released."""
        return self._listener.fileno() == -1

    def start(self) -> None:
        """Serve one request on a background thread."""
        self._thread = threading.Thread(target=self.serve_once, name=f"reference-server-{self.port}", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop waiting for a connection and release the listener.

        Safe to call multiple times or if the server was never started.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        if not self.closed:
            self._listener.close()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the serving thread; returns True if it finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def __enter__(self) -> ReferenceServer:
        self.start()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.stop()

    def serve_once(self) -> None:
        """Accept one connection, answer it, and close the listener."""
        try:
            conn = self._accept()
            if conn is None:
                return
            with conn:
                try:
                    self.received = read_request(
                        conn,
                        deadline_seconds=self._read_deadline,
                        max_header_bytes=self._max_header_bytes,
                        stream_timeout=self._stream_timeout,
                        on_state=self._set_state,
                    )
                except MalformedRequestError as e:
                    self._abort(e)
                    return
                conn.sendall(build_echo_response(self.received))
                self._set_state(ServerState.COMPLETE)
                logger.debug("answered %s %s", self.received.method, self.received.target)
        except OSError as e:
            self._abort(e)
        finally:
            self._listener.close()

    def _accept(self) -> socket.socket | None:
        """Poll accept() until a client connects, stop() is called, or timeout."""
        deadline = time.monotonic() + self._accept_timeout
        self._listener.settimeout(POLL_INTERVAL_SECONDS * 10)
        while not self._stop_event.is_set():
            if time.monotonic() >= deadline:
                self._abort(TimeoutError(f"No connection within {self._accept_timeout}s"))
                return None
            try:
                conn, peer = self._listener.accept()
            except socket.timeout:
                continue
            logger.debug("accepted connection from %s:%s", *peer[:2])
            return conn
        self._set_state(ServerState.ABORTED)
        return None

    def _set_state(self, state: ServerState) -> None:
        self.state = state

    def _abort(self, error: Exception) -> None:
        self.error = error
        self._set_state(ServerState.ABORTED)
        logger.warning("reference server on port %d aborted: %s", self.port, error)
