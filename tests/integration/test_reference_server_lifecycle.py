"""Lifecycle tests for ReferenceServer over real TCP sockets.

These tests verify the listening socket is released on every exit path:
normal completion, abort by byte cap, abort by deadline, accept timeout,
and stop() without start().
"""

from __future__ import annotations

import socket

import pytest

from httpwire.reference_server import MalformedRequestError, ReferenceServer, ServerState


def _connect(server: ReferenceServer) -> socket.socket:
    return socket.create_connection((server.host, server.port), timeout=5.0)


class TestLifecycle:
    def test_binds_before_start(self) -> None:
        server = ReferenceServer()
        try:
            assert server.port > 0
            assert server.url == f"http://127.0.0.1:{server.port}"
            assert server.state == ServerState.LISTENING
            assert not server.closed
        finally:
            server.stop()
        assert server.closed

    def test_stop_is_idempotent(self) -> None:
        server = ReferenceServer()
        server.stop()
        server.stop()
        assert server.closed

    def test_answers_raw_client_then_stops_listening(self, reference_server: ReferenceServer) -> None:
        with _connect(reference_server) as conn:
            conn.sendall(b"GET /raw HTTP/1.1\r\nHost: x\r\n\r\n")
            response = b""
            while chunk := conn.recv(4096):
                response += chunk

        assert response.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Test: ok" in response
        assert reference_server.join(timeout=5.0)
        assert reference_server.state == ServerState.COMPLETE
        assert reference_server.closed

        with pytest.raises(OSError):
            _connect(reference_server).close()

    def test_accept_timeout_releases_listener(self) -> None:
        with ReferenceServer(accept_timeout=0.2) as server:
            assert server.join(timeout=5.0)
            assert server.state == ServerState.ABORTED
            assert isinstance(server.error, TimeoutError)
            assert server.closed

    def test_stop_interrupts_waiting_server(self) -> None:
        server = ReferenceServer(accept_timeout=30.0)
        server.start()
        server.stop(timeout=5.0)
        assert server.join(timeout=0)
        assert server.closed
        assert server.state == ServerState.ABORTED


class TestMalformedPeers:
    def test_abort_by_byte_cap(self, reference_server: ReferenceServer) -> None:
        with _connect(reference_server) as conn:
            conn.sendall(b"GET / HTTP/1.1\r\nX-Filler: " + b"a" * 17000)
            assert reference_server.join(timeout=5.0)

        assert reference_server.state == ServerState.ABORTED
        assert isinstance(reference_server.error, MalformedRequestError)
        assert reference_server.closed

    def test_abort_by_deadline(self) -> None:
        with ReferenceServer(read_deadline=0.3) as server:
            with _connect(server) as conn:
                conn.sendall(b"GET / HTTP/1.1\r\nHost: x\r\n")
                assert server.join(timeout=5.0)

            assert server.state == ServerState.ABORTED
            assert isinstance(server.error, MalformedRequestError)
            assert server.closed

    def test_aborted_connection_gets_no_response(self) -> None:
        with ReferenceServer(read_deadline=0.3) as server:
            with _connect(server) as conn:
                conn.sendall(b"GET / HTTP/1.1\r\n")
                assert server.join(timeout=5.0)
                assert conn.recv(1024) == b""

    def test_huge_content_length_answered_after_peer_close(self, reference_server: ReferenceServer) -> None:
        with _connect(reference_server) as conn:
            conn.sendall(b"POST / HTTP/1.1\r\nContent-Length: 99999999999999999999\r\n\r\nabc")
            conn.shutdown(socket.SHUT_WR)
            response = b""
            while chunk := conn.recv(4096):
                response += chunk

        assert response.startswith(b"HTTP/1.1 200 OK\r\n")
        assert reference_server.join(timeout=5.0)
        assert reference_server.state == ServerState.COMPLETE
        assert reference_server.error is None
        assert reference_server.received.body == b"abc"
        assert reference_server.closed
