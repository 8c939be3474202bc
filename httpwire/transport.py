"""Transport capability and the default httpx-backed transport.

The dispatcher only knows the narrow Transport protocol: hand over method,
URL, wire header lines, an optional payload and an integer-keyed option table;
get back the raw response bytes or a TransportFailure.

Option ids and error codes reuse libcurl's numbering so that diagnostics line
up with curl output, but nothing here depends on libcurl.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping, Protocol

import httpx

from httpwire.errors import ClientUsageError, TransportFailure
from httpwire.headers import CRLF, HEADER_ENCODING

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_REDIRECTS = 20


class TransportOption(IntEnum):
    """Option ids understood by HttpxTransport."""

    PROXY = 10004
    USER_AGENT = 10018
    SSL_CERT = 10025
    CA_INFO = 10065
    SSL_CIPHER_LIST = 10083
    SSL_KEY = 10087
    KEY_PASSWORD = 10258
    FOLLOW_LOCATION = 52
    SSL_VERIFY_PEER = 64
    MAX_REDIRECTS = 68
    SSL_VERIFY_HOST = 81
    TIMEOUT_MS = 155
    CONNECT_TIMEOUT_MS = 156


class TransportErrorCode(IntEnum):
    """Numeric failure codes reported in TransportFailure.code."""

    UNSUPPORTED_PROTOCOL = 1
    URL_MALFORMAT = 3
    COULDNT_RESOLVE_PROXY = 5
    COULDNT_RESOLVE_HOST = 6
    COULDNT_CONNECT = 7
    WEIRD_SERVER_REPLY = 8
    OPERATION_TIMEDOUT = 28
    SSL_CONNECT_ERROR = 35
    TOO_MANY_REDIRECTS = 47
    GOT_NOTHING = 52
    SEND_ERROR = 55
    RECV_ERROR = 56
    PEER_FAILED_VERIFICATION = 60


@dataclass(frozen=True)
class RawResponse:
    """What a transport hands back for one completed exchange.

    raw: Every header block the transport saw (one per redirect hop when it
        followed redirects), then the final body bytes.
    status_code: Final status code, already parsed by the transport.
    header_size: Length of the header part of raw, if the transport knows it.
    """

    status_code: int
    raw: bytes
    header_size: int | None = None


class Transport(Protocol):
    """Performs exactly one network exchange per execute() call."""

    def execute(
        self,
        method: str,
        url: str,
        headers: list[str],
        body: bytes | None,
        options: Mapping[int, Any],
    ) -> RawResponse:
        """Send the request and return the raw response.

        Raises:
            TransportFailure: If the exchange could not be completed.
        """
        ...


def is_option_key(key: Any) -> bool:
    """Option tables accept int keys only; bool is not an option id."""
    return isinstance(key, int) and not isinstance(key, bool)


def merge_options(*layers: Mapping[Any, Any] | None) -> dict[int, Any]:
    """Overlay option tables left to right; later layers win on collision.

    Non-integer keys are reserved and dropped without error.
    """
    merged: dict[int, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if is_option_key(key):
                merged[int(key)] = value
    return merged


# Fragments of resolver error messages across glibc, macOS and Windows.
_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname",
    "getaddrinfo failed",
    "no address associated",
)


def _failure_code(exc: Exception) -> TransportErrorCode:
    """Map an httpx exception onto a TransportErrorCode."""
    message = str(exc).lower()

    if isinstance(exc, httpx.InvalidURL):
        return TransportErrorCode.URL_MALFORMAT
    if isinstance(exc, httpx.TimeoutException):
        return TransportErrorCode.OPERATION_TIMEDOUT
    if isinstance(exc, httpx.ProxyError):
        return TransportErrorCode.COULDNT_RESOLVE_PROXY
    if isinstance(exc, httpx.UnsupportedProtocol):
        return TransportErrorCode.UNSUPPORTED_PROTOCOL
    if isinstance(exc, httpx.ConnectError):
        if any(marker in message for marker in _DNS_FAILURE_MARKERS):
            return TransportErrorCode.COULDNT_RESOLVE_HOST
        if "certificate" in message:
            return TransportErrorCode.PEER_FAILED_VERIFICATION
        if "ssl" in message or "tls" in message:
            return TransportErrorCode.SSL_CONNECT_ERROR
        return TransportErrorCode.COULDNT_CONNECT
    if isinstance(exc, httpx.WriteError):
        return TransportErrorCode.SEND_ERROR
    if isinstance(exc, httpx.ReadError):
        return TransportErrorCode.RECV_ERROR
    if isinstance(exc, httpx.RemoteProtocolError):
        if "without sending" in message:
            return TransportErrorCode.GOT_NOTHING
        return TransportErrorCode.WEIRD_SERVER_REPLY
    if isinstance(exc, httpx.TooManyRedirects):
        return TransportErrorCode.TOO_MANY_REDIRECTS
    if isinstance(exc, httpx.TransportError) and not isinstance(exc, httpx.ProtocolError):
        return TransportErrorCode.RECV_ERROR
    return TransportErrorCode.WEIRD_SERVER_REPLY


def _numeric_option(options: Mapping[int, Any], option: TransportOption, convert: type) -> Any:
    """Convert a numeric option value, rejecting values that are not numbers.

    Raises:
        ClientUsageError: If the value cannot be converted.
    """
    value = options[option]
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ClientUsageError(f"Invalid value for option {option.name}: {value!r}") from e


def _split_header_lines(lines: list[str]) -> list[tuple[bytes, bytes]]:
    """Turn ``"Name: Value"`` lines back into (name, value) byte pairs.

    Values are encoded as ISO-8859-1; characters outside it become '?'
    rather than failing the whole request.
    """
    pairs: list[tuple[bytes, bytes]] = []
    for line in lines:
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            continue
        pairs.append((
            name.strip().encode(HEADER_ENCODING, errors="replace"),
            value.strip().encode(HEADER_ENCODING, errors="replace"),
        ))
    return pairs


def _render_header_block(response: httpx.Response) -> bytes:
    """Rebuild the status line and header lines of one response hop."""
    status_line = f"{response.http_version} {response.status_code} {response.reason_phrase}".rstrip()
    lines = [status_line.encode(HEADER_ENCODING, errors="replace")]
    for name, value in response.headers.raw:
        lines.append(name + b": " + value)
    return CRLF.encode().join(lines) + CRLF.encode() * 2


class HttpxTransport:
    """Transport backed by httpx.

    Opens a fresh httpx.Client for every exchange and closes it before
    returning, so no connection state is shared between dispatches.

    Usage:
        transport = HttpxTransport()
        raw = transport.execute("GET", "http://example.com/", [], None, {})
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        httpx_transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            default_timeout: Timeout in seconds when TIMEOUT_MS is not set.
            httpx_transport: Low-level httpx transport to use instead of the
                             network (e.g. httpx.MockTransport).
        """
        self._default_timeout = default_timeout
        self._httpx_transport = httpx_transport

    def execute(
        self,
        method: str,
        url: str,
        headers: list[str],
        body: bytes | None,
        options: Mapping[int, Any],
    ) -> RawResponse:
        """Perform one exchange and return the raw response bytes.

        The body is read undecoded (no gzip/deflate handling) so that its
        length matches any Content-Length the server declared.

        Raises:
            TransportFailure: On any connection, TLS, timeout or protocol error.
            ClientUsageError: If a numeric option holds a non-numeric value.
        """
        client_kwargs = self._build_client_kwargs(options)
        header_pairs = _split_header_lines(headers)

        try:
            with httpx.Client(**client_kwargs) as client:
                request = client.build_request(method, url, headers=header_pairs, content=body)
                logger.debug("sending %s %s (%d header lines)", method, url, len(header_pairs))
                response = client.send(request, stream=True)
                try:
                    content = b"".join(response.iter_raw())
                finally:
                    response.close()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            code = _failure_code(e)
            logger.debug("transport failure for %s %s: code=%s %s", method, url, int(code), e)
            raise TransportFailure(code, str(e) or type(e).__name__) from e

        header_part = b"".join(_render_header_block(hop) for hop in [*response.history, response])
        return RawResponse(
            status_code=response.status_code,
            raw=header_part + content,
            header_size=len(header_part),
        )

    def _build_client_kwargs(self, options: Mapping[int, Any]) -> dict[str, Any]:
        """Translate an option table into httpx.Client keyword arguments."""
        known = {int(member) for member in TransportOption}
        unknown = sorted(key for key in options if key not in known)
        if unknown:
            logger.debug("ignoring transport options not supported by httpx: %s", unknown)

        timeout = self._default_timeout
        if options.get(TransportOption.TIMEOUT_MS):
            timeout = _numeric_option(options, TransportOption.TIMEOUT_MS, float) / 1000.0
        connect_timeout = timeout
        if options.get(TransportOption.CONNECT_TIMEOUT_MS):
            connect_timeout = _numeric_option(options, TransportOption.CONNECT_TIMEOUT_MS, float) / 1000.0
        max_redirects = DEFAULT_MAX_REDIRECTS
        if TransportOption.MAX_REDIRECTS in options:
            max_redirects = _numeric_option(options, TransportOption.MAX_REDIRECTS, int)

        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(timeout, connect=connect_timeout),
            "follow_redirects": bool(options.get(TransportOption.FOLLOW_LOCATION, False)),
            "max_redirects": max_redirects,
            "verify": self._build_verify(options),
        }

        if self._httpx_transport is not None:
            kwargs["transport"] = self._httpx_transport

        if options.get(TransportOption.USER_AGENT):
            kwargs["headers"] = {"User-Agent": str(options[TransportOption.USER_AGENT])}
        if options.get(TransportOption.PROXY):
            kwargs["proxy"] = str(options[TransportOption.PROXY])

        return kwargs

    def _build_verify(self, options: Mapping[int, Any]) -> ssl.SSLContext | bool:
        """Build the httpx ``verify`` argument from the TLS options.

        Returns True for library defaults, False to disable verification
        outright, or an SSLContext when certificates, ciphers or host-check
        settings need to be applied.

        Raises:
            TransportFailure: If the cipher string or certificate files are invalid.
        """
        verify_peer = bool(options.get(TransportOption.SSL_VERIFY_PEER, True))
        verify_host = bool(options.get(TransportOption.SSL_VERIFY_HOST, 2))
        ca_bundle = options.get(TransportOption.CA_INFO)
        cert = options.get(TransportOption.SSL_CERT)
        key = options.get(TransportOption.SSL_KEY)
        key_password = options.get(TransportOption.KEY_PASSWORD)
        ciphers = options.get(TransportOption.SSL_CIPHER_LIST)

        needs_context = bool(ca_bundle or cert or ciphers) or (verify_peer and not verify_host)
        if not needs_context:
            return verify_peer

        try:
            ssl_context = ssl.create_default_context()
            if ciphers:
                ssl_context.set_ciphers(str(ciphers))
            if ca_bundle and verify_peer:
                ssl_context.load_verify_locations(str(ca_bundle))
            if cert:
                ssl_context.load_cert_chain(str(cert), str(key) if key else None, key_password)
        except ssl.SSLError as e:
            raise TransportFailure(TransportErrorCode.SSL_CONNECT_ERROR, f"Invalid TLS configuration: {e}") from e
        except OSError as e:
            raise TransportFailure(TransportErrorCode.SSL_CONNECT_ERROR, f"Cannot load TLS material: {e}") from e

        if not verify_peer:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        elif not verify_host:
            ssl_context.check_hostname = False

        return ssl_context
