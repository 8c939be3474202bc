"""Request Dispatcher - sends a Request over a Transport, once.

Usage:
    client = HttpClient(request_factory=RequestFactory())
    response = client.post("http://127.0.0.1:8080/?ping=1", "payload", {"X-Trace": "test-1"})

    # Or with an explicit request
    request = Request(method="GET", url="http://127.0.0.1:8080/")
    response = client.dispatch(request, {TransportOption.TIMEOUT_MS: 500})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from httpwire.classifier import classify_failure
from httpwire.decoder import decode_response
from httpwire.errors import ClientUsageError, TransportFailure
from httpwire.headers import encode_headers, get_header_values, normalize_header_value
from httpwire.models import Request, RequestFactory, Response
from httpwire.transport import HttpxTransport, Transport, TransportOption, merge_options

if TYPE_CHECKING:
    from httpwire.config_loader import ClientConfig

logger = logging.getLogger(__name__)

# Applied under every dispatch; per-call and configured options override them.
DEFAULT_OPTIONS: dict[int, Any] = {
    TransportOption.FOLLOW_LOCATION: False,
}


class HttpClient:
    """Synchronous HTTP client.

    Instances are immutable: with_options() and without_ssl_verification()
    return new clients. Each dispatch() blocks until the transport returns
    and invokes the transport exactly once; there is no retry and no
    redirect following unless the option table asks the transport for it.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        options: Mapping[Any, Any] | None = None,
        request_factory: RequestFactory | None = None,
        default_headers: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Transport performing the exchange. Defaults to HttpxTransport.
            options: Integer-keyed transport options. They win over per-call
                     options on collision. Non-integer keys are ignored.
            request_factory: Needed by request() and the shortcut verbs.
            default_headers: Headers added to a request that does not
                             already carry them (case-insensitive).
        """
        self._transport: Transport = transport if transport is not None else HttpxTransport()
        self._options = merge_options(options)
        self._request_factory = request_factory
        self._default_headers = {
            name: normalize_header_value(value)
            for name, value in (default_headers or {}).items()
            if isinstance(name, str) and name.strip()
        }

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        transport: Transport | None = None,
    ) -> HttpClient:
        """Build a client from a loaded ClientConfig, with a RequestFactory."""
        return cls(
            transport=transport,
            options=config.to_transport_options(),
            request_factory=RequestFactory(),
            default_headers=config.headers,
        )

    @property
    def transport_options(self) -> dict[int, Any]:
        """A copy of the configured option table."""
        return dict(self._options)

    def with_options(self, options: Mapping[Any, Any]) -> HttpClient:
        """Return a client whose options are overlaid with *options*."""
        return HttpClient(
            transport=self._transport,
            options=merge_options(self._options, options),
            request_factory=self._request_factory,
            default_headers=self._default_headers,
        )

    def without_ssl_verification(self) -> HttpClient:
        return self.with_options({
            TransportOption.SSL_VERIFY_PEER: False,
            TransportOption.SSL_VERIFY_HOST: 0,
        })

    # -------------------------------------------------------------------------
    # Shortcut verbs
    # -------------------------------------------------------------------------

    def get(self, url: str, headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("GET", url, b"", headers)

    def post(self, url: str, body: bytes | str = b"", headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("POST", url, body, headers)

    def put(self, url: str, body: bytes | str = b"", headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("PUT", url, body, headers)

    def patch(self, url: str, body: bytes | str = b"", headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("PATCH", url, body, headers)

    def delete(self, url: str, body: bytes | str = b"", headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("DELETE", url, body, headers)

    def head(self, url: str, headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("HEAD", url, b"", headers)

    def options(self, url: str, body: bytes | str = b"", headers: Mapping[Any, Any] | None = None) -> Response:
        return self.request("OPTIONS", url, body, headers)

    def request(
        self,
        method: str,
        url: str,
        body: bytes | str = b"",
        headers: Mapping[Any, Any] | None = None,
    ) -> Response:
        """Build a request with the configured factory and dispatch it.

        Header names that are not non-empty strings are skipped. Values may
        be scalars or lists.

        Raises:
            ClientUsageError: If no request factory is configured. Raised
                before any network activity.
            NetworkError: If the transport could not complete the exchange.
            RequestError: If the exchange failed at the protocol level.
        """
        if self._request_factory is None:
            raise ClientUsageError("A RequestFactory is required for shortcut methods.")

        request = self._request_factory.create_request(method, url)

        for name, value in (headers or {}).items():
            if not isinstance(name, str) or not name.strip():
                continue
            request = request.with_header(name, value)

        if body:
            request = request.with_body(body)

        return self.dispatch(request)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, request: Request, options: Mapping[Any, Any] | None = None) -> Response:
        """Send *request* once and decode the response.

        Options are layered: built-in defaults, then *options*, then the
        options configured on this client.

        Raises:
            NetworkError: If the transport could not complete the exchange.
            RequestError: If the exchange failed at the protocol level.
            ClientUsageError: If the transport rejects an option value.
        """
        header_lines = encode_headers(self._headers_for(request))
        # Empty body means no payload at all, not a zero-length one.
        payload = request.body if request.body else None
        merged = merge_options(DEFAULT_OPTIONS, options, self._options)

        logger.debug("dispatching %s %s", request.method, request.url)
        try:
            raw = self._transport.execute(request.method, request.url, header_lines, payload, merged)
        except TransportFailure as e:
            raise classify_failure(e, request) from e

        response = decode_response(raw)
        logger.debug("%s %s -> %d (%d body bytes)", request.method, request.url, response.status_code, len(response.body))
        return response

    def _headers_for(self, request: Request) -> dict[str, list[str]]:
        """Request headers plus any default header the request lacks."""
        headers = {name: list(values) for name, values in request.headers.items()}
        for name, values in self._default_headers.items():
            if not get_header_values(headers, name):
                headers[name] = list(values)
        return headers
