"""Request and response value objects for httpwire.

All models use Pydantic v2 and are frozen. Mutation methods return a new
instance so a request handed to one dispatch can never be changed underneath
it by another caller.

Header names keep the casing they were given; every lookup is
case-insensitive (see httpwire.headers).
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from httpwire.errors import ClientUsageError
from httpwire.headers import get_header_line, get_header_values, normalize_header_value


def _copy_headers(headers: dict[str, list[str]]) -> dict[str, list[str]]:
    return {name: list(values) for name, values in headers.items()}


def _drop_header(headers: dict[str, list[str]], name: str) -> dict[str, list[str]]:
    lowered = name.lower()
    return {k: list(v) for k, v in headers.items() if k.lower() != lowered}


def _check_header_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Header name must be a non-empty string, got {name!r}")
    return name.strip()


class _HeaderReader(BaseModel):
    """Case-insensitive header accessors shared by Request and Response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Header name -> ordered values"
    )

    @field_validator("headers")
    @classmethod
    def drop_empty_names(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {name: list(values) for name, values in value.items() if name.strip()}

    def get_header(self, name: str) -> list[str]:
        """All values for *name*, in order, across any casing of the name."""
        return get_header_values(self.headers, name)

    def get_header_line(self, name: str) -> str:
        """Values for *name* joined with ", " (empty string if absent)."""
        return get_header_line(self.headers, name)

    def has_header(self, name: str) -> bool:
        return bool(self.get_header(name))


class Request(_HeaderReader):
    """One HTTP request, ready to dispatch.

    An empty body means "no payload": the transport sends no body framing at
    all rather than a zero-length body.
    """

    method: str = Field(description="HTTP method token, uppercased")
    url: str = Field(description="Absolute target URL")
    body: bytes = Field(default=b"", description="Request payload (empty for none)")

    @field_validator("method")
    @classmethod
    def normalize_method(cls, value: str) -> str:
        value = value.strip().upper()
        if not value or any(ch.isspace() for ch in value):
            raise ValueError(f"Invalid HTTP method {value!r}")
        return value

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("URL must not be empty")
        return value.strip()

    def with_header(self, name: str, value: Any) -> Request:
        """Replace every value of *name* (any casing) with *value*."""
        name = _check_header_name(name)
        headers = _drop_header(self.headers, name)
        headers[name] = normalize_header_value(value)
        return self.model_copy(update={"headers": headers})

    def with_added_header(self, name: str, value: Any) -> Request:
        """Append *value* to *name*, keeping the casing already stored."""
        name = _check_header_name(name)
        headers = _copy_headers(self.headers)
        for existing in headers:
            if existing.lower() == name.lower():
                headers[existing].extend(normalize_header_value(value))
                break
        else:
            headers[name] = normalize_header_value(value)
        return self.model_copy(update={"headers": headers})

    def without_header(self, name: str) -> Request:
        return self.model_copy(update={"headers": _drop_header(self.headers, name)})

    def with_body(self, body: bytes | str) -> Request:
        if isinstance(body, str):
            body = body.encode("utf-8")
        return self.model_copy(update={"headers": _copy_headers(self.headers), "body": bytes(body)})

    def with_method(self, method: str) -> Request:
        return Request(method=method, url=self.url, headers=self.headers, body=self.body)

    def with_url(self, url: str) -> Request:
        return Request(method=self.method, url=url, headers=self.headers, body=self.body)


class Response(_HeaderReader):
    """One decoded HTTP response.

    Built only by httpwire.decoder from a complete raw exchange.
    """

    status_code: int = Field(description="HTTP status code reported by the transport")
    body: bytes = Field(default=b"", description="Body bytes after the final header block")

    @property
    def text(self) -> str:
        """Body decoded as UTF-8; undecodable bytes are replaced."""
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Parse the body as JSON.

        Raises:
            json.JSONDecodeError: If the body is not valid JSON.
        """
        return json.loads(self.body)


class RequestFactory:
    """Builds Request objects for HttpClient's shortcut verbs."""

    def create_request(self, method: str, url: str) -> Request:
        """Create an empty request for *method* and *url*.

        Raises:
            ClientUsageError: If method or URL is not usable.
        """
        try:
            return Request(method=method, url=url)
        except ValidationError as e:
            raise ClientUsageError(f"Cannot build request {method!r} {url!r}: {e}") from e
