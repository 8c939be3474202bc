"""Message Framer - locates the header/body boundary and the body length.

Used in both directions: the reference server frames incoming requests and the
response decoder frames what the transport returned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from httpwire.headers import HEADER_ENCODING, decode_headers, get_header_values

BOUNDARY = b"\r\n\r\n"

# Hard cap on an incoming request header block. Past this without a boundary
# the read is abandoned.
MAX_HEADER_BYTES = 16384

_STATUS_LINE_PREFIX = b"HTTP/"
_LEADING_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True)
class FramingDecision:
    """Result of framing one read attempt.

    header_end: Offset just past the CRLFCRLF boundary, or None if not found.
    body_length: Declared Content-Length (0 when absent or unparseable).
    needs_more: True while the boundary or declared body bytes are missing.
    """

    header_end: int | None
    body_length: int
    needs_more: bool


def find_boundary(buffer: bytes, start: int = 0) -> int | None:
    """Offset immediately after the first CRLFCRLF at or after *start*."""
    index = buffer.find(BOUNDARY, start)
    if index == -1:
        return None
    return index + len(BOUNDARY)


def declared_body_length(headers: Mapping[str, list[str]]) -> int | None:
    """Content-Length as declared, or None when absent or unparseable.

    Like a lenient integer cast, leading digits are honoured and trailing
    garbage is ignored: ``"12abc"`` -> 12, ``"abc"`` -> None.
    """
    values = get_header_values(headers, "Content-Length")
    if not values:
        return None
    match = _LEADING_DIGITS.match(values[0].strip())
    if match is None:
        return None
    return int(match.group(0))


def expected_body_length(headers: Mapping[str, list[str]]) -> int:
    """Body bytes to wait for: the declared Content-Length, else 0."""
    declared = declared_body_length(headers)
    return declared if declared is not None else 0


def frame(buffer: bytes) -> FramingDecision:
    """Decide whether *buffer* holds a complete message."""
    header_end = find_boundary(buffer)
    if header_end is None:
        return FramingDecision(header_end=None, body_length=0, needs_more=True)

    headers = decode_headers(buffer[:header_end].decode(HEADER_ENCODING))
    body_length = expected_body_length(headers)
    available = len(buffer) - header_end
    return FramingDecision(
        header_end=header_end,
        body_length=body_length,
        needs_more=available < body_length,
    )


def find_last_header_block(buffer: bytes) -> tuple[int, int] | None:
    """Locate the final header block of a possibly concatenated response.

    A transport that follows redirects hands back every hop's header block
    back to back. A block that follows a boundary counts as another header
    block only when it starts with a status line, so CRLFCRLF inside a body
    is not taken for a boundary.

    A body that itself begins with ``HTTP/`` and contains CRLFCRLF is still
    indistinguishable from another header block here. Transports that know
    where their headers end report ``RawResponse.header_size``, and the
    decoder uses that instead of this search.

    Returns:
        (start, end) where buffer[start:end] is the last header block
        including its trailing boundary, or None if no boundary exists.
    """
    start = 0
    end = find_boundary(buffer)
    if end is None:
        return None

    while buffer.startswith(_STATUS_LINE_PREFIX, end):
        next_end = find_boundary(buffer, end)
        if next_end is None:
            break
        start, end = end, next_end

    return start, end
