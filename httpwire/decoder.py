"""Response Decoder - turns a transport's raw bytes into a Response."""

from __future__ import annotations

from httpwire.framing import BOUNDARY, declared_body_length, find_last_header_block
from httpwire.headers import HEADER_ENCODING, decode_headers
from httpwire.models import Response
from httpwire.transport import RawResponse


def _last_block(header_region: bytes) -> bytes:
    """The final CRLFCRLF-separated block of a header region."""
    blocks = [block for block in header_region.strip().split(BOUNDARY) if block.strip()]
    return blocks[-1] if blocks else b""


def decode_response(raw: RawResponse) -> Response:
    """Decode a complete raw exchange.

    Only the last header block is authoritative: a transport that followed
    redirects returns every hop's headers back to back. The status code comes
    from the transport; the status line itself is discarded.

    The body is everything after the header region. When the final headers
    declare a Content-Length shorter than what is present, the excess is
    dropped; a shorter body is returned as-is, never padded.
    """
    data = raw.raw

    if raw.header_size is not None:
        header_end = min(max(raw.header_size, 0), len(data))
        header_block = _last_block(data[:header_end])
    else:
        located = find_last_header_block(data)
        if located is None:
            header_block, header_end = data, len(data)
        else:
            start, header_end = located
            header_block = data[start:header_end]

    headers = decode_headers(header_block.decode(HEADER_ENCODING))
    body = data[header_end:]

    declared = declared_body_length(headers)
    if declared is not None and len(body) > declared:
        body = body[:declared]

    return Response(status_code=raw.status_code, headers=headers, body=body)
