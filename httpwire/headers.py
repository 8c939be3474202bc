"""Header Codec - converts header mappings to wire lines and back.

A header mapping is ``dict[str, list[str]]``: original name casing is kept as
the key, values are ordered. Lookups never rely on key casing; they lower-case
both sides and collect values from every matching key.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

CRLF = "\r\n"

# ISO-8859-1 maps every byte to one code point, so header bytes survive a
# decode/encode round trip unchanged.
HEADER_ENCODING = "iso-8859-1"


def normalize_header_value(value: Any) -> list[str]:
    """Coerce a loosely typed header value into a list of strings.

    None becomes the empty string, both as a scalar and inside a list.
    """
    if isinstance(value, (list, tuple)):
        return [_header_text(item) for item in value]
    return [_header_text(value)]


def _header_text(value: Any) -> str:
    return "" if value is None else str(value)


def encode_headers(headers: Mapping[Any, Any]) -> list[str]:
    """Render headers as ``"Name: Value"`` lines.

    One line per (name, value) pair; multi-valued headers yield several lines
    in insertion order. Names that are not non-empty strings are skipped.
    """
    lines: list[str] = []
    for name, values in headers.items():
        if not isinstance(name, str) or not name.strip():
            continue
        for value in normalize_header_value(values):
            lines.append(f"{name.strip()}: {value}")
    return lines


def _as_text(block: str | bytes) -> str:
    if isinstance(block, bytes):
        return block.decode(HEADER_ENCODING)
    return block


def _non_blank_lines(block: str | bytes) -> list[str]:
    return [line for line in _as_text(block).split(CRLF) if line.strip()]


def split_start_line(block: str | bytes) -> tuple[str, list[str]]:
    """Split a header block into its start line and the remaining lines.

    Blank lines are dropped first. Returns ``("", [])`` for an empty block.
    """
    lines = _non_blank_lines(block)
    if not lines:
        return "", []
    return lines[0], lines[1:]


def parse_header_lines(lines: Iterable[str]) -> dict[str, list[str]]:
    """Parse ``Name: Value`` lines into a header mapping.

    Lines without a colon and lines with an empty name are ignored.
    """
    headers: dict[str, list[str]] = {}
    for line in lines:
        name, sep, value = line.partition(":")
        if not sep:
            continue
        name = name.strip()
        if not name:
            continue
        headers.setdefault(name, []).append(value.strip())
    return headers


def decode_headers(block: str | bytes) -> dict[str, list[str]]:
    """Parse a raw header block, discarding its start line.

    The first non-blank line is the request or status line. Callers that need
    it use split_start_line() instead.
    """
    _, lines = split_start_line(block)
    return parse_header_lines(lines)


def parse_request_line(line: str) -> tuple[str, str]:
    """Return (method, target) from a request line.

    ``"POST /?ping=1 HTTP/1.1"`` -> ``("POST", "/?ping=1")``. Missing tokens
    come back as empty strings; the protocol version is ignored.
    """
    parts = line.split(" ", 2)
    method = parts[0] if parts else ""
    target = parts[1] if len(parts) > 1 else ""
    return method, target


def get_header_values(headers: Mapping[str, list[str]], name: str) -> list[str]:
    """Case-insensitive lookup collecting values from every matching key."""
    lowered = name.lower()
    values: list[str] = []
    for key, key_values in headers.items():
        if key.lower() == lowered:
            values.extend(key_values)
    return values


def get_header_line(headers: Mapping[str, list[str]], name: str) -> str:
    return ", ".join(get_header_values(headers, name))
