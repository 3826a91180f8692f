from __future__ import annotations

import typing

HeaderValue = typing.Union[str, typing.List[str]]
ResponseHeaders = typing.Dict[str, HeaderValue]

STATUS_KEY = "Status"


def parse_http_response_headers(header_text: str) -> ResponseHeaders:
    """
    Parse a raw response header block into a mapping.

    ``HTTP/`` status lines are stored under ``Status``; when the block
    holds several (one per redirect hop) the last one wins. Every other
    line is split at its first colon. A name seen once maps to a plain
    string, a repeated name maps to the list of its values in the order
    they appeared. Lines without a colon are skipped. Names are kept
    exactly as sent.
    """
    headers: ResponseHeaders = {}

    for line in header_text.strip().split("\n"):
        line = line.strip()

        if line.startswith("HTTP/"):
            headers[STATUS_KEY] = line
            continue

        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()

        if key in headers:
            existing = headers[key]
            if not isinstance(existing, list):
                existing = headers[key] = [existing]
            existing.append(value)
        else:
            headers[key] = value

    return headers


def header_values(headers: typing.Mapping[str, HeaderValue], key: str) -> list[str]:
    """Return the values stored under ``key`` as a list, whatever their count."""
    value = headers.get(key)
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def split_response(raw: bytes, header_size: int) -> tuple[str, bytes]:
    """
    Split a buffered transfer result at ``header_size``.

    The header block is decoded as ISO-8859-1, the body is returned
    untouched.
    """
    return raw[:header_size].decode("iso-8859-1"), raw[header_size:]
