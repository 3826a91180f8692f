from __future__ import annotations

import re
import typing

UNRESERVED_CHARACTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

URL_REGEX = re.compile(
    r"(?P<head>[^?#]*)"
    r"(?:\?(?P<query>[^#]*))?"
    r"(?:#(?P<fragment>.*))?",
    re.DOTALL,
)


class SplitURL(typing.NamedTuple):
    head: str
    query: str | None
    fragment: str | None

    @property
    def has_query(self) -> bool:
        return bool(self.query)

    def __str__(self) -> str:
        return "".join([
            self.head,
            f"?{self.query}" if self.query is not None else "",
            f"#{self.fragment}" if self.fragment is not None else "",
        ])


def urlsplit(url: str) -> SplitURL:
    url_dict = URL_REGEX.match(url).groupdict()  # type: ignore[union-attr]
    return SplitURL(url_dict["head"], url_dict["query"], url_dict["fragment"])


def has_query(url: str) -> bool:
    return urlsplit(url).has_query


def _percent_encode(string: str) -> str:
    return "".join(f"%{byte:02X}" for byte in string.encode("utf-8"))


def percent_encoded(string: str, safe: str = "") -> str:
    """
    Percent-encode every character outside the RFC 3986 unreserved set
    and ``safe``, working on the UTF-8 bytes of the text.
    """
    non_escaped = UNRESERVED_CHARACTERS + safe
    if not string.rstrip(non_escaped):
        return string
    return "".join(c if c in non_escaped else _percent_encode(c) for c in string)


def _to_text(value: typing.Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def append_query_args(
    url: str,
    query_args: typing.Mapping[str, typing.Any] | None,
    url_encode: bool = False,
) -> str:
    """
    Append ``query_args`` to ``url`` in mapping order.

    The first pair is joined with ``?`` unless ``url`` already carries a
    query, in which case every pair is joined with ``&``. Keys are copied
    as given; values are percent-encoded only when ``url_encode`` is set.
    """
    if not query_args:
        return url

    parts = urlsplit(url)
    pairs: list[str] = []
    for key, value in query_args.items():
        text = _to_text(value)
        if url_encode:
            text = percent_encoded(text)
        pairs.append(f"{key}={text}")

    joined = "&".join(pairs)
    if parts.has_query:
        query = f"{parts.query}&{joined}"
    else:
        query = joined
    return str(parts._replace(query=query))
