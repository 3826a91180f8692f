"""
Transports carry out the single transfer a :class:`~curlclient.CurlClient`
is configured for.

A transport hands out opaque handles and exposes the small capability set
the client relies on: option writes keyed by :class:`curl_cffi.CurlOpt`,
one blocking ``perform`` that returns the buffered result, post-transfer
introspection and release.

* :class:`CurlTransport` drives libcurl through ``curl_cffi``.
* :class:`MockTransport` answers from a Python callable and records every
  option write, for tests.
"""

from __future__ import annotations

import logging
import typing
from dataclasses import dataclass, field
from io import BytesIO

from curl_cffi import Curl, CurlError, CurlInfo, CurlOpt

from ._exceptions import TransportError

logger = logging.getLogger("curlclient")

OptionKey = typing.Union[CurlOpt, int, str]

# Keys of the diagnostics mapping, named the way libcurl's getinfo
# documentation names them.
INFO_FIELDS: tuple[tuple[str, str], ...] = (
    ("url", "EFFECTIVE_URL"),
    ("content_type", "CONTENT_TYPE"),
    ("http_code", "RESPONSE_CODE"),
    ("header_size", "HEADER_SIZE"),
    ("request_size", "REQUEST_SIZE"),
    ("filetime", "FILETIME"),
    ("ssl_verify_result", "SSL_VERIFYRESULT"),
    ("redirect_count", "REDIRECT_COUNT"),
    ("total_time", "TOTAL_TIME"),
    ("namelookup_time", "NAMELOOKUP_TIME"),
    ("connect_time", "CONNECT_TIME"),
    ("pretransfer_time", "PRETRANSFER_TIME"),
    ("size_upload", "SIZE_UPLOAD_T"),
    ("size_download", "SIZE_DOWNLOAD_T"),
    ("speed_download", "SPEED_DOWNLOAD_T"),
    ("speed_upload", "SPEED_UPLOAD_T"),
    ("download_content_length", "CONTENT_LENGTH_DOWNLOAD_T"),
    ("upload_content_length", "CONTENT_LENGTH_UPLOAD_T"),
    ("starttransfer_time", "STARTTRANSFER_TIME"),
    ("redirect_time", "REDIRECT_TIME"),
    ("redirect_url", "REDIRECT_URL"),
    ("primary_ip", "PRIMARY_IP"),
    ("primary_port", "PRIMARY_PORT"),
    ("local_ip", "LOCAL_IP"),
    ("local_port", "LOCAL_PORT"),
    ("http_version", "HTTP_VERSION"),
)


def resolve_option(key: OptionKey) -> CurlOpt:
    """
    Map an option key to its :class:`CurlOpt` member.

    Accepts a member, its integer value, or its name with or without the
    ``CURLOPT_`` prefix (``"followlocation"``, ``"CURLOPT_FOLLOWLOCATION"``).
    """
    if isinstance(key, CurlOpt):
        return key
    if isinstance(key, str):
        name = key.strip().upper()
        if name.startswith("CURLOPT_"):
            name = name[len("CURLOPT_"):]
        try:
            return CurlOpt[name]
        except KeyError:
            raise ValueError(f"Unknown curl option: {key!r}") from None
    try:
        return CurlOpt(key)
    except ValueError:
        raise ValueError(f"Unknown curl option: {key!r}") from None


class BaseTransport:
    def open(self, uri: str) -> typing.Any:
        """
        Acquire a handle bound to ``uri``.

        Returns ``None`` or raises :class:`TransportError` when no usable
        handle can be produced.
        """
        raise NotImplementedError()  # pragma: no cover

    def setopt(self, handle: typing.Any, option: OptionKey, value: typing.Any) -> None:
        raise NotImplementedError()  # pragma: no cover

    def buffer_result(self, handle: typing.Any) -> None:
        """Collect the transfer output in memory instead of writing it out."""
        raise NotImplementedError()  # pragma: no cover

    def perform(self, handle: typing.Any) -> bytes:
        """
        Run the transfer and return the buffered result.

        Raises :class:`TransportError` when the transfer fails; the error
        carries the bytes received so far.
        """
        raise NotImplementedError()  # pragma: no cover

    def header_size(self, handle: typing.Any) -> int:
        raise NotImplementedError()  # pragma: no cover

    def http_code(self, handle: typing.Any) -> int:
        raise NotImplementedError()  # pragma: no cover

    def info(self, handle: typing.Any) -> dict[str, typing.Any]:
        raise NotImplementedError()  # pragma: no cover

    def close(self, handle: typing.Any) -> None:
        raise NotImplementedError()  # pragma: no cover


# ---------------------------------------------------------------------------
# libcurl
# ---------------------------------------------------------------------------


class CurlHandle:
    def __init__(self, curl: Curl) -> None:
        self.curl = curl
        self.buffer = BytesIO()

    def __repr__(self) -> str:
        return f"<CurlHandle buffered={self.buffer.tell()}>"


class CurlTransport(BaseTransport):
    def open(self, uri: str) -> CurlHandle:
        try:
            handle = CurlHandle(Curl())
            handle.curl.setopt(CurlOpt.URL, uri)
        except CurlError as exc:
            raise TransportError(str(exc), code=exc.code) from exc
        return handle

    def setopt(self, handle: CurlHandle, option: OptionKey, value: typing.Any) -> None:
        option = resolve_option(option)
        if option == CurlOpt.HTTPHEADER:
            value = [
                header if isinstance(header, bytes) else header.encode("utf-8")
                for header in value
            ]
        elif isinstance(value, bool):
            value = int(value)
        try:
            handle.curl.setopt(option, value)
        except CurlError as exc:
            raise TransportError(str(exc), code=exc.code) from exc

    def buffer_result(self, handle: CurlHandle) -> None:
        handle.curl.setopt(CurlOpt.WRITEDATA, handle.buffer)

    def perform(self, handle: CurlHandle) -> bytes:
        try:
            handle.curl.perform()
        except CurlError as exc:
            logger.debug("curl perform failed with code %s", exc.code)
            raise TransportError(
                str(exc), code=exc.code, partial=handle.buffer.getvalue()
            ) from exc
        return handle.buffer.getvalue()

    def header_size(self, handle: CurlHandle) -> int:
        return int(handle.curl.getinfo(CurlInfo.HEADER_SIZE))  # type: ignore[arg-type]

    def http_code(self, handle: CurlHandle) -> int:
        return int(handle.curl.getinfo(CurlInfo.RESPONSE_CODE))  # type: ignore[arg-type]

    def info(self, handle: CurlHandle) -> dict[str, typing.Any]:
        info: dict[str, typing.Any] = {}
        for key, name in INFO_FIELDS:
            member = getattr(CurlInfo, name, None)
            if member is None:
                continue
            value = handle.curl.getinfo(member)
            if isinstance(value, bytes):
                value = value.decode("latin-1")
            info[key] = value
        return info

    def close(self, handle: CurlHandle) -> None:
        handle.curl.close()
        handle.buffer.close()


# ---------------------------------------------------------------------------
# In-memory transport for tests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MockResult:
    raw: bytes = b""
    header_size: int = 0
    http_code: int = 0
    error: str | None = None
    info: dict[str, typing.Any] = field(default_factory=dict)

    @classmethod
    def from_parts(
        cls,
        status_line: str,
        headers: typing.Iterable[str] = (),
        body: bytes = b"",
        *,
        error: str | None = None,
    ) -> MockResult:
        """Assemble a raw result the way libcurl buffers it with headers on."""
        block = "".join(f"{line}\r\n" for line in (status_line, *headers)) + "\r\n"
        raw_headers = block.encode("latin-1")
        parts = status_line.split()
        http_code = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0
        return cls(
            raw=raw_headers + body,
            header_size=len(raw_headers),
            http_code=http_code,
            error=error,
        )


@dataclass
class MockHandle:
    uri: str
    options: list[tuple[CurlOpt, typing.Any]] = field(default_factory=list)
    buffered: bool = False
    performed: bool = False
    closed: bool = False
    result: MockResult | None = None

    def option(self, key: OptionKey) -> typing.Any:
        """Value of the last write to ``key``."""
        values = self.writes(key)
        if not values:
            raise KeyError(key)
        return values[-1]

    def writes(self, key: OptionKey) -> list[typing.Any]:
        """Every value written to ``key``, in order."""
        option = resolve_option(key)
        return [value for name, value in self.options if name == option]


class MockTransport(BaseTransport):
    def __init__(self, handler: typing.Callable[[MockHandle], MockResult]) -> None:
        self.handler = handler
        self.handles: list[MockHandle] = []

    def open(self, uri: str) -> MockHandle:
        handle = MockHandle(uri)
        self.handles.append(handle)
        return handle

    def setopt(self, handle: MockHandle, option: OptionKey, value: typing.Any) -> None:
        if handle.closed:
            raise TransportError("setopt on a closed handle")
        handle.options.append((resolve_option(option), value))

    def buffer_result(self, handle: MockHandle) -> None:
        handle.buffered = True

    def perform(self, handle: MockHandle) -> bytes:
        if handle.performed:
            raise TransportError("handle already performed")
        handle.performed = True
        handle.result = result = self.handler(handle)
        raw = result.raw if handle.buffered else b""
        if result.error is not None:
            raise TransportError(result.error, partial=raw)
        return raw

    def header_size(self, handle: MockHandle) -> int:
        return handle.result.header_size if handle.result else 0

    def http_code(self, handle: MockHandle) -> int:
        return handle.result.http_code if handle.result else 0

    def info(self, handle: MockHandle) -> dict[str, typing.Any]:
        info: dict[str, typing.Any] = {
            "url": handle.uri,
            "http_code": self.http_code(handle),
            "header_size": self.header_size(handle),
        }
        if handle.result is not None:
            info.update(handle.result.info)
        return info

    def close(self, handle: MockHandle) -> None:
        handle.closed = True
