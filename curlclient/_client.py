from __future__ import annotations

import enum
import logging
import pprint
import typing

from curl_cffi import CurlOpt

from ._exceptions import (
    NoActiveHandleError,
    ShouldNotHappenError,
    SingleRuntimeError,
    TransportError,
)
from ._headers import (
    ResponseHeaders,
    header_values,
    parse_http_response_headers,
    split_response,
)
from ._transports import BaseTransport, CurlTransport, OptionKey
from ._urlparse import append_query_args

logger = logging.getLogger("curlclient")

SSL_VERIFYHOST_STRICT = 2
SSL_VERIFYHOST_OFF = 0


class Method(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    HEAD = "HEAD"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"

    @classmethod
    def coerce(cls, value: Method | str) -> Method:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {value}") from None


class Protocol(str, enum.Enum):
    HTTP = "http"
    HTTPS = "https"
    FTP = "ftp"
    FTPS = "ftps"
    SMTP = "smtp"
    NTP = "ntp"


class CurlClient:
    """
    A single-use request client.

    One instance performs exactly one transfer::

        client = CurlClient()
        client.create_request("https://example.org/search", {"q": "curl"})
        client.method = "GET"
        client.execute()

        if client.curl_error is None:
            print(client.http_code, client.response_headers["Status"])

    :meth:`create_request` builds the URI and acquires the transport
    handle, :meth:`execute` applies the configuration, runs the transfer,
    splits the buffered result into headers and body and releases the
    handle. A failed transfer does not raise: the message is stored in
    :attr:`curl_error` and the response fields hold whatever the transport
    returned. Any attempt to start a second request on the same instance
    raises :class:`SingleRuntimeError`.
    """

    def __init__(
        self,
        *,
        transport: BaseTransport | None = None,
        method: Method | str | None = None,
        headers: typing.Iterable[str] | None = None,
        custom_options: typing.Mapping[OptionKey, typing.Any] | None = None,
        post_fields: str = "",
        timeout: int = 0,
        ssl_verify_host: bool | None = None,
        ssl_verify_peer: bool | None = None,
        cert: str | None = None,
    ) -> None:
        self._transport = transport if transport is not None else CurlTransport()
        self._handle: typing.Any = None
        self._executed = False

        self._uri: str | None = None
        self._use_cache = False
        self._method: Method | None = None
        self._headers: list[str] = []
        self._custom_options: dict[OptionKey, typing.Any] = {}
        self._post_fields = ""
        self._timeout = 0
        self._ssl_verify_host: bool | None = None
        self._ssl_verify_peer: bool | None = None
        self._cert: str | None = None

        self._response_headers: ResponseHeaders = {}
        self._response: bytes | bool = False
        self._http_code: int | None = None
        self._curl_error: str | None = None
        self._curl_info: dict[str, typing.Any] | None = None

        if method is not None:
            self.method = method
        if headers is not None:
            self.headers = headers
        if custom_options is not None:
            self.custom_options = custom_options
        self.post_fields = post_fields
        self.timeout = timeout
        self.ssl_verify_host = ssl_verify_host
        self.ssl_verify_peer = ssl_verify_peer
        self.cert = cert

    def __repr__(self) -> str:
        method = (self._method or Method.GET).value
        if self._executed:
            state = "executed"
        elif self._handle is not None:
            state = "ready"
        else:
            state = "idle"
        return f"<{type(self).__name__} [{method} {self._uri}] {state}>"

    # -- lifecycle -------------------------------------------------------

    def create_request(
        self,
        uri: str,
        query_args: typing.Mapping[str, typing.Any] | None = None,
        url_encode: bool = False,
        use_cache: bool = False,
    ) -> None:
        """
        Build the request URI and acquire the transport handle.

        ``query_args`` are appended in mapping order, joined with ``?`` or,
        when ``uri`` already has a query, with ``&``. ``url_encode``
        percent-encodes each value as UTF-8 first.
        """
        if self._handle is not None:
            raise SingleRuntimeError("Curl client is already running.")
        if self._executed:
            raise SingleRuntimeError("Curl client has already executed its request.")

        self.use_cache = use_cache
        uri = append_query_args(uri, query_args, url_encode=url_encode)
        self._handle = self._open(uri)

    def execute(self) -> None:
        """
        Run the transfer and decompose its result.

        The handle is released whatever happens; the instance cannot be
        used for another request afterwards.
        """
        handle = self._require_handle()
        self._executed = True
        try:
            self._configure_request(handle)
            self._collect_response(handle)
        finally:
            try:
                self._transport.close(handle)
            finally:
                self._handle = None

    def debug(self) -> None:
        logger.debug("%r\n%s", self, pprint.pformat(self._dump(), sort_dicts=False))

    def _open(self, uri: str) -> typing.Any:
        try:
            handle = self._transport.open(uri)
        except TransportError as exc:
            raise ShouldNotHappenError(f"Transport handle is not valid: {exc}") from exc
        if handle is None:
            raise ShouldNotHappenError("Transport handle is not valid.")

        logger.debug("Acquired transport handle for %s", uri)
        try:
            self._transport.setopt(handle, CurlOpt.FAILONERROR, True)
            self._transport.setopt(handle, CurlOpt.FOLLOWLOCATION, True)
            self._transport.buffer_result(handle)
        except BaseException:
            self._transport.close(handle)
            raise
        self._uri = uri
        return handle

    def _require_handle(self) -> typing.Any:
        if self._handle is None:
            if self._executed:
                raise SingleRuntimeError("Curl client has already executed its request.")
            raise NoActiveHandleError("No request has been created on this client.")
        return self._handle

    def _check_configurable(self) -> None:
        if self._executed:
            raise SingleRuntimeError(
                "Request configuration cannot change once execution has started."
            )

    def _configure_request(self, handle: typing.Any) -> None:
        transport = self._transport

        if self._ssl_verify_host is not None:
            transport.setopt(
                handle,
                CurlOpt.SSL_VERIFYHOST,
                SSL_VERIFYHOST_STRICT if self._ssl_verify_host else SSL_VERIFYHOST_OFF,
            )
        if self._ssl_verify_peer is not None:
            transport.setopt(handle, CurlOpt.SSL_VERIFYPEER, self._ssl_verify_peer)
        if self._cert is not None:
            transport.setopt(handle, CurlOpt.CAINFO, self._cert)

        transport.setopt(handle, CurlOpt.HEADER, True)
        transport.buffer_result(handle)

        if not self._use_cache:
            self._headers.append("Cache-Control: no-cache")
            transport.setopt(handle, CurlOpt.FRESH_CONNECT, True)

        transport.setopt(handle, CurlOpt.HTTPHEADER, list(self._headers))

        if self._method is Method.POST:
            transport.setopt(handle, CurlOpt.POST, True)
        else:
            method = self._method or Method.GET
            transport.setopt(handle, CurlOpt.CUSTOMREQUEST, method.value)

        for option, value in self._custom_options.items():
            transport.setopt(handle, option, value)

        # Second write wins: the final value follows use_cache.
        transport.setopt(handle, CurlOpt.FRESH_CONNECT, self._use_cache)
        transport.setopt(handle, CurlOpt.POSTFIELDS, self._post_fields)
        transport.setopt(handle, CurlOpt.TIMEOUT, self._timeout)

    def _collect_response(self, handle: typing.Any) -> None:
        transport = self._transport

        logger.debug("Performing %s %s", (self._method or Method.GET).value, self._uri)
        raw: bytes | None
        try:
            raw = transport.perform(handle)
        except TransportError as exc:
            logger.debug("Transfer failed: %s", exc)
            self._curl_error = str(exc)
            raw = exc.partial or None

        if raw is None:
            self._response_headers = {}
            self._response = False
        else:
            header_text, body = split_response(raw, transport.header_size(handle))
            self._response_headers = parse_http_response_headers(header_text)
            self._response = body

        self._http_code = transport.http_code(handle)
        self._curl_info = transport.info(handle)

    def _dump(self) -> dict[str, typing.Any]:
        return {
            "uri": self._uri,
            "method": self._method.value if self._method else None,
            "headers": list(self._headers),
            "custom_options": dict(self._custom_options),
            "post_fields": self._post_fields,
            "timeout": self._timeout,
            "use_cache": self._use_cache,
            "ssl_verify_host": self._ssl_verify_host,
            "ssl_verify_peer": self._ssl_verify_peer,
            "cert": self._cert,
            "handle": self._handle,
            "executed": self._executed,
            "response_headers": self._response_headers,
            "response": self._response,
            "http_code": self._http_code,
            "curl_error": self._curl_error,
            "curl_info": self._curl_info,
        }

    # -- request configuration -------------------------------------------

    @property
    def uri(self) -> str | None:
        return self._uri

    @property
    def is_executed(self) -> bool:
        return self._executed

    @property
    def use_cache(self) -> bool:
        return self._use_cache

    @use_cache.setter
    def use_cache(self, use_cache: bool) -> None:
        self._check_configurable()
        self._use_cache = bool(use_cache)

    @property
    def method(self) -> Method | None:
        return self._method

    @method.setter
    def method(self, method: Method | str | None) -> None:
        self._check_configurable()
        self._method = None if method is None else Method.coerce(method)

    @property
    def headers(self) -> list[str]:
        return list(self._headers)

    @headers.setter
    def headers(self, headers: typing.Iterable[str]) -> None:
        self._check_configurable()
        self._headers = list(headers)

    def add_header(self, header: str) -> None:
        self._check_configurable()
        self._headers.append(header)

    @property
    def custom_options(self) -> dict[OptionKey, typing.Any]:
        return dict(self._custom_options)

    @custom_options.setter
    def custom_options(self, options: typing.Mapping[OptionKey, typing.Any]) -> None:
        self._check_configurable()
        self._custom_options = dict(options)

    @property
    def post_fields(self) -> str:
        return self._post_fields

    @post_fields.setter
    def post_fields(self, post_fields: str) -> None:
        self._check_configurable()
        self._post_fields = post_fields

    @property
    def timeout(self) -> int:
        return self._timeout

    @timeout.setter
    def timeout(self, timeout: int) -> None:
        self._check_configurable()
        timeout = int(timeout)
        if timeout < 0:
            raise ValueError("Timeout must be zero or a positive number of seconds")
        self._timeout = timeout

    @property
    def ssl_verify_host(self) -> bool | None:
        return self._ssl_verify_host

    @ssl_verify_host.setter
    def ssl_verify_host(self, value: bool | None) -> None:
        self._check_configurable()
        self._ssl_verify_host = value

    @property
    def ssl_verify_peer(self) -> bool | None:
        return self._ssl_verify_peer

    @ssl_verify_peer.setter
    def ssl_verify_peer(self, value: bool | None) -> None:
        self._check_configurable()
        self._ssl_verify_peer = value

    @property
    def cert(self) -> str | None:
        return self._cert

    @cert.setter
    def cert(self, cert: str | None) -> None:
        self._check_configurable()
        self._cert = cert

    # -- results ---------------------------------------------------------

    @property
    def response_headers(self) -> ResponseHeaders:
        return self._response_headers

    @response_headers.setter
    def response_headers(self, headers: ResponseHeaders) -> None:
        self._response_headers = headers

    def header_values(self, name: str) -> list[str]:
        """All values of response header ``name`` as a list."""
        return header_values(self._response_headers, name)

    @property
    def response(self) -> bytes | bool:
        return self._response

    @property
    def text(self) -> str:
        """The body decoded with the charset named in Content-Type, else UTF-8."""
        if not isinstance(self._response, bytes):
            return ""
        charset = "utf-8"
        content_types = [
            value
            for key in self._response_headers
            if key.lower() == "content-type"
            for value in self.header_values(key)
        ]
        for content_type in content_types:
            for param in content_type.split(";")[1:]:
                name, _, value = param.partition("=")
                if name.strip().lower() == "charset" and value.strip():
                    charset = value.strip().strip('"')
        try:
            return self._response.decode(charset, errors="replace")
        except LookupError:
            return self._response.decode("utf-8", errors="replace")

    @property
    def http_code(self) -> int | None:
        return self._http_code

    @property
    def curl_error(self) -> str | None:
        return self._curl_error

    @property
    def curl_info(self) -> dict[str, typing.Any] | None:
        return self._curl_info
