from __future__ import annotations


class CurlClientError(Exception):
    """Base class for every error raised by curlclient."""


class SingleRuntimeError(CurlClientError, RuntimeError):
    """A client instance was asked to run a second request."""


class NoActiveHandleError(SingleRuntimeError):
    """An operation needed the transport handle but none is held."""


class ShouldNotHappenError(CurlClientError):
    """The transport could not produce a usable handle."""


class TransportError(CurlClientError):
    """
    A transfer failed inside the transport.

    Raised by transports and recorded by the client as data. ``partial``
    holds whatever bytes the transport buffered before failing.
    """

    def __init__(
        self, message: str, *, code: int | None = None, partial: bytes = b""
    ) -> None:
        super().__init__(message)
        self.code = code
        self.partial = partial
