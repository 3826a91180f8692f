# ruff: noqa: I001
from ._client import CurlClient, Method, Protocol
from ._exceptions import (
    CurlClientError,
    NoActiveHandleError,
    ShouldNotHappenError,
    SingleRuntimeError,
    TransportError,
)
from ._headers import HeaderValue, header_values, parse_http_response_headers
from ._transports import (
    BaseTransport,
    CurlTransport,
    MockHandle,
    MockResult,
    MockTransport,
    resolve_option,
)

__title__ = "curlclient"
__description__ = "A single-use HTTP(S)/FTP request client on top of libcurl."
__version__ = "1.0.0"

try:
    from .cli import main
except ImportError:

    def main() -> None:  # type: ignore[misc]
        import sys

        print(
            'The "curlclient" command requires the CLI extra. '
            'Install it with: pip install "curlclient[cli]"',
            file=sys.stderr,
        )
        sys.exit(1)


_EXCLUDED_FROM_ALL = {"cli", "main"}

__all__ = sorted(  # pyright: ignore[reportUnsupportedDunderAll]
    (
        member
        for member in list(vars().keys())
        if (
            not member.startswith("_")
            or member in ["__description__", "__title__", "__version__"]
        )
        and member not in _EXCLUDED_FROM_ALL
    ),
    key=str.casefold,
)
