from __future__ import annotations

import json
import logging
import sys
import typing

import click
from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text

from ._client import CurlClient, Method
from ._headers import STATUS_KEY


def _status_color(status_code: int) -> str:
    """Return a rich color name based on HTTP status category."""
    if status_code < 200:
        return "cyan"
    elif status_code < 300:
        return "green"
    elif status_code < 400:
        return "yellow"
    elif status_code < 500:
        return "red"
    else:
        return "bold red"


def is_binary_content(content: bytes) -> bool:
    return b"\0" in content


def is_binary_content_type(content_type: str) -> bool:
    text_types = (
        "text/",
        "application/json",
        "application/xml",
        "application/javascript",
        "application/ecmascript",
    )
    ct = content_type.lower().split(";")[0].strip()
    return not any(ct.startswith(t) for t in text_types) and ct != ""


def _header_lines(client: CurlClient) -> list[tuple[str, str]]:
    lines: list[tuple[str, str]] = []
    for key in client.response_headers:
        if key == STATUS_KEY:
            continue
        for value in client.header_values(key):
            lines.append((key, value))
    return lines


def _status_line(client: CurlClient) -> str:
    status = client.response_headers.get(STATUS_KEY)
    if isinstance(status, str):
        return status
    return f"HTTP {client.http_code or 0}"


def _content_type(client: CurlClient) -> str:
    for key, value in _header_lines(client):
        if key.lower() == "content-type":
            return value
    return ""


def _body(client: CurlClient) -> tuple[str, str | None]:
    """Return ``(kind, text)`` where kind is ``binary``, ``json`` or ``text``."""
    content = client.response
    if not isinstance(content, bytes) or not content:
        return "text", None

    content_type = _content_type(client)
    if is_binary_content_type(content_type) or is_binary_content(content):
        return "binary", f"<{len(content)} bytes of binary data>"
    text = client.text
    if "application/json" in content_type:
        try:
            data = json.loads(text)
            return "json", json.dumps(data, indent=4, ensure_ascii=False)
        except (json.JSONDecodeError, TypeError):
            pass
    return "text", text


# ---------------------------------------------------------------------------
# Plain-text formatter (used with --no-color or when stdout is not a TTY)
# ---------------------------------------------------------------------------


def format_response_plain(client: CurlClient) -> str:
    lines: list[str] = [_status_line(client)]
    for key, value in _header_lines(client):
        lines.append(f"{key}: {value}")
    lines.append("")

    _, body = _body(client)
    if body is not None:
        lines.append(body)

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Rich formatter
# ---------------------------------------------------------------------------


def print_response_rich(console: Console, client: CurlClient) -> None:
    """Pretty-print the decomposed response using rich."""
    color = _status_color(client.http_code or 0)
    console.print(Text(_status_line(client), style=f"bold {color}"))

    for key, value in _header_lines(client):
        header_text = Text()
        header_text.append(f"{key}", style="dim cyan")
        header_text.append(": ", style="dim")
        header_text.append(value)
        console.print(header_text)

    console.print()

    kind, body = _body(client)
    if body is None:
        return
    if kind == "binary":
        console.print(f"[dim]{body}[/dim]", highlight=False)
    elif kind == "json":
        console.print(Syntax(body, "json", theme="monokai"))
    else:
        console.print(body, markup=False, highlight=False)


# ---------------------------------------------------------------------------
# Argument parsing helpers
# ---------------------------------------------------------------------------


def parse_header(header: str) -> str:
    """Validate a 'Key: Value' header string and normalise the spacing."""
    if ":" not in header:
        raise click.BadParameter(
            f"Invalid header format: '{header}'. Expected 'Key: Value'."
        )
    key, _, value = header.partition(":")
    return f"{key.strip()}: {value.strip()}"


def parse_pair(pair: str, label: str) -> tuple[str, str]:
    """Parse a 'NAME=VALUE' string."""
    if "=" not in pair:
        raise click.BadParameter(
            f"Invalid {label} format: '{pair}'. Expected 'NAME=VALUE'."
        )
    name, _, value = pair.partition("=")
    return name.strip(), value


def coerce_option_value(value: str) -> typing.Any:
    """Turn a command line option value into the int, bool or str curl expects."""
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    try:
        return int(value)
    except ValueError:
        return value


# ---------------------------------------------------------------------------
# CLI command
# ---------------------------------------------------------------------------


@click.command(help="Run one HTTP(S) or FTP request through libcurl.")
@click.argument("url")
@click.option(
    "-X",
    "--method",
    default=None,
    type=click.Choice([m.value for m in Method], case_sensitive=False),
    help=(
        "HTTP method. Defaults to GET, or POST when --data is given. "
        "For HEAD also pass --opt NOBODY=1, otherwise curl waits for a body."
    ),
)
@click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    help='Add a header, e.g. -H "Authorization: Bearer token".',
)
@click.option(
    "-q",
    "--query",
    "query",
    multiple=True,
    help="Append a query parameter NAME=VALUE. Order is kept.",
)
@click.option(
    "--urlencode", is_flag=True, default=False, help="Percent-encode query values."
)
@click.option("-d", "--data", default=None, help="Raw request body.")
@click.option(
    "--timeout",
    default=0,
    type=click.IntRange(min=0),
    envvar="CURLCLIENT_TIMEOUT",
    show_default=True,
    help="Transfer timeout in seconds, 0 for none.",
)
@click.option(
    "--use-cache", is_flag=True, default=False, help="Allow connection reuse."
)
@click.option(
    "--cacert",
    default=None,
    envvar="CURLCLIENT_CACERT",
    type=click.Path(dir_okay=False),
    help="CA bundle used to verify the peer.",
)
@click.option(
    "-k",
    "--insecure",
    is_flag=True,
    default=False,
    help="Skip TLS peer and host verification.",
)
@click.option(
    "--opt",
    "options",
    multiple=True,
    help="Set a raw curl option NAME=VALUE, e.g. --opt MAXREDIRS=3.",
)
@click.option(
    "--info", is_flag=True, default=False, help="Print transfer diagnostics."
)
@click.option("--debug", is_flag=True, default=False, help="Log client state.")
@click.option(
    "--no-color", is_flag=True, default=False, help="Disable colored output."
)
def main(
    url: str,
    method: str | None,
    headers: tuple[str, ...],
    query: tuple[str, ...],
    urlencode: bool,
    data: str | None,
    timeout: int,
    use_cache: bool,
    cacert: str | None,
    insecure: bool,
    options: tuple[str, ...],
    info: bool,
    debug: bool,
    no_color: bool,
) -> None:
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    use_rich = not no_color and sys.stdout.isatty()

    query_args = dict(parse_pair(q, "query") for q in query)
    custom_options = {
        name: coerce_option_value(value)
        for name, value in (parse_pair(o, "option") for o in options)
    }

    if method is None:
        method = "POST" if data is not None else "GET"

    client = CurlClient(
        method=method,
        headers=[parse_header(h) for h in headers],
        custom_options=custom_options,
        post_fields=data or "",
        timeout=timeout,
        cert=cacert,
    )
    if insecure:
        client.ssl_verify_peer = False
        client.ssl_verify_host = False

    try:
        client.create_request(url, query_args, url_encode=urlencode, use_cache=use_cache)
        client.execute()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    if debug:
        client.debug()

    if use_rich:
        console = Console()
        print_response_rich(console, client)
        if info and client.curl_info is not None:
            console.print()
            console.print(
                Syntax(json.dumps(client.curl_info, indent=4, default=str), "json")
            )
    else:
        click.echo(format_response_plain(client))
        if info and client.curl_info is not None:
            click.echo()
            click.echo(json.dumps(client.curl_info, indent=4, default=str))

    if client.curl_error is not None:
        if use_rich:
            Console(stderr=True).print(
                f"[bold red]curl error[/bold red]: {client.curl_error}", highlight=False
            )
        else:
            click.echo(f"curl error: {client.curl_error}", err=True)
        sys.exit(1)

    if (client.http_code or 0) >= 400:
        sys.exit(1)
