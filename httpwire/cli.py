"""CLI entry point for httpwire.

Sends one request (``send``) or runs the reference server for one request
(``serve-once``).
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from httpwire.config_loader import ClientConfig, ConfigError, load_client_config
from httpwire.errors import HttpClientError
from httpwire.headers import CRLF
from httpwire.transport import TransportOption


def positive_int(value: str) -> int:
    """Parse and validate a positive integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse a "Name: Value" header argument.

    Raises:
        argparse.ArgumentTypeError: If there is no colon or the name is empty.
    """
    name, sep, header_value = value.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected 'Name: Value' (e.g., 'X-Trace: abc')"
        )
    if not name.strip():
        raise argparse.ArgumentTypeError(f"Invalid header '{value}'. Header name cannot be empty.")
    return (name.strip(), header_value.strip())


@dataclass
class SendArgs:
    """Parsed arguments for send mode."""

    method: str
    url: str
    headers: list[tuple[str, str]]
    data: str | None
    data_file: Path | None
    config: Path | None
    connect_timeout_ms: int | None
    timeout_ms: int | None
    insecure: bool
    follow: bool
    include: bool
    verbose: bool


@dataclass
class ServeOnceArgs:
    """Parsed arguments for serve-once mode."""

    host: str
    port: int
    accept_timeout: float
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with send and serve-once subcommands."""
    parser = argparse.ArgumentParser(
        prog="httpwire",
        description="Send one HTTP request, or serve one with the reference server.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Mode")

    send_parser = subparsers.add_parser("send", help="Send one request and print the response")
    send_parser.add_argument("method", help="HTTP method (GET, POST, ...)")
    send_parser.add_argument("url", help="Absolute URL")
    send_parser.add_argument(
        "-H", "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        dest="headers",
        help="Request header (can be repeated)",
    )
    body_group = send_parser.add_mutually_exclusive_group()
    body_group.add_argument("-d", "--data", default=None, help="Request body")
    body_group.add_argument("--data-file", type=Path, default=None, help="Read request body from file")
    send_parser.add_argument("--config", type=Path, default=None, help="Client config YAML")
    send_parser.add_argument(
        "--connect-timeout-ms", type=positive_int, default=None, help="Connect timeout in milliseconds"
    )
    send_parser.add_argument(
        "--timeout-ms", type=positive_int, default=None, help="Whole-exchange timeout in milliseconds"
    )
    send_parser.add_argument(
        "-k", "--insecure", action="store_true", help="Skip TLS certificate and hostname verification"
    )
    send_parser.add_argument(
        "-L", "--follow", action="store_true", help="Let the transport follow redirects"
    )
    send_parser.add_argument(
        "-i", "--include", action="store_true", help="Print status and headers before the body"
    )
    send_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    serve_parser = subparsers.add_parser(
        "serve-once", help="Run the reference server for a single request"
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve_parser.add_argument("--port", type=int, default=0, help="Port to bind (0 = any free port)")
    serve_parser.add_argument(
        "--accept-timeout", type=positive_float, default=30.0,
        help="Seconds to wait for the connection (default: 30)",
    )
    serve_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return parser


def parse_send_args(namespace: argparse.Namespace) -> SendArgs:
    """Convert parsed namespace to SendArgs dataclass."""
    return SendArgs(
        method=namespace.method.upper(),
        url=namespace.url,
        headers=namespace.headers or [],
        data=namespace.data,
        data_file=namespace.data_file,
        config=namespace.config,
        connect_timeout_ms=namespace.connect_timeout_ms,
        timeout_ms=namespace.timeout_ms,
        insecure=namespace.insecure,
        follow=namespace.follow,
        include=namespace.include,
        verbose=namespace.verbose,
    )


def parse_serve_once_args(namespace: argparse.Namespace) -> ServeOnceArgs:
    """Convert parsed namespace to ServeOnceArgs dataclass."""
    return ServeOnceArgs(
        host=namespace.host,
        port=namespace.port,
        accept_timeout=namespace.accept_timeout,
        verbose=namespace.verbose,
    )


def parse_args(args: list[str] | None = None) -> SendArgs | ServeOnceArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "send":
        return parse_send_args(namespace)
    elif namespace.command == "serve-once":
        return parse_serve_once_args(namespace)
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)
        if parsed.verbose:
            logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

        if isinstance(parsed, SendArgs):
            return run_send(parsed)
        return run_serve_once(parsed)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def build_cli_options(args: SendArgs) -> dict[int, Any]:
    """Transport options set directly by command-line flags."""
    options: dict[int, Any] = {}
    if args.connect_timeout_ms is not None:
        options[TransportOption.CONNECT_TIMEOUT_MS] = args.connect_timeout_ms
    if args.timeout_ms is not None:
        options[TransportOption.TIMEOUT_MS] = args.timeout_ms
    if args.follow:
        options[TransportOption.FOLLOW_LOCATION] = True
    return options


def run_send(args: SendArgs) -> int:
    """Run send mode. Returns 0 on any HTTP response, 1 on failure."""
    from httpwire.client import HttpClient

    try:
        config = load_client_config(args.config) if args.config else ClientConfig()
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    body: bytes = b""
    if args.data is not None:
        body = args.data.encode("utf-8")
    elif args.data_file is not None:
        try:
            body = args.data_file.read_bytes()
        except OSError as e:
            print(f"Error reading body file: {e}", file=sys.stderr)
            return 1

    client = HttpClient.from_config(config).with_options(build_cli_options(args))
    if args.insecure:
        client = client.without_ssl_verification()

    headers: dict[str, list[str]] = {}
    for name, value in args.headers:
        headers.setdefault(name, []).append(value)

    try:
        response = client.request(args.method, args.url, body, headers)
    except HttpClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.include:
        lines = [f"HTTP {response.status_code}"]
        for name, values in response.headers.items():
            lines.extend(f"{name}: {value}" for value in values)
        sys.stdout.write(CRLF.join(lines) + CRLF + CRLF)
    sys.stdout.flush()
    sys.stdout.buffer.write(response.body)
    sys.stdout.buffer.flush()
    return 0


def run_serve_once(args: ServeOnceArgs) -> int:
    """Run serve-once mode. Returns 0 if a request was answered."""
    from httpwire.reference_server import ReferenceServer, ServerState

    try:
        server = ReferenceServer(host=args.host, port=args.port, accept_timeout=args.accept_timeout)
    except OSError as e:
        print(f"Error binding {args.host}:{args.port}: {e}", file=sys.stderr)
        return 1

    print(server.url, flush=True)
    server.serve_once()

    if server.state != ServerState.COMPLETE:
        print(f"Error: {server.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
