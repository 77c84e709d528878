"""Argument parsing for the wotcalc CLI."""

import argparse
from pathlib import Path

from wotcalc.core.representations import CBOR, JSON

# Short names accepted by --accept / --content-type
MEDIA_TYPES = {"json": JSON, "cbor": CBOR}


def parse_number(text: str) -> int | float:
    """Parse an operand, keeping integers integral."""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from None


def add_port_arg(parser: argparse.ArgumentParser) -> None:
    """Add --port argument to a parser (default from config)."""
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Server port (default: config server.port, 3000)",
    )


def add_client_args(parser: argparse.ArgumentParser) -> None:
    """Add the arguments shared by all client commands."""
    add_port_arg(parser)
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Server host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--thing",
        default=None,
        help="Thing name (default: config thing.name)",
    )


def add_accept_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--accept", "-a",
        choices=sorted(MEDIA_TYPES),
        default="json",
        help="Response representation (default: json)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="wotcalc",
        description="Calculator Thing with JSON/CBOR content negotiation",
    )
    subparsers = parser.add_subparsers(dest="command")

    # serve - Run the Thing
    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve the calculator Thing over HTTP",
    )
    add_port_arg(serve_parser)
    serve_parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="Config file (default: layered ~/.wotcalc and ./.wotcalc config.json)",
    )
    serve_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable DEBUG output to console",
    )
    serve_parser.add_argument(
        "--log-dir",
        type=Path,
        metavar="DIR",
        help="Directory for server.log (default: .wotcalc/logs)",
    )

    # describe - Fetch the Thing Description
    describe_parser = subparsers.add_parser(
        "describe",
        help="Print the Thing Description",
    )
    add_client_args(describe_parser)
    add_accept_arg(describe_parser)

    # read - Read a property once
    read_parser = subparsers.add_parser(
        "read",
        help="Read a property (result, lastChange)",
    )
    read_parser.add_argument("name", help="Property name")
    add_client_args(read_parser)
    add_accept_arg(read_parser)

    # invoke - Invoke an action
    invoke_parser = subparsers.add_parser(
        "invoke",
        help="Invoke an action (add, subtract) with a number",
    )
    invoke_parser.add_argument("name", help="Action name")
    invoke_parser.add_argument("operand", type=parse_number, help="Number to add or subtract")
    invoke_parser.add_argument(
        "--content-type", "-c",
        choices=sorted(MEDIA_TYPES),
        default="json",
        help="Request body representation (default: json)",
    )
    add_client_args(invoke_parser)
    add_accept_arg(invoke_parser)

    # observe - Stream property changes or events
    observe_parser = subparsers.add_parser(
        "observe",
        help="Observe a property or subscribe to an event (Ctrl+C to stop)",
    )
    observe_parser.add_argument("name", help="Property (result, lastChange) or event (update)")
    observe_parser.add_argument(
        "--count", "-n",
        type=int,
        default=None,
        help="Stop after N notifications",
    )
    add_client_args(observe_parser)
    add_accept_arg(observe_parser)

    # detect - Check if a server is running
    detect_parser = subparsers.add_parser(
        "detect",
        help="Check if a Thing server is running",
    )
    add_client_args(detect_parser)

    return parser.parse_args(argv)
