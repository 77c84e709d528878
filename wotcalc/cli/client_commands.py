"""CLI commands for talking to a running calculator Thing.

These commands are thin wrappers around ThingClient. Each function prints
its result through the shared rich Console and returns an exit code.

    wotcalc detect                          # Check if server is running
    wotcalc describe --accept cbor          # Thing Description, fetched as CBOR
    wotcalc read result                     # Read a property
    wotcalc invoke add 10 -c cbor -a json   # Invoke an action
    wotcalc observe update -n 3             # Subscribe to an event
"""

from typing import Any

from rich.markup import escape

from wotcalc.cli.arg_parser import MEDIA_TYPES
from wotcalc.client import ClientError, ThingClient
from wotcalc.display.console import get_console
from wotcalc.server.detection import DetectionResult, detect_server


def _resolve_target(port: int | None, thing: str | None) -> tuple[int, str]:
    """Fill in port and Thing name from config where not given."""
    if port is not None and thing is not None:
        return port, thing
    from wotcalc.config.loader import load_config
    from wotcalc.core.errors import ConfigError
    try:
        config = load_config()
        default_port, default_thing = config.server.port, config.thing.name
    except ConfigError:
        default_port, default_thing = 3000, "http-calculator-content-negotiation"
    return (
        port if port is not None else default_port,
        thing if thing is not None else default_thing,
    )


def _thing_url(host: str, port: int | None, thing: str | None) -> str:
    port, thing = _resolve_target(port, thing)
    return f"http://{host}:{port}/{thing}"


def _print_value(data: Any) -> None:
    """Print a decoded value as formatted JSON."""
    get_console().print_json(data=data)


def _print_error(message: str) -> None:
    get_console().print(f"[red]Error:[/red] {escape(message)}")


async def cmd_describe(
    accept: str = "json",
    host: str = "127.0.0.1",
    port: int | None = None,
    thing: str | None = None,
) -> int:
    """Fetch and print the Thing Description.

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    try:
        async with ThingClient(_thing_url(host, port, thing)) as client:
            description = await client.get_description(accept=MEDIA_TYPES[accept])
            _print_value(description)
            return 0
    except ClientError as e:
        _print_error(e.message)
        return 1


async def cmd_read(
    name: str,
    accept: str = "json",
    host: str = "127.0.0.1",
    port: int | None = None,
    thing: str | None = None,
) -> int:
    """Read a property once and print its value."""
    try:
        async with ThingClient(_thing_url(host, port, thing)) as client:
            value = await client.read_property(name, accept=MEDIA_TYPES[accept])
            _print_value(value)
            return 0
    except ClientError as e:
        _print_error(e.message)
        return 1


async def cmd_invoke(
    name: str,
    operand: int | float,
    content_type: str = "json",
    accept: str = "json",
    host: str = "127.0.0.1",
    port: int | None = None,
    thing: str | None = None,
) -> int:
    """Invoke an action and print the new accumulator value."""
    try:
        async with ThingClient(_thing_url(host, port, thing)) as client:
            value = await client.invoke_action(
                name,
                operand,
                content_type=MEDIA_TYPES[content_type],
                accept=MEDIA_TYPES[accept],
            )
            _print_value(value)
            return 0
    except ClientError as e:
        _print_error(e.message)
        return 1


async def cmd_observe(
    name: str,
    accept: str = "json",
    count: int | None = None,
    host: str = "127.0.0.1",
    port: int | None = None,
    thing: str | None = None,
) -> int:
    """Print notifications for a property or event until interrupted.

    Whether `name` is an event or a property is read from the Thing
    Description.

    Args:
        name: Property or event name.
        accept: Short representation name for the notifications.
        count: Stop after this many notifications (None = until Ctrl+C).
    """
    media_type = MEDIA_TYPES[accept]
    try:
        async with ThingClient(_thing_url(host, port, thing)) as client:
            description = await client.get_description()
            if name in description.get("events", {}):
                stream = client.subscribe_event(name, accept=media_type)
            elif name in description.get("properties", {}):
                stream = client.observe_property(name, accept=media_type)
            else:
                _print_error(f"Unknown property or event: {name}")
                return 1

            received = 0
            async for value in stream:
                _print_value(value)
                received += 1
                if count is not None and received >= count:
                    break
            return 0
    except ClientError as e:
        _print_error(e.message)
        return 1


async def cmd_detect(
    host: str = "127.0.0.1",
    port: int | None = None,
    thing: str | None = None,
) -> int:
    """Detect if a Thing server is running on the port.

    Returns:
        Exit code: 0 if server is running, 1 otherwise.
    """
    port, thing = _resolve_target(port, thing)
    result = await detect_server(port, thing, host=host)

    _print_value({
        "port": port,
        "thing": thing,
        "result": result.value,
        "running": result == DetectionResult.THING_SERVER,
    })
    return 0 if result == DetectionResult.THING_SERVER else 1
