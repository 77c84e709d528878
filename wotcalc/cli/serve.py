"""HTTP server mode for wotcalc.

Runs the calculator Thing: builds the Thing Description from the Thing
Model, writes a copy of it, and serves properties, actions and event
subscriptions with JSON/CBOR content negotiation.

Example:
    python -m wotcalc serve --port 3000

    # Read the result as CBOR
    curl -H "Accept: application/cbor" \\
        http://localhost:3000/http-calculator-content-negotiation/properties/result

    # Add 10, sent as JSON
    curl -X POST -H "Content-Type: application/json" -d 10 \\
        http://localhost:3000/http-calculator-content-negotiation/actions/add
"""

import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from wotcalc.config.loader import load_config
from wotcalc.core.errors import WotCalcError
from wotcalc.server.bootstrap import bootstrap_thing, configure_server_logging
from wotcalc.server.detection import DetectionResult, detect_server
from wotcalc.server.http import run_http_server

# Load .env file if present (WOTCALC_TM_PATH)
load_dotenv()


async def run_serve(
    port: int | None = None,
    config_path: Path | None = None,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> int:
    """Run the calculator Thing until interrupted.

    Before starting, detects if a server is already running on the port.
    If so, exits with an error message.

    Args:
        port: Port to listen on. If None, uses config.server.port.
        config_path: Explicit config file instead of the layered lookup.
        verbose: Enable DEBUG output to console.
        log_dir: Directory for server.log.

    Returns:
        Exit code (0 on clean shutdown).
    """
    try:
        config = load_config(config_path)
    except WotCalcError as e:
        print(f"Configuration error: {e.message}")
        return 1

    if port is not None:
        server_config = config.server.model_copy(update={"port": port})
        config = config.model_copy(update={"server": server_config})
    effective_port = config.server.port

    # Check for existing server on the port
    detection_result = await detect_server(effective_port, config.thing.name)
    if detection_result == DetectionResult.THING_SERVER:
        print(f"Error: Thing '{config.thing.name}' already served on port {effective_port}")
        return 1
    elif detection_result == DetectionResult.OTHER_SERVICE:
        print(f"Error: Port {effective_port} is already in use by another service")
        return 1

    # Configure server logging to file (config level to file, WARNING to console)
    console_level = logging.DEBUG if verbose else logging.WARNING
    server_log_file = configure_server_logging(
        log_dir or Path(".wotcalc/logs"),
        level=getattr(logging, config.server.log_level),
        console_level=console_level,
    )

    try:
        components = bootstrap_thing(config)
    except WotCalcError as e:
        print(f"Startup error: {e.message}")
        return 1

    # Create event to signal when server has bound successfully
    started_event = asyncio.Event()
    server_task = asyncio.create_task(
        run_http_server(components.server, started_event=started_event)
    )

    try:
        # Wait for server to bind (with timeout)
        try:
            await asyncio.wait_for(started_event.wait(), timeout=5.0)
        except TimeoutError:
            server_task.cancel()
            try:
                await server_task
            except asyncio.CancelledError:
                pass
            print("Server failed to start (bind timeout)")
            return 1

        # Print startup info
        print("wotcalc calculator Thing")
        print(f"Thing: {components.server.url}")
        print(f"Representations: {', '.join(components.registry.supported())}")
        if config.thing.description_path:
            print(f"Thing Description: {config.thing.description_path}")
        print(f"Server log: {server_log_file}")
        print("Press Ctrl+C to stop")
        print("")

        # Wait for server to finish (runs until shutdown)
        await server_task

    except asyncio.CancelledError:
        # Handle Ctrl+C gracefully
        server_task.cancel()
        try:
            await server_task
        except asyncio.CancelledError:
            pass
        raise

    except OSError as e:
        # Bind failures surface from the server task
        print(f"Server error: {e}")
        return 1

    return 0
