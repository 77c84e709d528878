"""Object graph bootstrap for the calculator Thing.

This module provides a single entry point for creating and wiring the server
components from a Config, plus the server logging setup.

Usage:
    components = bootstrap_thing(config)
    await run_http_server(components.server)
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from wotcalc.config.schema import Config
from wotcalc.core.constants import get_default_thing_model_path
from wotcalc.core.fileio import ensure_log_dir
from wotcalc.core.representations import RepresentationRegistry
from wotcalc.core.state import StateStore
from wotcalc.description.builder import DescriptionBuilder
from wotcalc.description.template import render_thing_model
from wotcalc.server.dispatcher import Dispatcher
from wotcalc.server.http import ThingServer
from wotcalc.server.watch import StateWatcher

logger = logging.getLogger(__name__)


@dataclass
class ThingComponents:
    """Everything a running Thing server is made of."""

    config: Config
    registry: RepresentationRegistry
    store: StateStore
    description: DescriptionBuilder
    watcher: StateWatcher
    dispatcher: Dispatcher
    server: ThingServer


def thing_model_variables(config: Config) -> dict[str, Any]:
    """Placeholder values for rendering the Thing Model."""
    return {
        "PROTOCOL": "http",
        "THING_NAME": config.thing.name,
        "HOSTNAME": "localhost" if config.server.host in ("127.0.0.1", "0.0.0.0") else config.server.host,
        "PORT_NUMBER": config.server.port,
        "RESULT_OBSERVABLE": config.thing.result_observable,
        "LAST_CHANGE_OBSERVABLE": config.thing.last_change_observable,
    }


def bootstrap_thing(config: Config, persist: bool = True) -> ThingComponents:
    """Create and wire all server components.

    The only I/O is reading the Thing Model and writing the description
    copy; the server is not started.

    Args:
        config: Validated configuration.
        persist: Write the generated Thing Description to
            config.thing.description_path (failure is logged, not raised).

    Raises:
        LoadError: If the Thing Model cannot be loaded.
    """
    registry = config.build_registry()

    model_path = (
        Path(config.thing.model_path) if config.thing.model_path else get_default_thing_model_path()
    )
    model = render_thing_model(model_path, thing_model_variables(config))
    description = DescriptionBuilder(model, registry)
    if persist and config.thing.description_path:
        description.persist(Path(config.thing.description_path))

    store = StateStore()
    watcher = StateWatcher(store, interval=config.observation.interval)
    dispatcher = Dispatcher(config.thing.name, store, registry, description)
    server = ThingServer(
        dispatcher,
        watcher,
        host=config.server.host,
        port=config.server.port,
        max_concurrent=config.server.max_concurrent,
        heartbeat=config.observation.heartbeat,
    )
    logger.debug("Bootstrapped Thing '%s' from %s", config.thing.name, model_path)

    return ThingComponents(
        config=config,
        registry=registry,
        store=store,
        description=description,
        watcher=watcher,
        dispatcher=dispatcher,
        server=server,
    )


def configure_server_logging(
    log_dir: Path,
    level: int = logging.INFO,
    console_level: int = logging.WARNING,
) -> Path:
    """Configure file and console logging for the wotcalc namespace.

    Logs are written to `{log_dir}/server.log` with automatic rotation
    (max 5MB per file, 3 backup files).

    Args:
        log_dir: Directory for server.log file. Created if doesn't exist.
        level: Logging level for file output (default INFO).
        console_level: Logging level for console output (default WARNING).

    Returns:
        Path to the server.log file.
    """
    ensure_log_dir(log_dir)

    log_file = log_dir / "server.log"

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))

    wotcalc_logger = logging.getLogger("wotcalc")
    wotcalc_logger.setLevel(min(level, console_level))

    # Remove any existing handlers to avoid duplicates on reconfigure
    for handler in list(wotcalc_logger.handlers):
        wotcalc_logger.removeHandler(handler)
        handler.close()

    wotcalc_logger.addHandler(file_handler)
    wotcalc_logger.addHandler(console_handler)
    wotcalc_logger.propagate = False

    logger.info("Server logging configured: %s", log_file)
    return log_file
