"""Configuration loading with fail-fast behavior and layered merging.

Layers, later overriding earlier:
1. Global user config (~/.wotcalc/config.json)
2. Project local config (cwd/.wotcalc/config.json)

With no config files at all, the Pydantic defaults apply.
"""

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from wotcalc.config.load_utils import load_json_file, load_json_file_optional
from wotcalc.config.schema import Config
from wotcalc.core.constants import TM_PATH_ENV, WOTCALC_DIR_NAME, get_wotcalc_dir
from wotcalc.core.errors import ConfigError, LoadError
from wotcalc.core.utils import deep_merge

logger = logging.getLogger(__name__)


def load_config(path: Path | None = None, cwd: Path | None = None) -> Config:
    """Load configuration from file with layered merging.

    The Thing Model path may also come from the WOTCALC_TM_PATH environment
    variable (typically set through a .env file); an explicit
    thing.model_path in a config file takes precedence.

    Args:
        path: Explicit config file path. If provided, skips layered loading.
        cwd: Working directory for local lookup. Defaults to Path.cwd().

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If any config file contains invalid JSON or the merged
            config fails validation.
    """
    if path is not None:
        return _apply_env(_load_from_path(path))

    effective_cwd = cwd or Path.cwd()
    merged: dict[str, Any] = {}
    loaded_from: list[Path] = []

    for layer in (get_wotcalc_dir() / "config.json", effective_cwd / WOTCALC_DIR_NAME / "config.json"):
        try:
            data = load_json_file_optional(layer, error_context="config")
        except LoadError as e:
            raise ConfigError(e.message) from e
        if data:
            merged = deep_merge(merged, data)
            loaded_from.append(layer)

    if loaded_from:
        logger.info("Config loaded from: %s", [str(p) for p in loaded_from])
    else:
        logger.debug("No config files found, using Pydantic defaults")

    try:
        config = Config.model_validate(merged)
    except ValidationError as e:
        sources = ", ".join(str(p) for p in loaded_from) or "defaults"
        raise ConfigError(f"Config validation failed (merged from {sources}): {e}") from e

    return _apply_env(config)


def _apply_env(config: Config) -> Config:
    env_model = os.environ.get(TM_PATH_ENV)
    if env_model and config.thing.model_path is None:
        logger.debug("Using Thing Model from %s: %s", TM_PATH_ENV, env_model)
        thing = config.thing.model_copy(update={"model_path": env_model})
        return config.model_copy(update={"thing": thing})
    return config


def _load_from_path(path: Path) -> Config:
    """Load and validate config from a specific path.

    Raises:
        ConfigError: If file doesn't exist, contains invalid JSON, or fails validation.
    """
    try:
        data = load_json_file(path, error_context="config")
    except LoadError as e:
        raise ConfigError(e.message) from e

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed for {path}: {e}") from e
