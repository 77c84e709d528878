"""Configuration loading and validation."""

from wotcalc.config.loader import load_config
from wotcalc.config.schema import (
    Config,
    ObservationConfig,
    RepresentationConfig,
    ServerConfig,
    ThingConfig,
)

__all__ = [
    "Config",
    "ObservationConfig",
    "RepresentationConfig",
    "ServerConfig",
    "ThingConfig",
    "load_config",
]
