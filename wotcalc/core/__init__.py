"""Core types: errors, representations and accumulator state."""

from wotcalc.core.errors import (
    ConfigError,
    LoadError,
    Status,
    ThingError,
    UnknownRepresentation,
    WotCalcError,
)
from wotcalc.core.representations import CBOR, JSON, Representation, RepresentationRegistry
from wotcalc.core.state import AccumulatorState, StateStore

__all__ = [
    # Errors
    "ConfigError",
    "LoadError",
    "Status",
    "ThingError",
    "UnknownRepresentation",
    "WotCalcError",
    # Representations
    "CBOR",
    "JSON",
    "Representation",
    "RepresentationRegistry",
    # State
    "AccumulatorState",
    "StateStore",
]
