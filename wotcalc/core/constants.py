"""Core constants and paths for wotcalc.

Single source of truth for global paths.
"""

from pathlib import Path

WOTCALC_DIR_NAME = ".wotcalc"

# Environment variable naming a Thing Model that replaces the shipped one
TM_PATH_ENV = "WOTCALC_TM_PATH"


def get_wotcalc_dir() -> Path:
    """Get ~/.wotcalc (global config directory)."""
    return Path.home() / WOTCALC_DIR_NAME


def get_defaults_dir() -> Path:
    """Get package defaults directory (shipped with package)."""
    import wotcalc
    return Path(wotcalc.__file__).parent / "defaults"


def get_default_thing_model_path() -> Path:
    """Get the shipped calculator Thing Model."""
    return get_defaults_dir() / "calculator.tm.json"
