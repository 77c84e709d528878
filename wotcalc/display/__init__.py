"""Terminal output for the CLI."""

from wotcalc.display.console import get_console, set_console

__all__ = ["get_console", "set_console"]
