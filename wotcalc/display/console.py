"""Shared Rich Console instance for wotcalc."""

from __future__ import annotations

from rich.console import Console

_console: Console | None = None


def get_console() -> Console:
    """Get the shared Console instance, created on first access."""
    global _console
    if _console is None:
        _console = Console(highlight=False, markup=True)
    return _console


def set_console(console: Console) -> None:
    """Set a custom Console instance.

    Useful for testing or custom configurations.
    """
    global _console
    _console = console
