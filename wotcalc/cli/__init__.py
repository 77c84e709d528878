"""Command-line interface."""

from wotcalc.cli.main import main

__all__ = ["main"]
