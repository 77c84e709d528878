"""Content-negotiating calculator Thing served over HTTP."""

__version__ = "0.1.0"
