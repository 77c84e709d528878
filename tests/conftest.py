"""Shared pytest fixtures and configuration for pytest."""

import sys
from typing import Any

import pytest

from wotcalc.config.schema import Config
from wotcalc.core.constants import get_default_thing_model_path
from wotcalc.core.representations import RepresentationRegistry
from wotcalc.core.state import StateStore
from wotcalc.description.builder import DescriptionBuilder
from wotcalc.description.template import render_thing_model
from wotcalc.server.bootstrap import thing_model_variables


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for platform-specific tests."""
    config.addinivalue_line("markers", "unix_only: mark test to run only on Unix")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Auto-skip tests based on platform markers."""
    skip_unix = pytest.mark.skip(reason="Unix-only test")

    for item in items:
        if "unix_only" in item.keywords and sys.platform == "win32":
            item.add_marker(skip_unix)


@pytest.fixture
def registry() -> RepresentationRegistry:
    """JSON (default) + CBOR registry."""
    return RepresentationRegistry.default()


@pytest.fixture
def calculator_model() -> dict[str, Any]:
    """The shipped Thing Model rendered with default config values."""
    return render_thing_model(get_default_thing_model_path(), thing_model_variables(Config()))


@pytest.fixture
def builder(calculator_model: dict[str, Any], registry: RepresentationRegistry) -> DescriptionBuilder:
    return DescriptionBuilder(calculator_model, registry)


@pytest.fixture
def store() -> StateStore:
    return StateStore()
