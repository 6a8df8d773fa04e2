"""Conftest for all pytest configuration - fixtures, hooks, and doctest setup."""

import doctest

import pytest

from flowlite.plugins.manager import _initialize_plugin_system
from flowlite.settings import FlowliteSettings
from flowlite.settings import set_global_settings

# Doctest Configuration


def pytest_configure(config):
    """Configure pytest with custom doctest options."""
    doctest.ELLIPSIS_MARKER = "..."


def pytest_collection_modifyitems(items):
    """Automatically mark doctest items with the 'doctest' marker."""
    for item in items:
        if isinstance(item, pytest.DoctestItem):
            item.add_marker(pytest.mark.doctest)


# Fixtures


@pytest.fixture(autouse=True)
def _isolated_globals():
    """Give every test pristine global settings and a fresh global hook manager."""
    set_global_settings(FlowliteSettings(retry_delay=0))
    _initialize_plugin_system()
    yield
    set_global_settings(FlowliteSettings())
    _initialize_plugin_system()
