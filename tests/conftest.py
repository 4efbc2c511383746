"""
Pytest fixtures for yaslapi tests.

Most tests drive the binding against `FakeYasl`, an in-memory stand-in for
the C API. Tests marked `native` need the real shared library and are skipped
when it cannot be loaded.
"""

import pytest

from yaslapi import State, is_available

from fake_yasl import FakeYasl


def pytest_configure(config):
    config.addinivalue_line("markers", "native: requires the YASL shared library")


def pytest_collection_modifyitems(config, items):
    if is_available():
        return
    skip = pytest.mark.skip(reason="YASL shared library not available")
    for item in items:
        if "native" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def lib():
    """A fresh fake runtime with no programs."""
    return FakeYasl()


@pytest.fixture
def state(lib):
    """A state over the fake runtime, closed after the test."""
    s = State(lib=lib)
    yield s
    s.close()


@pytest.fixture
def vm(lib, state):
    """The fake VM behind `state`."""
    return lib.vm(state.raw)
