"""Shared fixtures for the astromod test suite."""

import pytest

from astromod import config, ConfigCache


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts and ends with default configuration."""
    config.reset()
    yield
    config.reset()


@pytest.fixture
def cache():
    """A fresh, empty compilation cache."""
    return ConfigCache()


@pytest.fixture(params=["heyoka", "sympy"])
def backend_name(request):
    """Run a test once per symbolic backend."""
    return request.param
