"""
Global pytest configuration and fixtures.
"""

import pytest

import polyvalid.core
from polyvalid import Validator


@pytest.fixture(autouse=True)
def fresh_default_validator(monkeypatch):
    """Give every test its own process-wide default validator.

    Module-level ``register_tag`` freezes the default validator's tag engine
    on first validation, so sharing it between tests would leak state.
    """
    monkeypatch.setattr(polyvalid.core, "_default_validator", None)
    yield


@pytest.fixture
def validator() -> Validator:
    """A validator with default options."""
    return Validator()
