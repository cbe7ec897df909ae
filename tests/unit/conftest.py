"""Unit test environment helpers."""

import os

import pytest


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop SCRIPTGEN_* settings leaking in from the developer's shell or .env."""
    for name in list(os.environ):
        if name.startswith("SCRIPTGEN_"):
            monkeypatch.delenv(name, raising=False)
    yield
