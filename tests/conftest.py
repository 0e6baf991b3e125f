"""Pytest configuration and shared fixtures for caption overlay tests."""

import asyncio
import sys
from pathlib import Path

import pytest

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


@pytest.fixture
def fake_engine_command():
    """Command that runs the scripted fake engine with this interpreter."""
    return [sys.executable, str(FAKE_ENGINE)]


@pytest.fixture
def models_dir(tmp_path):
    return tmp_path / "models"


async def _wait_for(predicate, timeout: float = 5.0, interval: float = 0.01):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"Timed out after {timeout}s waiting for condition")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_for():
    """Poll until predicate() is true, failing the test on timeout."""
    return _wait_for
