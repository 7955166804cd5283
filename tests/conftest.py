"""Pytest configuration helpers.

This conftest ensures the `backend` directory is on `sys.path` so tests can
import the `clipforge` package regardless of how pytest is invoked in
different CI or IDE environments.
"""
import asyncio
import os
import sys

import pytest

BACKEND = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)
        # Yield so background tasks still get scheduled.
        await asyncio.sleep(0)


@pytest.fixture
def sleeper():
    return RecordingSleep()
