"""Shared test fixtures."""

import asyncio

import pytest


@pytest.fixture(autouse=True)
def event_loop_per_test():
    """
    Give each test a current event loop.

    ``asyncio.run`` clears the main thread's loop when it finishes, and the
    Pulumi mock runtime expects ``asyncio.get_event_loop`` to return one.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    asyncio.set_event_loop(None)
    loop.close()
