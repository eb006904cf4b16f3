"""
Pytest configuration and fixtures for rcsocket tests.

This module provides the fake transport factory and fast timing
configuration shared by the connection tests.
"""

import pytest

from fakes import FakeTransportFactory
from rcsocket.config import ProcessSettings, RcSocketConfig


@pytest.fixture
def factory():
    """
    Fresh fake transport factory.

    Returns:
        FakeTransportFactory: Records transports in creation order
    """
    return FakeTransportFactory()


@pytest.fixture
def process_settings():
    """
    Isolated process-wide settings, so tests never touch the shared toggle.
    """
    return ProcessSettings()


@pytest.fixture
def fast_config(process_settings):
    """
    Connection config with short timers.

    Connect timeout 200 ms, reconnect delay unit 10 ms capped at 40 ms,
    queue flush spacing 20 ms.
    """
    return RcSocketConfig(
        connect_timeout=0.2,
        max_retry_delay=0.04,
        retry_base_delay=0.01,
        queue_flush_delay=0.02,
        process_settings=process_settings,
    )
