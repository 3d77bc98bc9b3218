"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from helpers import CHASSIS_OUTPUT, DCMI_OUTPUT, MONITORING_OUTPUT, FakeRunner


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: test spawns real child processes"
    )


@pytest.fixture
def fake_runner():
    return FakeRunner(
        {
            "ipmimonitoring": MONITORING_OUTPUT,
            "ipmi-dcmi": DCMI_OUTPUT,
            "ipmi-chassis": CHASSIS_OUTPUT,
        }
    )
