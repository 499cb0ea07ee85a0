"""Pytest configuration for QChat tests."""

import pytest


@pytest.fixture(autouse=True)
def _isolated_log_path(tmp_path, monkeypatch):
    """Keep log files out of the user's home directory."""
    monkeypatch.setenv("QCHAT_LOG_PATH", str(tmp_path / "qchat.log"))


def pytest_collection_modifyitems(config, items):
    """Set per-marker timeouts: unit=1s, integration=5s."""
    for item in items:
        if "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(1))
        elif "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))
