"""
Pytest configuration and fixtures.
"""

import pytest


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises the CLI end to end with a mocked controller")


@pytest.fixture
def config_file(tmp_path):
    """Write a minimal configuration file for CLI tests."""
    path = tmp_path / "ibox-csi.conf"
    path.write_text("[ibox_csi]\napi_endpoint = https://ibox01.example.com\n")
    return str(path)
