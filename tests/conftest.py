"""Shared pytest fixtures for pkgsources tests."""

import pytest

from pkgsources.config import Config

_ENV_VARS = (
    "PKGSOURCES_CONFIG",
    "PKGSOURCES_STORE_URL",
    "PKGSOURCES_USERNAME",
    "PKGSOURCES_PASSWORD",
    "PKGSOURCES_INSECURE",
    "PKGSOURCES_DEBUG",
    "PKGSOURCES_TIMEOUT",
    "PKGSOURCES_MANIFEST",
    "PKGSOURCES_UNKNOWN_POLICY",
    "LOG_LEVEL",
)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live blob store",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live blob store"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's own pkgsources settings out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store_config():
    """Create a Config pointing at a fake blob store."""
    return Config(
        store_url="https://sources.example.com/pkgs/demo",
        username="testuser",
        password="testpass",
        insecure=False,
        timeout=5.0,
    )
