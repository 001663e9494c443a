"""Root pytest configuration for all tests.

This conftest applies to both the unit and the integration tests.
"""

import logging

import pytest

# atlassian-python-api logs expected 404s from the mocked client at ERROR level
logging.getLogger("atlassian").setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def isolated_credentials(monkeypatch):
    """Keep real Confluence credentials from the environment out of tests."""
    for name in ("CONFLUENCE_URL", "CONFLUENCE_USER", "CONFLUENCE_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)
