"""Pytest configuration and fixtures."""

import os

import pytest

from designkit.core.config import get_settings
from designkit.db.project_cache import build_store
from tests.fakes.fake_remote import FakeRemote


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["DESIGNKIT_ENV"] = "test"
    os.environ["DESIGNKIT_API_BASE_URL"] = "https://api.test.local/api/v1/"
    os.environ["PERSIST_DEBOUNCE_SECONDS"] = "0.01"
    # Keep the API registry in memory
    os.environ["CACHE_DIR"] = ""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store():
    """In-memory project store."""
    return build_store()


@pytest.fixture
def fake_remote():
    return FakeRemote()
