"""
Pytest configuration and fixtures for Rank Checker tests.
"""

import os

# Set env vars BEFORE any src import
os.environ.setdefault("KEEPA_API_KEY", "test_dummy_key_for_ci")

# Clear lru_cache so settings picks up the test env vars
from src.config import get_settings

get_settings.cache_clear()

import pytest
from unittest.mock import AsyncMock, MagicMock


@pytest.fixture
def mock_keepa_client():
    client = MagicMock()
    client.api_key = "test_dummy_key_for_ci"
    client.tokens_left = 1000
    client.get_product = AsyncMock(return_value=None)
    return client
