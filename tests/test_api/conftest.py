import os

os.environ.setdefault("KEEPA_API_KEY", "test_dummy_key_for_ci")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from unittest.mock import patch

from src.api.main import app


@pytest_asyncio.fixture
async def client(mock_keepa_client):
    with patch("src.api.main.get_keepa_client", return_value=mock_keepa_client), patch(
        "src.agents.rank_checker.get_keepa_client", return_value=mock_keepa_client
    ):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as c:
            yield c
