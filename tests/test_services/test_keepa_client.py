"""
Tests for the Keepa HTTP client

Covers:
- Request construction (key, domain, asin, history, since)
- Status code -> exception mapping
- Transport errors
- Singleton helpers
"""

import pytest
import httpx
from unittest.mock import patch

from src.services.keepa_client import (
    KeepaClient,
    KeepaApiError,
    KeepaAuthError,
    KeepaRateLimitError,
    KeepaTimeoutError,
    ProductNotFoundError,
    get_keepa_client,
    close_keepa_client,
)


def _client(handler) -> KeepaClient:
    return KeepaClient(
        api_key="secret-key",
        base_url="https://keepa.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def product_payload():
    return {
        "tokensConsumed": 1,
        "tokensLeft": 299,
        "products": [{"asin": "B08N5WRWNW", "title": "Echo Dot", "csv": []}],
    }


class TestKeepaClientInit:
    def test_api_key_hashed(self):
        client = KeepaClient(api_key="abc")
        assert client.api_key_hash != "abc"
        assert len(client.api_key_hash) == 16

    def test_defaults_from_settings(self):
        client = KeepaClient(api_key="abc")
        assert client.base_url == "https://api.keepa.com"
        assert client.timeout == 30.0
        assert client.tokens_left is None


class TestGetProduct:
    @pytest.mark.asyncio
    async def test_sends_expected_params(self, product_payload):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=product_payload)

        with patch("src.services.keepa_client.log_api_call"):
            product = await _client(handler).get_product(
                "B08N5WRWNW", domain_id=1, since=7000000
            )

        assert product["title"] == "Echo Dot"
        assert seen["path"] == "/product"
        assert seen["params"] == {
            "key": "secret-key",
            "domain": "1",
            "asin": "B08N5WRWNW",
            "history": "1",
            "since": "7000000",
        }

    @pytest.mark.asyncio
    async def test_since_omitted_when_none(self, product_payload):
        seen = {}

        def handler(request: httpx.Request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=product_payload)

        with patch("src.services.keepa_client.log_api_call"):
            await _client(handler).get_product("B08N5WRWNW", domain_id=3)

        assert "since" not in seen["params"]
        assert seen["params"]["domain"] == "3"

    @pytest.mark.asyncio
    async def test_tracks_tokens_and_logs_call(self, product_payload):
        client = _client(lambda request: httpx.Response(200, json=product_payload))

        with patch("src.services.keepa_client.log_api_call") as mock_log:
            await client.get_product("B08N5WRWNW", domain_id=1)

        assert client.tokens_left == 299
        mock_log.assert_called_once()
        kwargs = mock_log.call_args.kwargs
        assert kwargs["asin"] == "B08N5WRWNW"
        assert kwargs["domain"] == "US"
        assert kwargs["tokens_consumed"] == 1

    @pytest.mark.asyncio
    async def test_empty_products_raises_not_found(self):
        client = _client(lambda request: httpx.Response(200, json={"products": []}))

        with patch("src.services.keepa_client.log_api_call"):
            with pytest.raises(ProductNotFoundError):
                await client.get_product("B08N5WRWNW", domain_id=1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,exc",
        [
            (401, KeepaAuthError),
            (402, KeepaAuthError),
            (429, KeepaRateLimitError),
            (504, KeepaTimeoutError),
            (500, KeepaApiError),
        ],
    )
    async def test_status_mapping(self, status, exc):
        client = _client(lambda request: httpx.Response(status, text="boom"))

        with pytest.raises(exc):
            await client.get_product("B08N5WRWNW", domain_id=1)

    @pytest.mark.asyncio
    async def test_auth_error_does_not_leak_key(self):
        client = _client(lambda request: httpx.Response(401))

        with pytest.raises(KeepaAuthError) as excinfo:
            await client.get_product("B08N5WRWNW", domain_id=1)

        assert "secret-key" not in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(KeepaTimeoutError):
            await _client(handler).get_product("B08N5WRWNW", domain_id=1)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(KeepaApiError):
            await _client(handler).get_product("B08N5WRWNW", domain_id=1)


class TestSingleton:
    @pytest.mark.asyncio
    async def test_get_and_close(self):
        await close_keepa_client()
        c1 = get_keepa_client()
        c2 = get_keepa_client()
        assert c1 is c2

        await close_keepa_client()
        assert get_keepa_client() is not c1
        await close_keepa_client()
