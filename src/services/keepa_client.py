"""
Keepa API Client
Fetches a single product with its price / sales rank history
"""

import hashlib
import logging
import time
from typing import Optional

import httpx

from src.config import get_settings
from src.utils.pipeline_logger import log_api_call


logger = logging.getLogger("keepa_client")

DOMAIN_NAMES = {1: "US", 2: "UK", 3: "DE", 4: "FR", 5: "JP", 6: "CA", 8: "IT", 9: "ES", 10: "IN", 11: "MX"}


class KeepaApiError(Exception):
    """Base exception for Keepa API errors"""

    pass


class KeepaRateLimitError(KeepaApiError):
    """Rate limit exceeded"""

    pass


class KeepaAuthError(KeepaApiError):
    """Authentication failed"""

    pass


class KeepaTimeoutError(KeepaApiError):
    """Request timed out"""

    pass


class ProductNotFoundError(KeepaApiError):
    """Keepa returned no product for the ASIN"""

    pass


class InvalidAsin(KeepaApiError):
    """Raised when ASIN is invalid"""

    pass


class KeepaClient:
    """
    Client for the Keepa /product endpoint
    Handles authentication and response status mapping
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.keepa_api_key
        self.api_key_hash = self._hash_api_key(self.api_key)
        self.base_url = (base_url or settings.keepa_api_base).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self.tokens_left: Optional[int] = None
        self._transport = transport

    def _hash_api_key(self, key: str) -> str:
        """Hash API key for logging (security)"""
        return hashlib.sha256(key.encode()).hexdigest()[:16]

    async def _make_request(self, endpoint: str, params: dict) -> dict:
        """
        Make a single API request. Uses query parameter authentication (key=...)
        """
        url = f"{self.base_url}/{endpoint}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise KeepaTimeoutError(f"Keepa API timeout: {e}") from e
        except httpx.HTTPError as e:
            raise KeepaApiError(f"Keepa API request failed: {e}") from e

        if response.status_code == 200:
            return response.json()

        elif response.status_code in (401, 402, 403):
            raise KeepaAuthError(
                f"Invalid Keepa API key (key hash {self.api_key_hash})"
            )

        elif response.status_code == 429:
            raise KeepaRateLimitError("Keepa token limit exceeded")

        elif response.status_code == 504:
            raise KeepaTimeoutError("Keepa API timeout")

        else:
            error_msg = response.text[:200] if response.text else "Unknown error"
            raise KeepaApiError(
                f"Keepa API error {response.status_code}: {error_msg}"
            )

    async def get_product(
        self,
        asin: str,
        domain_id: Optional[int] = None,
        since: Optional[int] = None,
    ) -> dict:
        """
        Get one product with history from Keepa API

        Args:
            asin: Normalised 10 character ASIN
            domain_id: Amazon domain (1=com, 2=co.uk, 3=de)
            since: Keepa time (minutes since 2011-01-01); limits history to
                   data points at or after this time

        Returns:
            Raw Keepa product dict (with csv history arrays)

        Raises:
            ProductNotFoundError: If Keepa returns no product
            KeepaApiError: On any API failure
        """
        domain_id = domain_id or get_settings().keepa_domain_id
        domain_name = DOMAIN_NAMES.get(domain_id, str(domain_id))

        params = {
            "key": self.api_key,
            "domain": domain_id,
            "asin": asin,
            "history": 1,
        }
        if since is not None:
            params["since"] = since

        start_time = time.time()
        response = await self._make_request("product", params)
        execution_time = int((time.time() - start_time) * 1000)

        self.tokens_left = response.get("tokensLeft", self.tokens_left)
        log_api_call(
            asin=asin,
            domain=domain_name,
            tokens_consumed=response.get("tokensConsumed", 0),
            response_time_ms=execution_time,
            tokens_left=self.tokens_left,
        )

        products = response.get("products") or []
        if not products:
            raise ProductNotFoundError(f"Product not found or invalid ASIN: {asin}")

        logger.debug(
            f"Keepa /product {domain_name}: {asin}, "
            f"{response.get('tokensConsumed', 0)} tokens"
        )
        return products[0]


# Singleton instance
_keepa_client: Optional[KeepaClient] = None


def get_keepa_client() -> KeepaClient:
    """Get or create Keepa client singleton"""
    global _keepa_client
    if _keepa_client is None:
        _keepa_client = KeepaClient()
    return _keepa_client


async def close_keepa_client():
    """Cleanup Keepa client"""
    global _keepa_client
    _keepa_client = None
