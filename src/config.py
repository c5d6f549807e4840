from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict
from pathlib import Path

from pydantic_settings import BaseSettings


# Keepa csv indices -> named history slots
DEFAULT_SERIES_INDICES: Dict[str, int] = {
    "amazonPrice": 1,
    "newPrice": 2,
    "mainCategoryRank": 3,
    "subCategoryRank": 4,
    "buyBoxPrice": 18,
}


class Settings(BaseSettings):
    app_name: str = "Keepa Rank Checker"
    debug: bool = False
    log_level: str = "INFO"

    keepa_api_key: str = ""
    keepa_api_base: str = "https://api.keepa.com"
    keepa_domain_id: int = 1  # 1 = amazon.com
    request_timeout_seconds: float = 30.0

    # Reference instant of Keepa time (minutes are counted from here)
    keepa_epoch: datetime = datetime(2011, 1, 1, tzinfo=timezone.utc)

    # Trailing window for the lowest-price metric
    lowest_price_window_days: int = 30

    series_indices: Dict[str, int] = dict(DEFAULT_SERIES_INDICES)

    class Config:
        env_file = str(Path(__file__).parent.parent / ".env")
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def get_keepa_api_key() -> str:
    return get_settings().keepa_api_key
