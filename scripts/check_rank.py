#!/usr/bin/env python3
"""
ASIN Sales Rank Checker
=======================
Looks up one ASIN on Keepa and prints current sales rank, current price
and the lowest price of the trailing window.

Usage:
    python scripts/check_rank.py B08N5WRWNW
    python scripts/check_rank.py B08N5WRWNW --domain 3 --window-days 90
    python scripts/check_rank.py B08N5WRWNW --json
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta

from src.agents.rank_checker import RankCheckerAgent
from src.api.main import build_response
from src.config import get_settings
from src.services.history_decoder import DecodePriorities
from src.services.keepa_client import KeepaApiError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("check_rank")

NOT_AVAILABLE = "N/A"


def format_report(data: dict) -> str:
    rank = data.get("sales_rank")
    price = data.get("price")
    lowest = data.get("lowest_price")

    lines = [
        f"ASIN:          {data['asin']}",
        f"Title:         {data.get('title') or NOT_AVAILABLE}",
        f"Category:      {data.get('category') or NOT_AVAILABLE}",
        f"Availability:  {data.get('availability') or NOT_AVAILABLE}",
        f"Sales rank:    {f'#{rank:,}' if rank is not None else NOT_AVAILABLE}",
        f"Price:         "
        + (f"${price:,.2f} ({data.get('price_source')})" if price is not None else NOT_AVAILABLE),
    ]
    if lowest:
        date = (lowest.get("timestamp") or "")[:10] or NOT_AVAILABLE
        lines.append(
            f"Lowest price:  ${lowest['value']:,.2f} on {date} ({data.get('lowest_price_source')})"
        )
    else:
        lines.append(f"Lowest price:  {NOT_AVAILABLE}")
    return "\n".join(lines)


def build_agent(window_days=None) -> RankCheckerAgent:
    """Agent using configured settings unless a window is given on the command line"""
    if window_days is None:
        return RankCheckerAgent()
    settings = get_settings()
    return RankCheckerAgent(
        priorities=DecodePriorities(
            window=timedelta(days=window_days), epoch=settings.keepa_epoch
        )
    )


async def run(args) -> dict:
    agent = build_agent(args.window_days)
    report = await agent.check(args.asin, domain_id=args.domain)
    return build_response(report).model_dump()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check Amazon sales rank via Keepa")
    parser.add_argument("asin", help="Amazon ASIN (10 characters)")
    parser.add_argument(
        "--domain",
        type=int,
        default=None,
        help="Keepa domain id (default: KEEPA_DOMAIN_ID setting, 1=amazon.com)",
    )
    parser.add_argument(
        "--window-days",
        type=int,
        default=None,
        help="Trailing window for the lowest price (default: LOWEST_PRICE_WINDOW_DAYS setting)",
    )
    parser.add_argument("--json", action="store_true", help="Print raw JSON")
    args = parser.parse_args(argv)

    try:
        data = asyncio.run(run(args))
    except KeepaApiError as e:
        log.error(f"Lookup failed: {e}")
        return 1

    if args.json:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(format_report(data))
    return 0


if __name__ == "__main__":
    sys.exit(main())
