"""
Rank Checker API - Main FastAPI Application
Looks up an ASIN on Keepa and reports sales rank and price figures
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from contextlib import asynccontextmanager

from src.agents.rank_checker import rank_checker
from src.config import get_settings
from src.models.history import DecodedReport, MetricResult
from src.services.history_decoder import PRICE_SOURCE_LABELS
from src.services.keepa_client import (
    InvalidAsin,
    KeepaApiError,
    KeepaAuthError,
    KeepaRateLimitError,
    KeepaTimeoutError,
    ProductNotFoundError,
    close_keepa_client,
    get_keepa_client,
)

settings = get_settings()
logger = logging.getLogger(__name__)


# Pydantic Models
class RankCheckRequest(BaseModel):
    """Request model for a sales rank lookup"""

    asin: str = Field(
        ...,
        min_length=1,
        max_length=32,
        description="Amazon Product ASIN (10 characters, normalised server-side)",
    )
    domain_id: Optional[int] = Field(default=None, ge=1, description="Keepa domain id")


class MetricResponse(BaseModel):
    """One resolved metric"""

    value: float
    source_series: str
    timestamp: Optional[str] = None


class RankCheckResponse(BaseModel):
    """Response for a sales rank lookup"""

    asin: str
    title: Optional[str] = None
    category: Optional[str] = None
    availability: Optional[str] = None
    sales_rank: Optional[int] = None
    sales_rank_source: Optional[str] = None
    price: Optional[float] = None
    price_source: Optional[str] = None
    lowest_price: Optional[MetricResponse] = None
    lowest_price_source: Optional[str] = None
    window_start: Optional[str] = None
    last_updated: str


class HealthResponse(BaseModel):
    """Health check response"""

    status: str
    timestamp: str
    keepa_key_configured: bool
    tokens_left: Optional[int] = None


def _metric(result: Optional[MetricResult]) -> Optional[MetricResponse]:
    if result is None:
        return None
    return MetricResponse(
        value=result.value,
        source_series=result.source_series,
        timestamp=result.timestamp.isoformat() if result.timestamp else None,
    )


def _label(result: Optional[MetricResult]) -> Optional[str]:
    if result is None:
        return None
    return PRICE_SOURCE_LABELS.get(result.source_series, result.source_series)


def build_response(report: DecodedReport) -> RankCheckResponse:
    return RankCheckResponse(
        asin=report.asin or "",
        title=report.title,
        category=report.category,
        availability=report.availability,
        sales_rank=int(report.sales_rank.value) if report.sales_rank else None,
        sales_rank_source=report.sales_rank.source_series if report.sales_rank else None,
        price=report.current_price.value if report.current_price else None,
        price_source=_label(report.current_price),
        lowest_price=_metric(report.lowest_price),
        lowest_price_source=_label(report.lowest_price),
        window_start=report.window_start.isoformat() if report.window_start else None,
        last_updated=datetime.now(timezone.utc).isoformat(),
    )


# FastAPI App
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info(f"{settings.app_name} starting (domain {settings.keepa_domain_id})")
    yield
    await close_keepa_client()
    logger.info(f"{settings.app_name} shut down")


app = FastAPI(
    title="Keepa Rank Checker API",
    description="Amazon sales rank and price history lookup via Keepa",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    client = get_keepa_client()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "keepa_key_configured": bool(client.api_key),
        "tokens_left": client.tokens_left,
    }


@app.get("/api/v1/status")
async def get_status():
    """Get lookup configuration"""
    priorities = rank_checker.priorities
    return {
        "system": settings.app_name,
        "version": app.version,
        "domain_id": settings.keepa_domain_id,
        "window_days": priorities.window.days,
        "keepa_epoch": priorities.epoch.isoformat(),
        "series_indices": rank_checker.series_indices,
        "priorities": {
            "sales_rank": list(priorities.rank_candidates),
            "current_price": list(priorities.current_price_candidates),
            "lowest_price": list(priorities.windowed_price_candidates),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/v1/rank/check", response_model=RankCheckResponse)
async def check_rank(request: RankCheckRequest):
    """
    Look up an ASIN and return current sales rank, current price and the
    lowest price over the configured trailing window.
    """
    try:
        report = await rank_checker.check(request.asin, domain_id=request.domain_id)
        return build_response(report)

    except InvalidAsin as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except KeepaAuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except KeepaRateLimitError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except KeepaTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except KeepaApiError as e:
        logger.warning(f"Keepa lookup failed for {request.asin}: {e}")
        raise HTTPException(status_code=502, detail=f"Keepa API error: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
