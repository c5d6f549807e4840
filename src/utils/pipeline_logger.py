"""
Pipeline Logging System for the Rank Checker
Structured JSON logging for lookup stages
"""

import structlog
from datetime import datetime, timezone
from typing import Any

KEEPA_API = "keepa_api"
PARSER = "parser"
DECODER = "decoder"


def setup_logger() -> structlog.BoundLogger:
    """
    Configure structlog for structured JSON logging.
    Outputs to stdout for docker/systemd capture.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger()


_log = setup_logger()


def _log_event(
    stage: str,
    asin: str | None = None,
    domain: str | None = None,
    input: Any = None,
    output: Any = None,
    success: bool = True,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Base logging function for pipeline events."""
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stage": stage,
        "success": success,
    }
    if asin is not None:
        event["asin"] = asin
    if domain is not None:
        event["domain"] = domain
    if input is not None:
        event["input"] = input
    if output is not None:
        event["output"] = output
    if duration_ms is not None:
        event["duration_ms"] = duration_ms
    event.update(extra)
    _log.info("pipeline_event", **event)


def log_api_call(
    asin: str,
    domain: str,
    tokens_consumed: int,
    response_time_ms: float,
    tokens_left: int | None = None,
) -> None:
    """Log Keepa API call."""
    _log_event(
        stage=KEEPA_API,
        asin=asin,
        output={"tokens_consumed": tokens_consumed, "tokens_left": tokens_left},
        success=True,
        duration_ms=response_time_ms,
        domain=domain,
    )


def log_parser(
    asin: str,
    present_series: list[str],
    missing_series: list[str],
) -> None:
    """Log which history slots were present in the payload."""
    _log_event(
        stage=PARSER,
        asin=asin,
        input={"present_series": present_series},
        output={"missing_series": missing_series},
        success=len(present_series) > 0,
    )


def log_decode(
    asin: str,
    metrics: dict[str, str | None],
) -> None:
    """Log decode results: metric name -> source series (None when absent)."""
    resolved = [name for name, source in metrics.items() if source is not None]
    _log_event(
        stage=DECODER,
        asin=asin,
        output={"metrics": metrics, "resolved": len(resolved)},
        success=len(resolved) == len(metrics),
    )


__all__ = [
    "KEEPA_API",
    "PARSER",
    "DECODER",
    "setup_logger",
    "log_api_call",
    "log_parser",
    "log_decode",
]
