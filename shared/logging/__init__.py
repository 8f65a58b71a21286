"""
Structured logging for pagequery.

JSON Lines logging with correlation, run and query identifiers so that
records from concurrently resolving queries can be told apart.

Usage:
    from shared.logging import get_logger, run_context, query_context

    log = get_logger("pagequery", "orchestrator")

    with run_context("run-3"), query_context("gene"):
        log.info("pagequery.cache.hit", request_id="/gene/X")
"""

from .logger import get_logger, configure, StructuredLogger
from .context import (
    correlation_context,
    run_context,
    query_context,
    get_correlation_id,
    set_correlation_id,
    get_run_id,
    get_query_name,
)

__all__ = [
    "get_logger",
    "configure",
    "StructuredLogger",
    "correlation_context",
    "run_context",
    "query_context",
    "get_correlation_id",
    "set_correlation_id",
    "get_run_id",
    "get_query_name",
]
