"""Prometheus scrape endpoint.

Returns the text exposition format, not JSON.  Besides the HTTP
metrics, this is where progress_submissions_total,
aggregation_anomalies_total and the cache hit/miss counters are read
(see app/core/metrics.py for what to watch).

Restrict access in production (scraper IP allow-list or an internal
port): the counters reveal request rates and error patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
