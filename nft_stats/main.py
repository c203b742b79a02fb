"""FastAPI application for the NFT collection stats service."""

import logging
import time
from typing import Callable

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

from nft_stats.aggregator import StatsAggregator, run_stats
from nft_stats.config import get_settings
from nft_stats.models import HealthResponse

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"cache-control": "no-cache, no-store, must-revalidate"}

# Prometheus metrics
REQUEST_COUNT = Counter(
    'nft_stats_requests_total',
    'Total requests',
    ['method', 'endpoint', 'status']
)
REQUEST_LATENCY = Histogram(
    'nft_stats_request_latency_seconds',
    'Request latency',
    ['endpoint']
)
HOLDER_COUNT = Gauge(
    'nft_stats_holder_count',
    'Number of accounts holding collection assets'
)
TOTAL_ASSETS = Gauge(
    'nft_stats_total_assets',
    'Total assets minted in the collection'
)
FLOOR_WAX = Gauge(
    'nft_stats_floor_wax',
    'Lowest active listing price in the base token'
)
STATS_FAILURES = Counter(
    'nft_stats_failures_total',
    'Stats requests that returned ok=false'
)


def get_aggregator_factory() -> Callable[[], StatsAggregator]:
    """Dependency providing how to build a fresh aggregator per request."""
    return StatsAggregator.from_settings


# Create FastAPI app
app = FastAPI(
    title="NFT Collection Stats",
    description="Holder count, total assets and floor price for one AtomicAssets collection",
    version="1.0.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Middleware to track request metrics."""
    start_time = time.time()
    response = await call_next(request)

    # Record metrics (skip /metrics endpoint to avoid recursion)
    if request.url.path != "/metrics":
        latency = time.time() - start_time
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(endpoint=request.url.path).observe(latency)

    return response


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness probe; reports which collection and mirrors are configured."""
    try:
        settings = get_settings()
        return HealthResponse(
            status="healthy",
            collection_name=settings.collection_name,
            provider_hosts=settings.get_provider_hosts()
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service misconfigured")


@app.get("/stats")
async def get_stats(factory: Callable[[], StatsAggregator] = Depends(get_aggregator_factory)):
    """
    Get holder count, total assets and floor price for the collection.

    Always answers 200 so the widget can render gracefully.

    Returns:
        - ok: true when holder pagination succeeded
        - holders: number of accounts holding collection assets
        - total_assets: stats-endpoint total, else the summed holdings, else null
        - floor_wax: lowest active listing in the base token, or null
        - error: failure message (only when ok is false)
    """
    result = await run_stats(factory)

    if result["ok"]:
        HOLDER_COUNT.set(result["holders"])
        if result["total_assets"] is not None:
            TOTAL_ASSETS.set(result["total_assets"])
        if result["floor_wax"] is not None:
            FLOOR_WAX.set(result["floor_wax"])
    else:
        STATS_FAILURES.inc()
        logger.error(f"Returning ok=false stats: {result['error']}")

    return JSONResponse(content=result, status_code=200, headers=NO_CACHE_HEADERS)


@app.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
