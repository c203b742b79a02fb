"""Serverless function entry point for the stats endpoint."""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

from nft_stats.aggregator import StatsAggregator, run_stats

logger = logging.getLogger(__name__)

RESPONSE_HEADERS = {
    "content-type": "application/json",
    "cache-control": "no-cache, no-store, must-revalidate",
    "access-control-allow-origin": "*",
}


def handler(event: Optional[Dict[str, Any]] = None, context: Any = None,
            factory: Optional[Callable[[], StatsAggregator]] = None) -> Dict[str, Any]:
    """
    Function-trigger handler returning ``{statusCode, headers, body}``.

    The status code is always 200; failures are reported in the body as
    ``{"ok": false, "error": ...}``.
    """
    coro = run_stats(factory)
    try:
        result = asyncio.run(coro)
    except RuntimeError as e:
        # asyncio.run refuses to start inside a running event loop
        coro.close()
        logger.exception(f"Could not run stats aggregation: {e}")
        result = {"ok": False, "error": str(e) or type(e).__name__}

    return {
        "statusCode": 200,
        "headers": dict(RESPONSE_HEADERS),
        "body": json.dumps(result, allow_nan=False),
    }
