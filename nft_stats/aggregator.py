"""Holder, supply and floor-price aggregation for one NFT collection."""

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote, urlencode

from nft_stats.config import Settings, get_settings
from nft_stats.fetcher import AtomicClient
from nft_stats.models import AccountTotals, ErrorResponse, StatsResponse
from nft_stats.pricing import extract_total_assets, sale_price_v1, sale_price_v2, to_count

logger = logging.getLogger(__name__)


def record_asset_count(record: Mapping[str, Any]) -> int:
    """
    Number of collection assets held by one account record.

    Uses the direct ``assets`` count when present, otherwise the sum of the
    per-template ``assets`` counts.
    """
    if record.get("assets"):
        return to_count(record["assets"])

    templates = record.get("templates")
    if not isinstance(templates, list):
        return 0
    return sum(to_count(t.get("assets")) for t in templates if isinstance(t, Mapping))


class StatsAggregator:
    """Collects holder count, total assets and floor price for a collection."""

    def __init__(
        self,
        client: AtomicClient,
        collection_name: str,
        page_size: int = 1000,
        max_pages: int = 10,
        token_symbol: str = "WAX",
        default_precision: int = 8,
    ):
        self.client = client
        self.collection_name = collection_name
        self.page_size = page_size
        self.max_pages = max_pages
        self.token_symbol = token_symbol
        self.default_precision = default_precision

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StatsAggregator":
        """Build an aggregator (and its HTTP client) from application settings."""
        settings = settings or get_settings()
        client = AtomicClient(
            settings.get_provider_hosts(),
            timeout=settings.request_timeout,
        )
        return cls(
            client,
            settings.collection_name,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            token_symbol=settings.token_symbol,
            default_precision=settings.default_precision,
        )

    def fetch_account_totals(self) -> AccountTotals:
        """
        Page through the collection's accounts listing.

        Stops on an empty page, a short page, or after ``max_pages`` pages.
        The page cap bounds the walk against a misbehaving indexer, so for
        very large collections the counts are a lower bound.

        Raises:
            AllProvidersFailed: if any page cannot be fetched from any host
        """
        holders = 0
        total = 0
        page = 1

        while True:
            query = urlencode({
                "collection_name": self.collection_name,
                "page": page,
                "limit": self.page_size,
            })
            rows = self.client.get_json(f"/atomicassets/v1/accounts?{query}")
            if not isinstance(rows, list) or not rows:
                break

            holders += len(rows)
            for row in rows:
                if isinstance(row, Mapping):
                    total += record_asset_count(row)

            if len(rows) < self.page_size:
                break
            if page >= self.max_pages:
                logger.warning(
                    f"Stopped accounts pagination at page cap {self.max_pages} "
                    f"for {self.collection_name}; holder count may be incomplete"
                )
                break
            page += 1

        logger.info(f"Accounts walk: {page} page(s), {holders} holders, {total} assets")
        return AccountTotals(holders=holders, total_by_sum=total or None)

    def fetch_collection_stats_total(self) -> Optional[int]:
        """Total asset count from the collection stats endpoint, or None."""
        path = f"/atomicassets/v1/collections/{quote(self.collection_name)}/stats"
        try:
            payload = self.client.get_json(path)
        except Exception as e:
            logger.warning(f"Collection stats unavailable: {e}")
            return None
        return extract_total_assets(payload)

    def _first_sale(self, version: str, with_symbol: bool) -> Optional[Mapping[str, Any]]:
        params = {
            "collection_name": self.collection_name,
            "state": 1,
            "order": "asc",
            "sort": "price",
        }
        if with_symbol:
            params["symbol"] = self.token_symbol
        params["limit"] = 1

        sales = self.client.get_json(f"/atomicmarket/{version}/sales?{urlencode(params)}")
        if isinstance(sales, list) and sales and isinstance(sales[0], Mapping):
            return sales[0]
        return None

    def fetch_floor_price(self) -> Optional[float]:
        """
        Lowest active listing price, in the collection's base token.

        Tries the v1 sales endpoint first and falls back to v2. Any failure
        means "no floor price" and yields None.
        """
        try:
            sale = self._first_sale("v1", with_symbol=True)
            if sale is not None:
                price = sale_price_v1(sale, self.default_precision)
                if price is not None:
                    return price
        except Exception as e:
            logger.warning(f"v1 floor price lookup failed: {e}")

        try:
            sale = self._first_sale("v2", with_symbol=False)
            if sale is not None:
                return sale_price_v2(sale, self.default_precision)
        except Exception as e:
            logger.warning(f"v2 floor price lookup failed: {e}")

        return None

    async def collect(self) -> StatsResponse:
        """
        Run the three lookups concurrently and merge their results.

        All workers finish before this returns or raises, so the shared
        HTTP session is idle once the caller closes it.
        """
        results = await asyncio.gather(
            asyncio.to_thread(self.fetch_account_totals),
            asyncio.to_thread(self.fetch_collection_stats_total),
            asyncio.to_thread(self.fetch_floor_price),
            return_exceptions=True,
        )
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome
        totals, stats_total, floor_wax = results

        return StatsResponse(
            holders=totals.holders or 0,
            total_assets=stats_total or totals.total_by_sum or None,
            floor_wax=floor_wax,
        )

    def close(self):
        self.client.close()


def _error_body(e: BaseException) -> Dict[str, Any]:
    return ErrorResponse(error=str(e) or type(e).__name__).model_dump()


async def compute_stats(aggregator: StatsAggregator) -> Dict[str, Any]:
    """
    Aggregate collection stats into a JSON-ready dict.

    Never raises: any failure is returned as ``{"ok": False, "error": ...}``.
    """
    try:
        result = await aggregator.collect()
        return result.model_dump()
    except Exception as e:
        logger.exception(f"Stats aggregation failed for {aggregator.collection_name}: {e}")
        return _error_body(e)


async def run_stats(factory: Optional[Callable[[], StatsAggregator]] = None) -> Dict[str, Any]:
    """
    Build an aggregator, compute the stats and release its connections.

    Also never raises: a configuration error while building the aggregator
    is reported the same way as a failed aggregation.
    """
    try:
        aggregator = (factory or StatsAggregator.from_settings)()
    except Exception as e:
        logger.exception(f"Could not configure stats aggregator: {e}")
        return _error_body(e)

    try:
        return await compute_stats(aggregator)
    finally:
        aggregator.close()
