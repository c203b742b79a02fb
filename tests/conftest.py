"""Shared pytest fixtures for nft_stats tests."""

import json
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest

from nft_stats.aggregator import StatsAggregator
from nft_stats.fetcher import AtomicClient

HOSTS = ["https://primary.example", "https://secondary.example", "https://tertiary.example"]


class FakeResponse:
    """Just enough of a streamed requests.Response for the fetcher."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None,
                 chunks: Optional[List[bytes]] = None):
        self.status_code = status_code
        if chunks is not None:
            self._chunks = list(chunks)
        elif text is not None:
            self._chunks = [text.encode("utf-8")]
        else:
            self._chunks = [json.dumps(payload).encode("utf-8")]
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """
    Routes GETs to a handler ``(host, path, query) -> FakeResponse``.

    A handler may also raise to simulate a network failure.
    """

    def __init__(self, route: Callable[[str, str, Dict[str, str]], FakeResponse]):
        self.route = route
        self.calls: List[str] = []
        self.timeouts: List[float] = []
        self.closed = False

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append(url)
        self.timeouts.append(timeout)
        parts = urlsplit(url)
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}
        return self.route(f"{parts.scheme}://{parts.netloc}", parts.path, query)

    def close(self):
        self.closed = True


def make_aggregator(route, max_pages: int = 10, page_size: int = 1000) -> StatsAggregator:
    client = AtomicClient(HOSTS, timeout=12.0, session=FakeSession(route))
    return StatsAggregator(client, "testcollect", page_size=page_size, max_pages=max_pages)


@pytest.fixture
def hosts() -> List[str]:
    return list(HOSTS)
