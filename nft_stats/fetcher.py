"""JSON fetching against a prioritized list of AtomicAssets mirror hosts."""

import json
import logging
import re
import time
from typing import Any, Callable, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

CHUNK_SIZE = 16 * 1024

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


class NftStatsError(Exception):
    """Base exception for stats service errors."""
    pass


class ProviderHTTPError(NftStatsError):
    """Raised when a provider host answers with a non-2xx status."""

    def __init__(self, status_code: int, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code} @ {url}")


class AllProvidersFailed(NftStatsError):
    """Raised when every candidate host failed for a request."""

    def __init__(self, targets: Sequence[str], last_error: Optional[BaseException] = None):
        self.targets = list(targets)
        self.last_error = last_error
        if last_error is not None:
            message = str(last_error) or type(last_error).__name__
        elif self.targets:
            message = f"All endpoints failed for {self.targets[0]}"
        else:
            message = "No provider hosts configured"
        super().__init__(message)


# Failures that mean "try the next host"
RECOVERABLE_ERRORS = (requests.RequestException, ValueError, ProviderHTTPError)


def first_success(targets: Sequence[str], attempt: Callable[[str], Any]) -> Any:
    """
    Call ``attempt`` on each target in order and return the first result.

    Args:
        targets: Candidate URLs, most preferred first
        attempt: Callable performing one request; raises on failure

    Returns:
        The result of the first successful attempt

    Raises:
        AllProvidersFailed: if every target failed (or there were none)
    """
    last_error: Optional[BaseException] = None
    for target in targets:
        try:
            return attempt(target)
        except RECOVERABLE_ERRORS as e:
            logger.warning(f"Provider request failed, trying next host: {target}: {e}")
            last_error = e
    raise AllProvidersFailed(targets, last_error)


def unwrap_data(payload: Any) -> Any:
    """Return the ``data`` member of an API envelope, or the payload itself."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class AtomicClient:
    """Minimal GET-only JSON client with ordered host fallback."""

    def __init__(
        self,
        hosts: Sequence[str],
        timeout: float = 12.0,
        session: Optional[requests.Session] = None,
    ):
        self.hosts = [h.rstrip("/") for h in hosts]
        self.timeout = timeout
        self.session = session or requests.Session()

    def targets(self, path_or_url: str) -> List[str]:
        """Expand a relative API path into one URL per host."""
        if _ABSOLUTE_URL.match(path_or_url):
            return [path_or_url]
        return [host + path_or_url for host in self.hosts]

    def _get(self, url: str) -> Any:
        """
        GET one URL and parse its JSON body.

        ``timeout`` bounds the whole call, not only connect and each socket
        read: the body is streamed and the connection is dropped once the
        deadline passes, so a slowly trickling mirror cannot hold it open.
        """
        deadline = time.monotonic() + self.timeout
        response = self.session.get(
            url,
            headers={"accept": "application/json"},
            timeout=self.timeout,
            stream=True,
        )
        try:
            if not 200 <= response.status_code < 300:
                raise ProviderHTTPError(response.status_code, url)

            chunks = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if time.monotonic() > deadline:
                    raise requests.Timeout(f"Read exceeded {self.timeout}s @ {url}")
                chunks.append(chunk)
        finally:
            response.close()

        return json.loads(b"".join(chunks))

    def get_json(self, path_or_url: str) -> Any:
        """
        Fetch JSON from the first host that answers successfully.

        The ``data`` envelope used by the Atomic APIs is unwrapped.
        """
        payload = first_success(self.targets(path_or_url), self._get)
        return unwrap_data(payload)

    def close(self):
        """Release pooled connections."""
        self.session.close()
