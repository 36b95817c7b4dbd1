from __future__ import annotations

import time
from dataclasses import dataclass

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from article_cascade.models import FetchResult, _utc_now

DEFAULT_USER_AGENT = "article-cascade/0.1"


@dataclass
class HttpFetcher:
    timeout: float = 20.0
    max_attempts: int = 3
    user_agent: str = DEFAULT_USER_AGENT
    transport: httpx.BaseTransport | None = None

    def fetch(self, url: str) -> FetchResult:
        started = _utc_now()
        timer = time.perf_counter()
        try:
            response = self._fetch_with_retry(url)
        except (httpx.HTTPError, ValueError) as exc:
            return FetchResult(url=url, fetched_at=started, error=str(exc))
        return FetchResult(
            url=str(response.url),
            status_code=response.status_code,
            fetched_at=started,
            content=response.text,
            elapsed_ms=int((time.perf_counter() - timer) * 1000),
        )

    def _fetch_with_retry(self, url: str) -> httpx.Response:
        retrying = retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(httpx.TransportError)
            | retry_if_exception_type(httpx.HTTPStatusError),
            reraise=True,
        )
        return retrying(self._fetch)(url)

    def _fetch(self, url: str) -> httpx.Response:
        with httpx.Client(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            response = client.get(url)
            if response.status_code >= 500:
                raise httpx.HTTPStatusError(
                    f"Server error: {response.status_code}",
                    request=response.request,
                    response=response,
                )
            return response
