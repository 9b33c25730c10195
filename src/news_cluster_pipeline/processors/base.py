from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from ..models import DefaultsConfig

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429}


class HttpFetcher:
    """Shared GET-with-retry for the fetch processors.

    Retries timeouts, transport errors, 5xx and 429 with exponential backoff.
    Other 4xx responses are final. Returns None instead of raising so one
    failing source never takes down a run.
    """

    accept = "*/*"

    def __init__(
        self,
        defaults: DefaultsConfig,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> None:
        self.defaults = defaults
        self.max_retries = max_retries if max_retries is not None else defaults.retries + 1
        self.base_delay = base_delay if base_delay is not None else defaults.retry_base_delay_seconds
        self.headers = {"User-Agent": self.defaults.user_agent, "Accept": self.accept}
        self.timeout = httpx.Timeout(self.defaults.timeout_seconds)

    async def _http_get_with_retry(self, url: str) -> Optional[httpx.Response]:
        delay = self.base_delay
        last_err: Optional[Exception] = None
        async with httpx.AsyncClient(headers=self.headers, timeout=self.timeout, follow_redirects=True) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    resp = await client.get(url)
                    if resp.status_code >= 500 or resp.status_code in RETRYABLE_STATUS:
                        raise httpx.HTTPStatusError(
                            f"HTTP {resp.status_code}", request=resp.request, response=resp
                        )
                    if resp.status_code >= 400:
                        logger.warning("HTTP %d for %s; not retrying", resp.status_code, url)
                        return None
                    return resp
                except httpx.HTTPError as e:
                    last_err = e
                    logger.debug("HTTP attempt %d failed for %s: %s", attempt, url, e)
                    if attempt == self.max_retries:
                        break
                    await asyncio.sleep(delay)
                    delay *= 2
        logger.warning("Failed to fetch %s after %d attempts: %s", url, self.max_retries, last_err)
        return None
