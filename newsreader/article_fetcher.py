"""
Article Fetcher

Downloads the HTML of a chosen article. Transient failures (429 and 5xx)
are retried with exponential backoff via urllib3's Retry; anything left
over surfaces as ArticleFetchError.
"""

import asyncio
import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from newsreader import policy

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


class ArticleFetchError(Exception):
    """Article page could not be downloaded."""


class ArticleFetcher:
    def __init__(
        self,
        timeout: float = policy.HTTP_TIMEOUT_SECONDS,
        retries: int = 3,
        backoff_factor: float = 0.5,
        user_agent: str = "Mozilla/5.0 (compatible; newsreader/1.0)",
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session or self._build_session(retries, backoff_factor)

    @staticmethod
    def _build_session(retries: int, backoff_factor: float) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def fetch(self, url: str) -> str:
        """
        Retrieve raw HTML.

        Raises:
            ArticleFetchError: Network error, non-2xx status or empty body
        """
        if not url:
            raise ArticleFetchError("No article URL")

        logger.info(f"[FETCH] GET {url}")
        try:
            response = self.session.get(
                url,
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning(f"[FETCH] Failed to fetch {url}: {e}")
            raise ArticleFetchError(f"Failed to fetch {url}: {e}") from e

        if not response.text:
            raise ArticleFetchError(f"Empty response from {url}")
        return response.text

    async def fetch_async(self, url: str) -> str:
        return await asyncio.to_thread(self.fetch, url)
