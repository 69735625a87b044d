"""
News Query Client

Responsibility: Turn (topic, outlet) into a list of candidate articles.
Nothing more.

Request: GET {base_url}/news?source=<outlet slug>&q=<topic>
Empty parameters are omitted entirely. Any failure resolves to an empty
list; the engine treats "error" and "nothing found" the same way.
"""

import asyncio
import logging
import re
from typing import Dict, List, Optional

import requests

from newsreader import policy
from newsreader.instrumentation import log_event
from newsreader.models import Article

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def slugify_outlet(name: Optional[str]) -> str:
    """Lowercase the outlet name and join words with hyphens ("BBC News" -> "bbc-news")."""
    if not name:
        return ""
    return _WHITESPACE.sub("-", name.strip().lower())


def build_query(topic: Optional[str], outlet: Optional[str]) -> Dict[str, str]:
    """Query parameters for the news service (empty values left out)."""
    params = {}
    source = slugify_outlet(outlet)
    if source:
        params["source"] = source
    if topic and topic.strip():
        params["q"] = topic.strip()
    return params


class NewsClient:
    """HTTP client for the news service boundary."""

    def __init__(
        self,
        base_url: str,
        timeout: float = policy.HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def search_sync(self, topic: Optional[str], outlet: Optional[str]) -> List[Article]:
        params = build_query(topic, outlet)
        url = f"{self.base_url}/news"
        logger.info(f"[NEWS] Fetching {url} params={params}")

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"[NEWS] Search failed: {e}")
            return []

        records = payload.get("articles") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            logger.warning("[NEWS] Response has no articles list")
            return []

        articles = [a for a in (Article.from_dict(r) for r in records) if a is not None]
        dropped = len(records) - len(articles)
        if dropped:
            logger.debug(f"[NEWS] Dropped {dropped} unusable records")
        log_event(f"Articles found={len(articles)}", stage="news")
        return articles

    async def search(self, topic: Optional[str], outlet: Optional[str]) -> List[Article]:
        """
        Search for articles.

        Args:
            topic: Free-text topic ("" or None to skip)
            outlet: Outlet name as spoken ("" or None to skip)

        Returns:
            Articles in service order; [] on any error
        """
        return await asyncio.to_thread(self.search_sync, topic, outlet)
