"""NewsAPI top-headlines connector: one bounded request per topic, content-bearing articles only."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from briefing.config import SourceSettings, mask_secret
from briefing.connectors.base import canonical_url
from briefing.errors import SourceError
from briefing.storage.models import Article

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class NewsAPISource:
    """Fetch top headlines per category from NewsAPI.

    A failing topic (bad status, malformed payload, network error after retries) is
    logged and skipped; the remaining topics are still fetched.
    """

    def __init__(
        self,
        settings: SourceSettings,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings
        self._shared_session = session

    @property
    def configured(self) -> bool:
        return self.settings.configured

    async def fetch_articles(
        self, topics: Sequence[str], limit: Optional[int] = None
    ) -> List[Article]:
        """Fetch every topic in order and return at most ``limit`` articles."""
        limit = self.settings.max_articles if limit is None else limit
        articles: List[Article] = []
        seen: set = set()

        for topic in topics:
            try:
                topic_articles = await self.fetch_topic(topic)
            except SourceError as e:
                logger.warning("Skipping topic %s: %s", topic, e)
                continue
            except RETRYABLE_ERRORS as e:
                logger.warning(
                    "Skipping topic %s after %d attempt(s): %s",
                    topic, self.settings.retry_attempts, str(e) or type(e).__name__,
                )
                continue

            for article in topic_articles:
                if self.settings.dedupe_across_topics:
                    key = canonical_url(article.url)
                    if key in seen:
                        logger.debug("Duplicate across topics, keeping first: %s", article.url)
                        continue
                    seen.add(key)
                articles.append(article)

        if len(articles) > limit:
            logger.debug("Capping %d articles to %d", len(articles), limit)
        return articles[:limit]

    async def fetch_topic(self, topic: str) -> List[Article]:
        """Fetch one topic. Raises SourceError or a network error on failure."""
        url = f"{self.settings.base_url.rstrip('/')}/top-headlines"
        params = {
            "category": topic,
            "country": self.settings.country,
            "pageSize": str(self.settings.page_size),
            "apiKey": self.settings.api_key or "",
        }
        logger.info(
            "Fetching %s headlines (key %s)", topic, mask_secret(self.settings.api_key)
        )

        data: Any = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            stop=stop_after_attempt(max(1, self.settings.retry_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            reraise=True,
        ):
            with attempt:
                data = await self._get_json(topic, url, params)

        raw_articles = self._validate_payload(topic, data)
        articles: List[Article] = []
        for raw in raw_articles[: self.settings.page_size]:
            article = Article.from_newsapi(raw, topic)
            if article is None:
                logger.debug("Dropping malformed %s entry: %r", topic, raw)
                continue
            if not article.has_content:
                logger.debug("Skipping article without content: %s", article.title)
                continue
            articles.append(article)

        logger.info(
            "Topic %s: %d of %d articles have content",
            topic, len(articles), len(raw_articles),
        )
        return articles

    async def _get_json(self, topic: str, url: str, params: Dict[str, str]) -> Any:
        headers = {"User-Agent": self.settings.user_agent}
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        async with self._session() as session:
            async with session.get(url, params=params, headers=headers, timeout=timeout) as resp:
                if resp.status != 200:
                    body = await resp.text(errors="replace")
                    raise SourceError(topic, f"HTTP {resp.status}: {body[:300]}", status=resp.status)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise SourceError(topic, f"Invalid JSON: {e}") from e

    @staticmethod
    def _validate_payload(topic: str, data: Any) -> List[Any]:
        """Check the response envelope and return its ``articles`` list."""
        if not isinstance(data, dict):
            raise SourceError(topic, f"Unexpected payload type {type(data).__name__}")
        if data.get("status") == "error":
            raise SourceError(
                topic, f"{data.get('code', 'error')}: {data.get('message', 'no message')}"
            )
        articles = data.get("articles")
        if articles is None:
            return []
        if not isinstance(articles, list):
            raise SourceError(topic, "'articles' is not a list")
        return articles

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._shared_session is not None:
            yield self._shared_session
            return
        async with aiohttp.ClientSession() as session:
            yield session
