"""Briefing run orchestrator.

Loads active subscribers, then for each one fetches articles for their topics,
summarizes them, composes a digest and delivers it. A failure while handling one
subscriber is logged and recorded; it never affects any other subscriber. Only an
unreadable subscriber list aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from briefing.config import Settings
from briefing.connectors.base import ArticleSource
from briefing.connectors.newsapi import NewsAPISource
from briefing.delivery.base import Delivery
from briefing.delivery.resend import ResendDelivery
from briefing.digest.composer import compose, subject_for
from briefing.digest.summarizer import LLMSummarizer, ModelBackend
from briefing.storage.db import DatabaseManager
from briefing.storage.models import (
    DeliveryRecord,
    Digest,
    RunSummary,
    Subscriber,
    SubscriberResult,
)

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Per-run identity plus a deadline and cancel signal checked between subscribers."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    deadline: Optional[float] = None  # time.monotonic() value
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> RunContext:
        ctx = cls()
        if seconds is not None:
            ctx.deadline = time.monotonic() + seconds
        return ctx

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def stopped(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline


class DigestPipeline:
    """Runs one briefing pass over all active subscribers.

    Usage:
        pipeline = DigestPipeline(settings)
        await pipeline.initialize()
        summary = await pipeline.run()
        await pipeline.close()
    """

    def __init__(
        self,
        settings: Settings,
        db: Optional[DatabaseManager] = None,
        source: Optional[ArticleSource] = None,
        delivery: Optional[Delivery] = None,
        model_backend: Optional[ModelBackend] = None,
    ):
        self.settings = settings
        self.db = db
        self._owns_db = db is None
        self.source: ArticleSource = source or NewsAPISource(settings.source)
        self.delivery: Delivery = delivery or ResendDelivery(settings.delivery)
        self.model_backend = model_backend

    async def initialize(self) -> None:
        """Open the subscriber store unless one was injected."""
        if self.db is None:
            self.db = DatabaseManager(self.settings.db_path)
            await self.db.initialize()

    async def close(self) -> None:
        if self.db and self._owns_db:
            await self.db.close()
            self.db = None

    async def __aenter__(self) -> DigestPipeline:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def new_summarizer(self) -> LLMSummarizer:
        return LLMSummarizer(self.settings.llm, backend=self.model_backend)

    async def run(self, ctx: Optional[RunContext] = None) -> RunSummary:
        """Execute one run. Returns the aggregate outcome."""
        if self.db is None:
            await self.initialize()
        assert self.db is not None

        ctx = ctx or RunContext()
        summary = RunSummary(run_id=ctx.run_id)
        t0 = time.monotonic()
        logger.info("Run %s started at %s", ctx.run_id, ctx.started_at.isoformat())

        if not self.source.configured:
            summary.aborted = True
            summary.error = "Article source API key is not configured"
            logger.error("Run %s aborted: %s", ctx.run_id, summary.error)
            summary.duration_seconds = time.monotonic() - t0
            return summary

        # Step 1: Load. Nothing can proceed without the subscriber list.
        try:
            rows = await self.db.get_active_subscriber_rows()
        except Exception as e:
            summary.aborted = True
            summary.error = f"Could not load subscribers: {e}"
            logger.error("Run %s aborted: %s", ctx.run_id, summary.error)
            summary.duration_seconds = time.monotonic() - t0
            return summary

        logger.info("Run %s: %d active subscriber(s)", ctx.run_id, len(rows))
        summarizer = self.new_summarizer()

        # Step 2: per-subscriber processing
        if self.settings.max_concurrent_subscribers <= 1:
            for index, row in enumerate(rows):
                if ctx.stopped:
                    summary.not_started = len(rows) - index
                    logger.warning(
                        "Run %s stopped early; %d subscriber(s) not started",
                        ctx.run_id, summary.not_started,
                    )
                    break
                result = await self._process_subscriber(row, summarizer, ctx)
                summary.add(result)
                await self._record(result, ctx)
        else:
            await self._run_pool(rows, summarizer, ctx, summary)

        # Step 3: completion
        summary.duration_seconds = time.monotonic() - t0
        logger.info(
            "Run %s complete: %d attempted, %d delivered, %d skipped, %d failed, "
            "%d not started in %.1fs (%d fallback summaries)",
            ctx.run_id,
            summary.attempted,
            summary.delivered,
            summary.skipped,
            summary.failed,
            summary.not_started,
            summary.duration_seconds,
            summarizer.fallbacks_used,
        )
        return summary

    async def preview(self, email: str) -> Optional[Digest]:
        """Build one stored subscriber's digest without delivering it."""
        if self.db is None:
            await self.initialize()
        assert self.db is not None

        subscriber = await self.db.get_subscriber(email)
        if subscriber is None:
            return None
        return await self.build_digest(
            subscriber, self.new_summarizer(), datetime.now(timezone.utc)
        )

    async def build_digest(
        self,
        subscriber: Subscriber,
        summarizer: LLMSummarizer,
        generated_at: datetime,
    ) -> Optional[Digest]:
        """Fetch, summarize and compose. Returns None when no article survives."""
        limit = self.settings.max_articles_per_subscriber
        articles = await self.source.fetch_articles(subscriber.topics, limit=limit)
        if not articles:
            return None

        items = await summarizer.summarize_all(articles[:limit])
        return compose(subscriber.email, items, generated_at=generated_at)

    async def _process_subscriber(
        self,
        row: Dict[str, Any],
        summarizer: LLMSummarizer,
        ctx: RunContext,
    ) -> SubscriberResult:
        """Handle one subscriber. Every exception stops here."""
        email = str(row.get("email", "<unknown>"))
        result = SubscriberResult(email=email)
        t0 = time.monotonic()

        try:
            subscriber = Subscriber.from_row(row)
            logger.info(
                "Processing %s with topics: %s", email, ", ".join(subscriber.topics)
            )
            digest = await self.build_digest(subscriber, summarizer, ctx.started_at)

            if digest is None:
                result.skipped = True
                logger.info("No articles found for %s; skipping", email)
            else:
                result.articles = digest.total_items
                subject = subject_for(digest, self.settings.delivery.subject_template)
                result.attempted = True
                result.delivered = await self.delivery.send(subscriber.email, subject, digest)
                if not result.delivered:
                    result.error_message = "delivery failed"
        except Exception as e:
            result.error_message = str(e) or type(e).__name__
            logger.error("Subscriber %s failed: %s", email, result.error_message)

        result.duration_seconds = time.monotonic() - t0
        return result

    async def _run_pool(
        self,
        rows: List[Dict[str, Any]],
        summarizer: LLMSummarizer,
        ctx: RunContext,
        summary: RunSummary,
    ) -> None:
        """Bounded worker pool; each task captures its own errors."""
        sem = asyncio.Semaphore(self.settings.max_concurrent_subscribers)

        async def _guarded(row: Dict[str, Any]) -> Optional[SubscriberResult]:
            async with sem:
                if ctx.stopped:
                    return None
                result = await self._process_subscriber(row, summarizer, ctx)
                await self._record(result, ctx)
                return result

        results = await asyncio.gather(*(_guarded(r) for r in rows), return_exceptions=True)

        for row, result in zip(rows, results):
            if result is None:
                summary.not_started += 1
            elif isinstance(result, Exception):
                logger.error("Subscriber task for %s failed: %s", row.get("email"), result)
                summary.add(SubscriberResult(email=str(row.get("email")), error_message=str(result)))
            elif isinstance(result, SubscriberResult):
                summary.add(result)

        if summary.not_started:
            logger.warning(
                "Run %s stopped early; %d subscriber(s) not started",
                ctx.run_id, summary.not_started,
            )

    async def _record(self, result: SubscriberResult, ctx: RunContext) -> None:
        """Persist the outcome. A store failure here is logged only."""
        if result.skipped or self.db is None:
            return
        try:
            await self.db.record_delivery(
                DeliveryRecord(
                    run_id=ctx.run_id,
                    email=result.email,
                    article_count=result.articles,
                    delivered=result.delivered,
                    error=result.error_message,
                )
            )
        except Exception as e:
            logger.warning("Could not record outcome for %s: %s", result.email, e)
