"""Transactional email delivery through the Resend HTTP API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from briefing.config import DeliverySettings
from briefing.digest.composer import render_html, render_text
from briefing.storage.models import Digest

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class ResendDelivery:
    """POST /emails with a bearer key. ``send`` returns False on any failure."""

    def __init__(
        self,
        settings: DeliverySettings,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings
        self._shared_session = session

    def build_payload(self, to: str, subject: str, digest: Digest) -> Dict[str, Any]:
        return {
            "from": self.settings.sender,
            "to": [to],
            "subject": subject,
            "html": render_html(digest),
            "text": render_text(digest),
        }

    async def send(self, to: str, subject: str, digest: Digest) -> bool:
        if not self.settings.configured:
            logger.error("Delivery API key not set; not sending to %s", to)
            return False

        payload = self.build_payload(to, subject, digest)
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                stop=stop_after_attempt(max(1, self.settings.retry_attempts)),
                wait=wait_exponential(multiplier=1, min=1, max=20),
                reraise=True,
            ):
                with attempt:
                    status, body = await self._post(payload)
        except RETRYABLE_ERRORS as e:
            logger.error("Delivery to %s failed: %s", to, str(e) or type(e).__name__)
            return False
        except Exception:
            logger.exception("Unexpected error delivering to %s", to)
            return False

        if not 200 <= status < 300:
            logger.error("Delivery to %s rejected: HTTP %s %s", to, status, body[:500])
            return False

        logger.info("Delivered digest to %s (%d items)", to, digest.total_items)
        return True

    async def _post(self, payload: Dict[str, Any]) -> Tuple[int, str]:
        url = f"{self.settings.base_url.rstrip('/')}/emails"
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        async with self._session() as session:
            async with session.post(url, json=payload, headers=headers, timeout=timeout) as resp:
                return resp.status, await resp.text(errors="replace")

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._shared_session is not None:
            yield self._shared_session
            return
        async with aiohttp.ClientSession() as session:
            yield session
