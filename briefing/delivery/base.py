"""Delivery interface and the dry-run implementation."""

from __future__ import annotations

import logging
from typing import Protocol

from briefing.digest.composer import render_text
from briefing.storage.models import Digest

logger = logging.getLogger(__name__)


class Delivery(Protocol):
    """Sends one digest. Implementations report failure by returning False, never by raising."""

    async def send(self, to: str, subject: str, digest: Digest) -> bool:
        ...


class LogDelivery:
    """Dry run: write the plain-text digest to the log instead of emailing it."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send(self, to: str, subject: str, digest: Digest) -> bool:
        logger.info("Digest for %s (%s):\n%s", to, subject, render_text(digest))
        self.sent.append(to)
        return True
