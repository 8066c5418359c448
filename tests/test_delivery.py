"""Tests for Resend email delivery and the dry-run delivery."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import aiohttp
import pytest

from briefing.config import DeliverySettings
from briefing.delivery.base import LogDelivery
from briefing.delivery.resend import ResendDelivery
from briefing.digest.composer import compose
from briefing.storage.models import Article, SummarizedItem


def make_digest(recipient: str = "a@x.com"):
    article = Article(
        title="Chip plant opens",
        url="https://news.example.com/chips",
        source_name="Example Wire",
        topic="technology",
        description="A new plant opened.",
    )
    items = [SummarizedItem(article=article, summary="A plant opened <today>.", topic="technology")]
    return compose(recipient, items, generated_at=datetime(2026, 10, 18, 7, 0, tzinfo=timezone.utc))


class FakeResponse:
    def __init__(self, status: int, body: str = "{}", raw: bytes | None = None):
        self.status = status
        self._body = body
        self._raw = raw

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self, errors="strict"):
        if self._raw is not None:
            return self._raw.decode("utf-8", errors)
        return self._body


class FakeSession:
    """Returns queued responses (or raises queued errors) for each POST."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_delivery(session: FakeSession, **overrides: Any) -> ResendDelivery:
    values = {"api_key": "re_test_key_123456", "retry_attempts": 1}
    values.update(overrides)
    return ResendDelivery(DeliverySettings(**values), session=session)


class TestResendDelivery:
    @pytest.mark.asyncio
    async def test_missing_key_fails_without_request(self):
        session = FakeSession()
        delivery = make_delivery(session, api_key=None)

        assert await delivery.send("a@x.com", "Subject", make_digest()) is False
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_success(self):
        session = FakeSession(FakeResponse(200, '{"id": "email_123"}'))
        delivery = make_delivery(session)

        assert await delivery.send("a@x.com", "Your briefing", make_digest()) is True

        call = session.calls[0]
        assert call["url"] == "https://api.resend.com/emails"
        assert call["headers"]["Authorization"] == "Bearer re_test_key_123456"

    @pytest.mark.asyncio
    async def test_rejected_status(self, caplog):
        caplog.set_level(logging.ERROR, logger="briefing.delivery.resend")
        session = FakeSession(FakeResponse(422, '{"message": "Invalid from address"}'))

        assert await make_delivery(session).send("a@x.com", "Subject", make_digest()) is False
        assert "422" in caplog.text
        assert "Invalid from address" in caplog.text

    @pytest.mark.asyncio
    async def test_undecodable_accepted_body_is_success(self):
        session = FakeSession(FakeResponse(200, raw=b"\xff\xfe"))
        assert await make_delivery(session).send("a@x.com", "Subject", make_digest()) is True

    @pytest.mark.asyncio
    async def test_undecodable_rejected_body_is_failure(self, caplog):
        caplog.set_level(logging.ERROR, logger="briefing.delivery.resend")
        session = FakeSession(FakeResponse(500, raw=b"\xff\xfe upstream"))

        assert await make_delivery(session).send("a@x.com", "Subject", make_digest()) is False
        assert "HTTP 500" in caplog.text

    @pytest.mark.asyncio
    async def test_network_error(self):
        session = FakeSession(aiohttp.ClientConnectionError("connection refused"))
        assert await make_delivery(session).send("a@x.com", "Subject", make_digest()) is False

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_raise(self):
        session = FakeSession(RuntimeError("bug"))
        assert await make_delivery(session).send("a@x.com", "Subject", make_digest()) is False

    def test_payload_shape(self):
        delivery = make_delivery(FakeSession(), sender="Briefing <news@example.com>")
        payload = delivery.build_payload("a@x.com", "Subject line", make_digest())

        assert payload["from"] == "Briefing <news@example.com>"
        assert payload["to"] == ["a@x.com"]
        assert payload["subject"] == "Subject line"
        assert "A plant opened &lt;today&gt;." in payload["html"]
        assert "A plant opened <today>." in payload["text"]
        assert "TECHNOLOGY" in payload["text"]


class TestLogDelivery:
    @pytest.mark.asyncio
    async def test_records_and_succeeds(self, caplog):
        caplog.set_level(logging.INFO, logger="briefing.delivery.base")
        delivery = LogDelivery()

        assert await delivery.send("a@x.com", "Subject", make_digest()) is True
        assert delivery.sent == ["a@x.com"]
        assert "Chip plant opens" in caplog.text
