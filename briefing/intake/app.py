"""Subscription intake: validate ``{email, categories[]}`` and upsert the subscriber."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Tuple

from aiohttp import web

from briefing.errors import InvalidSubscriptionError
from briefing.storage.db import DatabaseManager
from briefing.storage.models import Subscriber

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Categories accepted by NewsAPI top-headlines
NEWS_CATEGORIES = (
    "business",
    "entertainment",
    "general",
    "health",
    "science",
    "sports",
    "technology",
)

DB_KEY = web.AppKey("db", DatabaseManager)


@dataclass
class SubscriptionRequest:
    email: str
    categories: List[str]


def validate_subscription(payload: Any) -> SubscriptionRequest:
    """Check email shape and category selection. Raises InvalidSubscriptionError."""
    if not isinstance(payload, dict):
        raise InvalidSubscriptionError("Invalid input: email and at least one category are required.")

    email = payload.get("email")
    categories = payload.get("categories")
    if isinstance(categories, str):
        categories = [categories]
    if not isinstance(email, str) or not email.strip() or not isinstance(categories, list) or not categories:
        raise InvalidSubscriptionError("Invalid input: email and at least one category are required.")

    email = Subscriber.normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise InvalidSubscriptionError("Invalid email format.")

    selected: List[str] = []
    for category in categories:
        if not isinstance(category, str):
            raise InvalidSubscriptionError("Categories must be strings.")
        name = category.strip().lower()
        if name not in NEWS_CATEGORIES:
            raise InvalidSubscriptionError(
                f"Unknown category {category!r}. Choose from: {', '.join(NEWS_CATEGORIES)}."
            )
        if name not in selected:
            selected.append(name)

    return SubscriptionRequest(email=email, categories=selected)


async def handle_subscribe(db: DatabaseManager, payload: Any) -> Tuple[int, str]:
    """Validate and store a subscription. Returns (http_status, message)."""
    try:
        request = validate_subscription(payload)
    except InvalidSubscriptionError as e:
        logger.info("Rejected subscription: %s", e)
        return 400, str(e)

    try:
        await db.upsert_subscriber(request.email, request.categories)
    except Exception:
        logger.exception("Failed to save subscription for %s", request.email)
        return 500, "An internal server error occurred."

    return 200, "Configuration saved successfully!"


async def subscribe(request: web.Request) -> web.Response:
    """POST /api/subscribe (JSON or form-encoded)."""
    if request.content_type == "application/json":
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"message": "Invalid JSON in request body."}, status=400)
    else:
        form = await request.post()
        payload = {
            "email": form.get("email"),
            "categories": form.getall("categories", []) or form.getall("category", []),
        }

    status, message = await handle_subscribe(request.app[DB_KEY], payload)
    return web.json_response({"message": message}, status=status)


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app(db: DatabaseManager) -> web.Application:
    app = web.Application()
    app[DB_KEY] = db
    app.router.add_post("/api/subscribe", subscribe)
    app.router.add_get("/api/health", health)
    return app
