"""Subscription intake HTTP endpoint."""

from briefing.intake.app import (
    NEWS_CATEGORIES,
    create_app,
    handle_subscribe,
    validate_subscription,
)

__all__ = ["NEWS_CATEGORIES", "create_app", "handle_subscribe", "validate_subscription"]
