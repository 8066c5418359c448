"""Storage layer - SQLite subscriber store with WAL mode and migrations."""

from briefing.storage.db import DatabaseManager
from briefing.storage.models import (
    Article,
    Digest,
    DigestSection,
    RunSummary,
    Subscriber,
    SubscriberResult,
    SummarizedItem,
)

__all__ = [
    "DatabaseManager",
    "Article",
    "Digest",
    "DigestSection",
    "RunSummary",
    "Subscriber",
    "SubscriberResult",
    "SummarizedItem",
]
