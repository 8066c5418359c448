"""Exception types shared across the briefing pipeline."""

from __future__ import annotations


class BriefingError(Exception):
    """Base class for pipeline errors."""


class StoreUnavailableError(BriefingError):
    """The subscriber store could not be read. Fatal for a run."""


class SourceError(BriefingError):
    """Fetching one topic from the article source failed."""

    def __init__(self, topic: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{topic}: {message}")
        self.topic = topic
        self.status = status


class MalformedTopicsError(BriefingError):
    """Stored categories for a subscriber could not be parsed."""


class InvalidSubscriptionError(BriefingError):
    """A subscription request failed validation. ``str(exc)`` is safe to show the caller."""
