"""Data models for the briefing pipeline."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from briefing.errors import MalformedTopicsError

# NewsAPI marks articles taken down by the publisher with this literal
REMOVED_SENTINEL = "[Removed]"

# NewsAPI truncates `content` and appends e.g. "… [+2841 chars]"
_TRUNCATION_MARKER = re.compile(r"\s*(?:…|\.\.\.)?\s*\[\+\d+ chars\]\s*$")


def is_usable_text(value: Optional[str]) -> bool:
    """True when text is present and is not the removed-article sentinel."""
    if not value:
        return False
    text = value.strip()
    return bool(text) and text != REMOVED_SENTINEL


def parse_topics(raw: Any) -> Tuple[str, ...]:
    """Parse stored categories into an ordered, de-duplicated topic tuple.

    Accepts the JSON list written by the store and the legacy comma-separated form.
    Raises MalformedTopicsError for anything else.
    """
    if isinstance(raw, (list, tuple)):
        values = list(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if text and text[0] in "[{":
            try:
                values = json.loads(text)
            except json.JSONDecodeError as e:
                raise MalformedTopicsError(f"Invalid categories JSON: {e}") from e
            if not isinstance(values, list):
                raise MalformedTopicsError("Categories JSON is not a list")
        else:
            values = text.split(",")
    else:
        raise MalformedTopicsError(f"Unsupported categories type: {type(raw).__name__}")

    topics: List[str] = []
    for value in values:
        if not isinstance(value, str):
            raise MalformedTopicsError(f"Category must be a string, got {value!r}")
        topic = value.strip().lower()
        if topic and topic not in topics:
            topics.append(topic)
    if not topics:
        raise MalformedTopicsError("No categories stored")
    return tuple(topics)


@dataclass
class Subscriber:
    """A newsletter subscriber and the topics they opted into."""

    email: str
    topics: Tuple[str, ...]
    active: bool = True
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    @staticmethod
    def serialize_topics(topics: Any) -> str:
        return json.dumps(list(parse_topics(list(topics))))

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Subscriber:
        """Build from a subscribers row. Raises MalformedTopicsError on bad categories."""
        return cls(
            id=row.get("id"),
            email=row["email"],
            topics=parse_topics(row["categories"]),
            active=bool(row.get("active", 1)),
            created_at=_parse_ts(row.get("created_at")),
        )


@dataclass
class Article:
    """A headline fetched for one topic. Never persisted."""

    title: str
    url: str
    source_name: str
    topic: str
    description: str = ""
    content: str = ""
    published_at: Optional[datetime] = None

    @classmethod
    def from_newsapi(cls, raw: Any, topic: str) -> Optional[Article]:
        """Validate one NewsAPI ``articles[]`` entry. Returns None if the shape is unusable."""
        if not isinstance(raw, dict):
            return None
        url = raw.get("url")
        if not isinstance(url, str) or not url.strip():
            return None
        source = raw.get("source")
        source_name = source.get("name") if isinstance(source, dict) else None
        return cls(
            title=_as_text(raw.get("title")) or "Untitled",
            url=url.strip(),
            source_name=_as_text(source_name) or "Unknown source",
            topic=topic,
            description=_as_text(raw.get("description")),
            content=_as_text(raw.get("content")),
            published_at=_parse_ts(raw.get("publishedAt")),
        )

    @property
    def has_content(self) -> bool:
        """Article carries body or description text worth summarizing."""
        if self.title.strip() == REMOVED_SENTINEL:
            return False
        return is_usable_text(self.content) or is_usable_text(self.description)

    @property
    def body(self) -> str:
        """Content with NewsAPI's truncation marker removed; empty if unusable."""
        if not is_usable_text(self.content):
            return ""
        return _TRUNCATION_MARKER.sub("", self.content.strip())


@dataclass(frozen=True)
class SummarizedItem:
    article: Article
    summary: str
    topic: str


@dataclass(frozen=True)
class DigestSection:
    topic: str
    items: Tuple[SummarizedItem, ...]

    @property
    def heading(self) -> str:
        return self.topic.upper()


@dataclass(frozen=True)
class Digest:
    """One subscriber's composed briefing. Both renderings derive from this value."""

    recipient: str
    generated_at: datetime
    sections: Tuple[DigestSection, ...]

    @property
    def total_items(self) -> int:
        return sum(len(s.items) for s in self.sections)

    @property
    def topics(self) -> List[str]:
        return [s.topic for s in self.sections]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "generated_at": self.generated_at.isoformat(),
            "sections": [
                {
                    "topic": section.topic,
                    "items": [
                        {
                            "title": si.article.title,
                            "summary": si.summary,
                            "source": si.article.source_name,
                            "url": si.article.url,
                        }
                        for si in section.items
                    ],
                }
                for section in self.sections
            ],
        }


@dataclass
class DeliveryRecord:
    """A persisted per-run outcome for one subscriber."""

    run_id: str
    email: str
    article_count: int
    delivered: bool
    error: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_row(self) -> tuple:
        return (
            self.run_id,
            self.email,
            self.article_count,
            int(self.delivered),
            self.error,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> DeliveryRecord:
        return cls(
            id=row.get("id"),
            run_id=row["run_id"],
            email=row["email"],
            article_count=row.get("article_count", 0),
            delivered=bool(row.get("delivered", 0)),
            error=row.get("error"),
            created_at=_parse_ts(row.get("created_at")),
        )


@dataclass
class SubscriberResult:
    """Outcome of processing one subscriber in a run."""

    email: str
    articles: int = 0
    attempted: bool = False  # digest composed and handed to delivery
    delivered: bool = False
    skipped: bool = False
    error_message: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return not self.skipped and not self.delivered


@dataclass
class RunSummary:
    """Aggregate result from a full pipeline run."""

    run_id: str
    results: List[SubscriberResult] = field(default_factory=list)
    attempted: int = 0
    delivered: int = 0
    skipped: int = 0
    failed: int = 0
    not_started: int = 0
    aborted: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def add(self, result: SubscriberResult) -> None:
        self.results.append(result)
        if result.skipped:
            self.skipped += 1
            return
        if result.attempted:
            self.attempted += 1
        if result.delivered:
            self.delivered += 1
        else:
            self.failed += 1


# --- Helpers ---

def _as_text(val: Any) -> str:
    return val.strip() if isinstance(val, str) else ""


def _parse_ts(val: Any) -> Optional[datetime]:
    """Parse a timestamp string or return None."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return val
    try:
        from dateutil.parser import parse
        return parse(str(val))
    except (ValueError, TypeError, OverflowError):
        return None
