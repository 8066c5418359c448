"""Article source interface and shared helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

if TYPE_CHECKING:
    from briefing.storage.models import Article

_TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "ref", "fbclid", "gclid",
}


class ArticleSource(Protocol):
    """Fetches candidate articles for a subscriber's topics."""

    @property
    def configured(self) -> bool:
        """False when the source has no credential and cannot fetch anything."""
        ...

    async def fetch_articles(
        self, topics: Sequence[str], limit: Optional[int] = None
    ) -> List["Article"]:
        """Return content-bearing articles tagged with their topic, in fetch order."""
        ...


def canonical_url(url: str) -> str:
    """Normalize a URL for dedup comparison (strip tracking params, fragments, etc.)."""
    try:
        parsed = urlparse(url.strip())
        scheme = parsed.scheme.lower()
        netloc = parsed.netloc.lower().rstrip(".")
        if netloc.startswith("www."):
            netloc = netloc[4:]
        path = parsed.path.rstrip("/") or "/"
        if parsed.query:
            qs = parse_qs(parsed.query, keep_blank_values=True)
            filtered = {k: v for k, v in qs.items() if k.lower() not in _TRACKING_PARAMS}
            query = urlencode(filtered, doseq=True)
        else:
            query = ""
        return urlunparse((scheme, netloc, path, "", query, ""))
    except ValueError:
        return url.strip().lower()
