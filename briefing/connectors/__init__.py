"""Article source connectors.

Supported: NewsAPI top headlines.
"""

from briefing.connectors.base import ArticleSource, canonical_url
from briefing.connectors.newsapi import NewsAPISource

__all__ = ["ArticleSource", "canonical_url", "NewsAPISource"]
