"""Digest composer: group summaries by topic and render plain-text and HTML bodies.

Everything here is pure. Both renderings are derived from the same ``Digest`` value.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Sequence

from jinja2 import Environment, select_autoescape

from briefing.storage.models import Digest, DigestSection, SummarizedItem

TITLE = "Your Daily News Briefing"
FOOTER = "Headlines from NewsAPI, summarized for you."

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

HTML_TEMPLATE = _env.from_string(
    """\
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
         max-width: 640px; margin: 0 auto; padding: 20px; color: #1f2937; }
  .header { border-bottom: 2px solid #007bff; padding-bottom: 12px; margin-bottom: 20px; }
  .header h1 { margin: 0; font-size: 22px; }
  .header .meta { color: #667085; font-size: 13px; margin-top: 6px; }
  .section h2 { font-size: 16px; color: #0b3c7f; letter-spacing: 0.5px; margin: 24px 0 8px; }
  .item { border-left: 3px solid #007bff; background: #f8f9fa; padding: 10px 14px; margin: 10px 0; }
  .item .title { font-weight: 600; }
  .item .summary { margin: 6px 0; line-height: 1.5; }
  .item .source { font-size: 12px; color: #667085; }
  .footer { margin-top: 28px; font-size: 12px; color: #98a2b3; }
</style>
</head>
<body>
  <div class="header">
    <h1>{{ title }}</h1>
    <div class="meta">{{ date }} &middot; for {{ digest.recipient }}</div>
  </div>
  {% for section in digest.sections %}
  <div class="section">
    <h2>{{ section.heading }}</h2>
    <ol>
    {% for si in section.items %}
      <li class="item">
        <div class="title">{{ si.article.title }}</div>
        <div class="summary">{{ si.summary }}</div>
        <div class="source">{{ si.article.source_name }} &middot;
          <a href="{{ si.article.url }}">Read more</a></div>
      </li>
    {% endfor %}
    </ol>
  </div>
  {% endfor %}
  <div class="footer">{{ footer }}</div>
</body>
</html>
"""
)


def compose(
    recipient: str,
    items: Sequence[SummarizedItem],
    generated_at: datetime,
) -> Digest:
    """Group items by topic, keeping first-seen topic order and arrival order within a topic.

    ``generated_at`` is required; composing never reads the clock.
    """
    grouped: Dict[str, List[SummarizedItem]] = {}
    for item in items:
        grouped.setdefault(item.topic, []).append(item)

    return Digest(
        recipient=recipient,
        generated_at=generated_at,
        sections=tuple(
            DigestSection(topic=topic, items=tuple(section_items))
            for topic, section_items in grouped.items()
        ),
    )


def format_date(digest: Digest) -> str:
    return digest.generated_at.strftime("%A, %B %d, %Y")


def subject_for(digest: Digest, template: str = TITLE + " - {date}") -> str:
    return template.format(date=format_date(digest), recipient=digest.recipient)


def render_text(digest: Digest) -> str:
    """Plain-text body, used for logs and as the email's text part."""
    lines = [
        f"{TITLE} - {format_date(digest)}",
        f"For: {digest.recipient}",
        "",
    ]
    for section in digest.sections:
        lines.append(section.heading)
        lines.append("=" * len(section.heading))
        lines.append("")
        for i, si in enumerate(section.items, 1):
            lines.append(f"{i}. {si.article.title}")
            lines.append(f"   Summary: {si.summary}")
            lines.append(f"   Source: {si.article.source_name}")
            lines.append(f"   Read more: {si.article.url}")
            lines.append("")
    lines.append(FOOTER)
    return "\n".join(lines) + "\n"


def render_html(digest: Digest) -> str:
    """HTML body for the email."""
    return HTML_TEMPLATE.render(
        title=TITLE,
        date=format_date(digest),
        digest=digest,
        footer=FOOTER,
    )
