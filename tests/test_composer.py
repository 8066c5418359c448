"""Tests for digest composition and rendering."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from briefing.digest.composer import compose, render_html, render_text, subject_for
from briefing.storage.models import Article, SummarizedItem

GENERATED_AT = datetime(2026, 10, 18, 7, 0, tzinfo=timezone.utc)


def make_item(title: str, topic: str, summary: str | None = None, source: str = "Example Wire") -> SummarizedItem:
    slug = title.lower().replace(" ", "-")
    article = Article(
        title=title,
        url=f"https://news.example.com/{slug}",
        source_name=source,
        topic=topic,
        description=f"About {title}.",
    )
    return SummarizedItem(article=article, summary=summary or f"Summary of {title}.", topic=topic)


@pytest.fixture
def items():
    return [
        make_item("Chip plant opens", "technology"),
        make_item("Flu season early", "health"),
        make_item("New phone launch", "technology"),
        make_item("Clinic wait times", "health"),
        make_item("Mars sample return", "science"),
    ]


class TestCompose:
    def test_groups_by_first_seen_topic(self, items):
        digest = compose("a@x.com", items, generated_at=GENERATED_AT)
        assert digest.topics == ["technology", "health", "science"]
        assert [s.heading for s in digest.sections] == ["TECHNOLOGY", "HEALTH", "SCIENCE"]

    def test_keeps_arrival_order_within_topic(self, items):
        digest = compose("a@x.com", items, generated_at=GENERATED_AT)
        tech = digest.sections[0]
        assert [si.article.title for si in tech.items] == ["Chip plant opens", "New phone launch"]
        assert digest.total_items == 5

    def test_empty_items(self):
        digest = compose("a@x.com", [], generated_at=GENERATED_AT)
        assert digest.sections == ()
        assert digest.total_items == 0

    def test_generated_at_required(self, items):
        with pytest.raises(TypeError):
            compose("a@x.com", items)  # type: ignore[call-arg]

    def test_same_inputs_same_digest(self, items):
        assert compose("a@x.com", items, GENERATED_AT) == compose("a@x.com", list(items), GENERATED_AT)

    def test_digest_is_immutable(self, items):
        digest = compose("a@x.com", items, generated_at=GENERATED_AT)
        with pytest.raises(AttributeError):
            digest.recipient = "b@x.com"  # type: ignore[misc]

    def test_to_dict(self, items):
        data = compose("a@x.com", items[:1], generated_at=GENERATED_AT).to_dict()
        assert data["recipient"] == "a@x.com"
        assert data["sections"][0]["topic"] == "technology"
        assert data["sections"][0]["items"][0] == {
            "title": "Chip plant opens",
            "summary": "Summary of Chip plant opens.",
            "source": "Example Wire",
            "url": "https://news.example.com/chip-plant-opens",
        }


class TestRenderText:
    def test_deterministic(self, items):
        first = render_text(compose("a@x.com", items, generated_at=GENERATED_AT))
        second = render_text(compose("a@x.com", list(items), generated_at=GENERATED_AT))
        assert first == second

    def test_layout(self, items):
        text = render_text(compose("a@x.com", items[:3], generated_at=GENERATED_AT))
        assert text.startswith("Your Daily News Briefing - Sunday, October 18, 2026\nFor: a@x.com\n")
        assert "TECHNOLOGY\n==========\n" in text
        assert "HEALTH\n======\n" in text
        assert "1. Chip plant opens\n   Summary: Summary of Chip plant opens.\n" in text
        assert "2. New phone launch\n" in text
        assert "   Source: Example Wire\n   Read more: https://news.example.com/new-phone-launch\n" in text
        assert text.index("TECHNOLOGY") < text.index("HEALTH")


class TestRenderHtml:
    def test_contains_sections_and_links(self, items):
        html = render_html(compose("a@x.com", items, generated_at=GENERATED_AT))
        assert "<h2>TECHNOLOGY</h2>" in html
        assert '<a href="https://news.example.com/chip-plant-opens">' in html
        assert "Sunday, October 18, 2026" in html
        assert html.index("TECHNOLOGY") < html.index("HEALTH") < html.index("SCIENCE")

    def test_escapes_untrusted_text(self):
        item = make_item("Safe title", "general", summary="<script>alert(1)</script>", source="A & B News")
        html = render_html(compose("a@x.com", [item], generated_at=GENERATED_AT))
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "A &amp; B News" in html

    def test_same_digest_feeds_both_renderings(self, items):
        digest = compose("a@x.com", items, generated_at=GENERATED_AT)
        text = render_text(digest)
        html = render_html(digest)
        for section in digest.sections:
            for si in section.items:
                assert si.summary in text
                assert si.summary in html


def test_subject_for():
    digest = compose("a@x.com", [], generated_at=GENERATED_AT)
    assert subject_for(digest) == "Your Daily News Briefing - Sunday, October 18, 2026"
    assert subject_for(digest, "Briefing for {recipient}") == "Briefing for a@x.com"
