"""Digest generation: LLM summarization and per-subscriber composition."""

from briefing.digest.composer import compose, render_html, render_text, subject_for
from briefing.digest.summarizer import LLMSummarizer, fallback_summary

__all__ = [
    "LLMSummarizer",
    "compose",
    "fallback_summary",
    "render_html",
    "render_text",
    "subject_for",
]
