"""Daily Briefing: per-subscriber news digests summarized by an LLM and delivered by email."""

__version__ = "0.1.0"
