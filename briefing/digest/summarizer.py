"""LLM summarizer with multi-provider support and a deterministic fallback.

``summarize`` never raises: if the model call fails, times out, or returns nothing
usable, a rule-based summary built from the article itself is returned instead.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from typing import Any, Optional, Protocol

from briefing.config import LLMSettings
from briefing.storage.models import Article, SummarizedItem, is_usable_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a news editor. Summarize the article in exactly 1-2 clear, concise "
    "sentences, focusing on the main facts."
)

_LEAD_IN = re.compile(r"^(?:here(?:'s| is) (?:a )?(?:concise )?summary:?|summary:)\s*", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_UNUSABLE_OUTPUTS = {"summary not available", "no summary available"}


class ModelBackend(Protocol):
    """A generative model handle.

    ``generate`` may return a string, a mapping with a ``response`` or ``text``
    field, or an object with a ``text`` attribute.
    """

    async def generate(self, prompt: str, *, max_tokens: int, temperature: float) -> Any:
        ...


class LLMSummarizer:
    """Summarize one article at a time using the configured provider.

    One instance serves one run; its cache lets an article shared by several
    subscribers be summarized once.
    """

    def __init__(self, settings: LLMSettings, backend: Optional[ModelBackend] = None) -> None:
        self.settings = settings
        self.backend = backend
        self.provider = settings.provider.lower().strip()
        self._cache: dict[str, str] = {}
        self.fallbacks_used = 0

    async def summarize(self, article: Article) -> str:
        """Return a non-empty summary for ``article``. Never raises."""
        cache_key: Optional[str] = None
        summary: Optional[str] = None
        try:
            cache_key = self._cache_key(article)
            if self.settings.cache_summaries and cache_key in self._cache:
                return self._cache[cache_key]
            summary = await self._model_summary(article)
        except Exception:
            logger.exception("Summarizing %r failed", article.title[:80])

        if not summary:
            summary = fallback_summary(article)
            self.fallbacks_used += 1
            logger.info("Using fallback summary for %r", article.title[:80])

        if self.settings.cache_summaries and cache_key is not None:
            self._cache[cache_key] = summary
        return summary

    async def summarize_all(self, articles: list[Article]) -> list[SummarizedItem]:
        """Summarize articles sequentially, preserving order."""
        items = []
        for article in articles:
            summary = await self.summarize(article)
            items.append(SummarizedItem(article=article, summary=summary, topic=article.topic))
        return items

    async def _model_summary(self, article: Article) -> Optional[str]:
        prompt = self.build_prompt(article, self.settings.content_chars)
        try:
            result = await asyncio.wait_for(
                self._generate(prompt, article), timeout=self.settings.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Summary timed out after %ss for %r", self.settings.timeout_seconds, article.title[:80]
            )
            return None
        except Exception as e:
            logger.warning("Summary failed for %r: %s", article.title[:80], e)
            return None
        return self.clean_output(extract_text(result))

    async def _generate(self, prompt: str, article: Article) -> Any:
        """Dispatch to the injected backend or the configured provider."""
        if self.backend is not None:
            return await self.backend.generate(
                prompt,
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
            )

        if self.provider == "none":
            return None
        elif self.provider == "mock":
            return self._mock_summary(article)
        elif self.provider == "openai":
            return await self._call_openai(prompt)
        elif self.provider == "anthropic":
            return await self._call_anthropic(prompt)
        elif self.provider == "local":
            return await self._call_local(prompt)
        else:
            logger.warning("Unknown provider %r, using fallback", self.provider)
            return None

    # ------------------------------------------------------------------
    # Provider implementations
    # ------------------------------------------------------------------

    async def _call_openai(self, prompt: str) -> str:
        from openai import AsyncOpenAI

        client = AsyncOpenAI()
        resp = await client.chat.completions.create(
            model=self.settings.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
        )
        return resp.choices[0].message.content or ""

    async def _call_anthropic(self, prompt: str) -> str:
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic()
        resp = await client.messages.create(
            model=self.settings.model or "claude-haiku-4-5",
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return resp.content[0].text if resp.content else ""

    async def _call_local(self, prompt: str) -> str:
        """Call a local Ollama-compatible OpenAI API."""
        from openai import AsyncOpenAI

        client = AsyncOpenAI(base_url=self.settings.local_url, api_key="ollama")
        resp = await client.chat.completions.create(
            model=self.settings.local_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
        )
        return resp.choices[0].message.content or ""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def build_prompt(article: Article, content_chars: int = 1000) -> str:
        text = article.body or (article.description if is_usable_text(article.description) else "")
        excerpt = text[:content_chars] if text else "No content available"
        return (
            "Summarize this news article in exactly 1-2 clear, concise sentences. "
            "Focus on the main facts and key information.\n\n"
            f"Title: {article.title}\n"
            f"Content: {excerpt}\n"
            f"Source: {article.source_name}\n\n"
            "Summary:"
        )

    @staticmethod
    def clean_output(text: Optional[str]) -> Optional[str]:
        """Trim model output; None when nothing usable remains."""
        if not text:
            return None
        cleaned = _LEAD_IN.sub("", text.strip()).strip()
        if not cleaned or cleaned.rstrip(".").lower() in _UNUSABLE_OUTPUTS:
            return None
        if cleaned.lower().endswith("summary not available"):
            return None
        return cleaned

    @staticmethod
    def _mock_summary(article: Article) -> str:
        """Template-based summary for testing (no API calls)."""
        return f"{article.title} - from {article.source_name} ({article.topic})."

    @staticmethod
    def _cache_key(article: Article) -> str:
        raw = f"{article.url}:{article.title}:{article.content[:200]}"
        return hashlib.sha256(raw.encode("utf-8", "surrogatepass")).hexdigest()[:16]


def extract_text(result: Any) -> Optional[str]:
    """Pull generated text out of the shapes model backends return."""
    if result is None:
        return None
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        for key in ("response", "text"):
            value = result.get(key)
            if isinstance(value, str):
                return value
        return None
    value = getattr(result, "text", None)
    return value if isinstance(value, str) else None


def fallback_summary(article: Article) -> str:
    """Rule-based summary attributed to the article's source.

    Priority: the description, then the first sentence of the body, then the title.
    """
    source = article.source_name or "Unknown source"
    description = article.description.strip()
    if is_usable_text(description) and len(description) > 10:
        return f"{source} reports: {description}"

    body = article.body
    if len(body) > 50:
        first_sentence = _SENTENCE_SPLIT.split(body, maxsplit=1)[0].strip()
        if len(first_sentence) > 20:
            return f"{source}: {first_sentence}."

    return f"{source}: {article.title or article.url or 'Untitled'}"
