"""Typed settings for the briefing pipeline, loaded from config.yaml plus the environment."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_DB_PATH = "data/briefing.db"

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


@dataclass
class SourceSettings:
    """NewsAPI access. Without ``api_key`` a run aborts before loading subscribers."""

    api_key: Optional[str] = None
    base_url: str = "https://newsapi.org/v2"
    country: str = "us"
    page_size: int = 5
    max_articles: int = 10
    timeout_seconds: int = 30
    retry_attempts: int = 3
    dedupe_across_topics: bool = True
    user_agent: str = "daily-briefing/0.1 (+https://newsapi.org)"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class LLMSettings:
    """Summarization backend. Provider ``none`` means fallback summaries only."""

    provider: str = "mock"
    model: str = "gpt-4o-mini"
    max_tokens: int = 150
    temperature: float = 0.3
    timeout_seconds: int = 30
    content_chars: int = 1000
    cache_summaries: bool = True
    local_url: str = "http://localhost:11434/v1"
    local_model: str = "llama3.2"


@dataclass
class DeliverySettings:
    """Resend email API. Without ``api_key`` every send fails fast."""

    api_key: Optional[str] = None
    base_url: str = "https://api.resend.com"
    sender: str = "Daily Briefing <briefing@example.com>"
    subject_template: str = "Your Daily News Briefing - {date}"
    timeout_seconds: int = 15
    retry_attempts: int = 2

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class Settings:
    db_path: str = DEFAULT_DB_PATH
    max_articles_per_subscriber: int = 10
    max_concurrent_subscribers: int = 1
    source: SourceSettings = field(default_factory=SourceSettings)
    llm: LLMSettings = field(default_factory=LLMSettings)
    delivery: DeliverySettings = field(default_factory=DeliverySettings)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> Settings:
        """Build settings from a parsed config mapping. Unknown keys are ignored."""
        config = _resolve_env(config or {})
        pipeline = config.get("pipeline", {}) or {}
        source_cfg = dict(config.get("source", {}) or {})
        delivery_cfg = dict(config.get("delivery", {}) or {})

        source_cfg.setdefault("api_key", os.environ.get("NEWS_API_KEY") or None)
        delivery_cfg.setdefault("api_key", os.environ.get("RESEND_API_KEY") or None)

        return cls(
            db_path=config.get("db_path", DEFAULT_DB_PATH),
            max_articles_per_subscriber=int(
                pipeline.get("max_articles_per_subscriber", 10)
            ),
            max_concurrent_subscribers=max(
                1, int(pipeline.get("max_concurrent_subscribers", 1))
            ),
            source=_build(SourceSettings, source_cfg),
            llm=_build(LLMSettings, config.get("llm", {}) or {}),
            delivery=_build(DeliverySettings, delivery_cfg),
        )


def load_settings(path: str = DEFAULT_CONFIG_PATH) -> Settings:
    """Load settings from a YAML file. A missing file yields defaults plus environment keys."""
    config_path = Path(path)
    if not config_path.exists():
        logger.info("Config %s not found; using defaults and environment", path)
        return Settings.from_dict({})
    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Config {path} must be a mapping, got {type(config).__name__}")
    return Settings.from_dict(config)


def mask_secret(value: Optional[str]) -> str:
    """Render a credential for logs without revealing it."""
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


def _build(cls: type, values: Dict[str, Any]) -> Any:
    known = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
    ignored = set(values) - set(known)
    if ignored:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(sorted(ignored)))
    # Empty strings from unresolved ${VARS} mean "unset"
    for key in ("api_key",):
        if key in known and not known[key]:
            known[key] = None
    return cls(**known)


def _resolve_env(value: Any) -> Any:
    """Recursively substitute ${ENV_VAR} in string values."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value).strip()
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    return value
