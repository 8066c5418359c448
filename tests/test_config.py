"""Tests for settings loading."""

from __future__ import annotations

import logging

import pytest
import yaml

from briefing.config import Settings, load_settings, mask_secret


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("NEWS_API_KEY", raising=False)
    monkeypatch.delenv("RESEND_API_KEY", raising=False)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_dict({})
        assert settings.max_articles_per_subscriber == 10
        assert settings.max_concurrent_subscribers == 1
        assert settings.source.page_size == 5
        assert settings.source.configured is False
        assert settings.delivery.configured is False
        assert settings.llm.provider == "mock"

    def test_from_dict(self):
        settings = Settings.from_dict({
            "db_path": "/tmp/briefing.db",
            "pipeline": {"max_articles_per_subscriber": 6, "max_concurrent_subscribers": 4},
            "source": {"api_key": "news-key", "country": "gb", "page_size": 3},
            "llm": {"provider": "openai", "model": "gpt-4o", "max_tokens": 200},
            "delivery": {"api_key": "re_key", "sender": "News <news@example.com>"},
        })
        assert settings.db_path == "/tmp/briefing.db"
        assert settings.max_articles_per_subscriber == 6
        assert settings.max_concurrent_subscribers == 4
        assert settings.source.country == "gb"
        assert settings.source.page_size == 3
        assert settings.llm.provider == "openai"
        assert settings.llm.max_tokens == 200
        assert settings.delivery.sender == "News <news@example.com>"
        assert settings.delivery.configured

    def test_concurrency_floor(self):
        settings = Settings.from_dict({"pipeline": {"max_concurrent_subscribers": 0}})
        assert settings.max_concurrent_subscribers == 1

    def test_env_references_resolved(self, monkeypatch):
        monkeypatch.setenv("MY_NEWS_KEY", "resolved-news-key")
        settings = Settings.from_dict({"source": {"api_key": "${MY_NEWS_KEY}"}})
        assert settings.source.api_key == "resolved-news-key"

    def test_unset_env_reference_means_unconfigured(self):
        settings = Settings.from_dict({"delivery": {"api_key": "${NOT_SET_ANYWHERE_123}"}})
        assert settings.delivery.api_key is None
        assert not settings.delivery.configured

    def test_env_fallback_keys(self, monkeypatch):
        monkeypatch.setenv("NEWS_API_KEY", "env-news")
        monkeypatch.setenv("RESEND_API_KEY", "env-resend")
        settings = Settings.from_dict({})
        assert settings.source.api_key == "env-news"
        assert settings.delivery.api_key == "env-resend"

    def test_unknown_keys_ignored(self, caplog):
        caplog.set_level(logging.WARNING, logger="briefing.config")
        settings = Settings.from_dict({"source": {"api_key": "k", "colour": "blue"}})
        assert settings.source.api_key == "k"
        assert "colour" in caplog.text


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "nope.yaml"))
        assert settings.db_path == "data/briefing.db"

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"llm": {"provider": "none"}, "source": {"page_size": 4}}))
        settings = load_settings(str(path))
        assert settings.llm.provider == "none"
        assert settings.source.page_size == 4

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_settings(str(path)).max_articles_per_subscriber == 10

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_settings(str(path))


def test_mask_secret():
    assert mask_secret(None) == "<unset>"
    assert mask_secret("short") == "****"
    assert mask_secret("re_1234567890abcd") == "re_1...abcd"
