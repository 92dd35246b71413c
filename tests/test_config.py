"""Tests for environment-driven configuration."""

import pytest

from critterworld.config import Config
from critterworld.store import WorldStateStore


def test_validate_rejects_unknown_provider(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "mystery")

    with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
        Config.validate()


def test_validate_requires_cloud_key(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "anthropic")
    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", None)

    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        Config.validate()


def test_ollama_needs_no_key(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", None)
    monkeypatch.setattr(Config, "FUTURE_SCHEMA_POLICY", "raise")

    Config.validate()
    assert Config.api_key_for("ollama") is None


def test_bad_schema_policy(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "FUTURE_SCHEMA_POLICY", "ignore")

    with pytest.raises(ValueError, match="FUTURE_SCHEMA_POLICY"):
        Config.validate()


def test_store_limits_come_from_config(monkeypatch):
    monkeypatch.setattr(Config, "MAX_CRITTERS", 3)
    monkeypatch.setattr(Config, "MAX_MEMORIES", 7)

    store = WorldStateStore()

    assert store.population_cap == 3
    assert store.memories.max_per_entity == 7


def test_display_lists_provider(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "LLM_MODEL", None)

    text = Config.display()

    assert "LLM Provider: ollama" in text
    assert "(provider default)" in text
