"""Tests for configuration loading."""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from termctx.config import AiSettings, AutoRoutingConfig, Config


class TestConfigFiles:

    def test_yaml_roundtrip(self, tmp_path):
        config = Config()
        config.ai.model = "gpt-4.1"
        config.cache.max_size = 5
        config.ai.auto_routing = AutoRoutingConfig(simple_model="gpt-4o-mini")

        path = tmp_path / "termctx.yaml"
        config.save(str(path))
        loaded = Config.load(str(path))

        assert loaded.ai.model == "gpt-4.1"
        assert loaded.cache.max_size == 5
        assert isinstance(loaded.ai.auto_routing, AutoRoutingConfig)
        assert loaded.ai.auto_routing.simple_model == "gpt-4o-mini"

    def test_json_roundtrip(self, tmp_path):
        config = Config()
        config.history.window_size = 6
        path = tmp_path / "nested" / "termctx.json"
        config.save(str(path))

        assert json.loads(path.read_text())["history"]["window_size"] == 6
        assert Config.load(str(path)).history.window_size == 6

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "termctx.yaml"
        path.write_text(
            "ai:\n  provider: openai\n  model: m\n  legacy_option: 1\n"
            "streaming:\n  max_buffer_size: 200\n"
            "plugins: [a, b]\n"
        )
        config = Config.load(str(path))
        assert config.ai.provider == "openai"
        assert config.streaming.max_buffer_size == 200
        assert config.streaming.flush_interval_ms == 50

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.load(str(path)).cache.max_size == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load(str(tmp_path / "nope.yaml"))

    def test_dict_sections_converted(self):
        config = Config(ai={"provider": "openai", "model": "m", "api_key": "k"}, cache={"max_size": 3})
        assert isinstance(config.ai, AiSettings)
        assert config.cache.max_size == 3


class TestAiSettings:

    def test_missing_fields(self):
        settings = AiSettings(provider="openai", model="  ", api_key="")
        assert settings.missing_fields() == ["model", "api_key"]
        assert not settings.is_complete()

    def test_auto_routing_dict(self):
        settings = AiSettings(auto_routing={"complex_model": "o3", "unknown": True})
        assert settings.auto_routing.complex_model == "o3"
        assert settings.routing_enabled

    def test_routing_flags(self):
        assert AiSettings().routing_enabled is False
        assert AiSettings().prompt_enhancement_enabled is True
        disabled = AiSettings(auto_routing=AutoRoutingConfig(enabled=False, enable_prompt_enhancement=False))
        assert disabled.routing_enabled is False
        assert disabled.prompt_enhancement_enabled is False

    def test_mode_budget(self):
        settings = AiSettings(mode="chat", context_token_budget_agent=0)
        assert settings.mode_budget() == 12000
        assert settings.mode_budget("agent") == 6000

    def test_tier_lookup(self):
        routing = AutoRoutingConfig(simple_model=" ", moderate_budget=0, complex_budget=9000)
        assert routing.model_for("simple") is None
        assert routing.budget_for("moderate") is None
        assert routing.budget_for("complex") == 9000
