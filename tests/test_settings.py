"""Tests for configuration and model profiles."""

import json

import pytest

from context_packer.config.settings import OptimizationSettings, PackConfig, get_default_config
from context_packer.core.tokenizer_service import TokenizerStrategy
from context_packer.errors import ConfigError
from context_packer.services.model_profiles import (
    DEFAULT_PROFILES,
    ModelProfile,
    ModelProfileRegistry,
    is_approximate_tokenizer,
    tokenizer_strategy,
)


class TestPackConfig:
    """Test cases for PackConfig."""

    def test_defaults(self):
        """Test the default configuration."""
        config = get_default_config()
        assert config.model_profile == "claude-opus-4"
        assert config.num_packs == 1
        assert config.debounce_ms == 150
        assert config.debounce_seconds == 0.15
        assert config.optimization == OptimizationSettings()
        assert config.validate() == []

    def test_from_dict(self):
        """Test building a configuration from a dictionary."""
        config = PackConfig.from_dict({
            "num_packs": 3,
            "output_format": "xml",
            "max_tokens_per_file": 5000,
            "optimization": {"strip_comments": True, "entry_point": "src/main.ts"},
        })
        assert config.num_packs == 3
        assert config.output_format == "xml"
        assert config.max_tokens_per_file == 5000
        assert config.optimization.strip_comments
        assert not config.optimization.pruning_enabled

    def test_unknown_optimization_key(self):
        """Test that unknown optimization settings are rejected."""
        with pytest.raises(ValueError, match="strip_everything"):
            PackConfig.from_dict({"optimization": {"strip_everything": True}})

    def test_yaml_round_trip(self, tmp_path):
        """Test saving and loading YAML."""
        config = PackConfig(
            num_packs=2,
            optimization=OptimizationSettings(dead_code_elimination=True, entry_point="main.py"),
            profiles=[{"id": "local", "context_window_tokens": 32_000}]
        )
        path = tmp_path / "nested" / "config.yaml"
        config.save_yaml(str(path))

        loaded = PackConfig.from_yaml(str(path))
        assert loaded == config
        assert loaded.optimization.pruning_enabled

    def test_json_round_trip(self, tmp_path):
        """Test saving and loading JSON."""
        config = PackConfig(output_format="markdown", debounce_ms=0)
        path = tmp_path / "config.json"
        config.save_json(str(path))

        assert json.loads(path.read_text(encoding="utf-8"))["output_format"] == "markdown"
        assert PackConfig.from_json(str(path)) == config

    def test_empty_yaml(self, tmp_path):
        """Test that an empty document yields the defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert PackConfig.from_yaml(str(path)) == PackConfig()

    def test_invalid_documents(self, tmp_path):
        """Test ConfigError for malformed documents."""
        not_mapping = tmp_path / "list.yaml"
        not_mapping.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="must be a mapping"):
            PackConfig.from_yaml(str(not_mapping))

        bad_key = tmp_path / "bad.yaml"
        bad_key.write_text("optimization:\n  shrink: true\n", encoding="utf-8")
        with pytest.raises(ConfigError) as excinfo:
            PackConfig.from_yaml(str(bad_key))
        assert excinfo.value.source == str(bad_key)
        assert "shrink" in str(excinfo.value)

    def test_validate(self):
        """Test validation issues."""
        config = PackConfig(
            num_packs=0,
            output_format="html",
            debounce_ms=-1,
            optimization=OptimizationSettings(dead_code_elimination=True),
            profiles=[
                {"id": "dup", "context_window_tokens": 1000},
                {"id": "dup", "context_window_tokens": 0},
                {"name": "anonymous"},
            ]
        )
        issues = config.validate()
        assert "num_packs must be at least 1" in issues
        assert "Invalid output_format 'html'" in issues
        assert "debounce_ms must be non-negative" in issues
        assert "dead_code_elimination requires an entry_point" in issues
        assert "Duplicate custom profile id 'dup'" in issues
        assert "Profile 'dup': context_window_tokens must be positive" in issues
        assert "Custom profile without an id" in issues


class TestModelProfiles:
    """Test cases for model profiles."""

    def test_default_ids_unique(self):
        """Test that built-in profile ids are unique."""
        ids = [p.id for p in DEFAULT_PROFILES]
        assert len(ids) == len(set(ids))

    def test_tokenizer_strategy(self):
        """Test mapping of profile tokenizers to counting strategies."""
        assert tokenizer_strategy("o200k") is TokenizerStrategy.OPENAI
        assert tokenizer_strategy("cl100k") is TokenizerStrategy.APPROX
        assert tokenizer_strategy("claude") is TokenizerStrategy.APPROX
        assert not is_approximate_tokenizer("o200k")
        assert not is_approximate_tokenizer("cl100k")
        assert is_approximate_tokenizer("claude")
        assert is_approximate_tokenizer("gemini")

    def test_registry_lookup(self):
        """Test lookup with fallback to the first profile."""
        registry = ModelProfileRegistry()
        assert registry.get("chatgpt-4o").context_window_tokens == 128_000
        assert registry.get("chatgpt-4o").strategy is TokenizerStrategy.OPENAI
        assert registry.get("no-such-model").id == "claude-opus-4"
        assert registry.get("claude-opus-4").is_approximate
        assert registry.get("gemini-2-5-pro").tokenizer == "gemini"

    def test_with_profiles_keeps_base(self):
        """Test layering config profiles on an existing registry."""
        base = ModelProfileRegistry([ModelProfile("base", "Base", 50_000)])
        layered = base.with_profiles([{"id": "local", "context_window_tokens": 32_000}])
        assert [p.id for p in layered.list_profiles()] == ["base", "local"]
        assert [p.id for p in base.list_profiles()] == ["base"]

    def test_empty_registry(self):
        """Test that an empty registry raises LookupError."""
        with pytest.raises(LookupError):
            ModelProfileRegistry([]).get("claude-opus-4")

    def test_custom_profiles(self):
        """Test adding and replacing profiles from configuration."""
        registry = ModelProfileRegistry.from_dicts([
            {"id": "local", "context_window_tokens": 32_000, "tokens_per_file": 3000},
            {"id": "chatgpt-4o", "name": "Override", "context_window_tokens": 64_000, "tokenizer": "o200k"},
        ])
        assert registry.get("local").name == "local"
        assert registry.get("local").tokenizer == "cl100k"
        assert not registry.get("local").is_approximate
        assert registry.get("local").tokens_per_file == 3000
        assert registry.get("chatgpt-4o").context_window_tokens == 64_000
        assert len(registry.list_profiles()) == len(DEFAULT_PROFILES) + 1

        only_custom = ModelProfileRegistry.from_dicts([{"id": "local", "context_window_tokens": 1}],
                                                      include_defaults=False)
        assert [p.id for p in only_custom.list_profiles()] == ["local"]

    def test_unknown_tokenizer(self):
        """Test that unknown tokenizer names are rejected."""
        with pytest.raises(ValueError, match="Unknown tokenizer"):
            ModelProfile.from_dict({"id": "x", "context_window_tokens": 1, "tokenizer": "bpe"})
