"""Configuration settings for context packing."""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field, fields, asdict
import json
from pathlib import Path

import yaml

from ..errors import ConfigError

OUTPUT_FORMATS = ('plaintext', 'markdown', 'xml')
DEFAULT_DEBOUNCE_MS = 150


@dataclass(frozen=True)
class OptimizationSettings:
    """Transform flags. Compared by equality to detect a settings change."""
    strip_comments: bool = False
    reduce_whitespace: bool = False
    minify_markdown: bool = False
    strip_headings: bool = False
    strip_blockquotes: bool = False
    dead_code_elimination: bool = False
    entry_point: Optional[str] = None

    @property
    def pruning_enabled(self) -> bool:
        return self.dead_code_elimination and bool(self.entry_point)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OptimizationSettings':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown optimization settings: {', '.join(sorted(unknown))}")
        return cls(**data)


@dataclass
class PackConfig:
    """Main configuration for packing a selection."""
    model_profile: str = 'claude-opus-4'
    num_packs: int = 1
    output_format: str = 'plaintext'
    max_tokens_per_file: Optional[float] = None
    optimization: OptimizationSettings = field(default_factory=OptimizationSettings)
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    profiles: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.debounce_ms) / 1000.0

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PackConfig':
        """Create configuration from dictionary."""
        optimization = OptimizationSettings.from_dict(config_dict.get('optimization') or {})

        return cls(
            model_profile=config_dict.get('model_profile', 'claude-opus-4'),
            num_packs=config_dict.get('num_packs', 1),
            output_format=config_dict.get('output_format', 'plaintext'),
            max_tokens_per_file=config_dict.get('max_tokens_per_file'),
            optimization=optimization,
            debounce_ms=config_dict.get('debounce_ms', DEFAULT_DEBOUNCE_MS),
            profiles=list(config_dict.get('profiles') or [])
        )

    @classmethod
    def from_yaml(cls, file_path: str) -> 'PackConfig':
        """Load configuration from YAML file."""
        with open(file_path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f)
        return cls._from_document(config_dict, file_path)

    @classmethod
    def from_json(cls, file_path: str) -> 'PackConfig':
        """Load configuration from JSON file."""
        with open(file_path, 'r', encoding='utf-8') as f:
            config_dict = json.load(f)
        return cls._from_document(config_dict, file_path)

    @classmethod
    def _from_document(cls, config_dict: Any, source: str) -> 'PackConfig':
        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigError(source, "top-level document must be a mapping")
        try:
            return cls.from_dict(config_dict)
        except (TypeError, ValueError) as e:
            raise ConfigError(source, str(e)) from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'model_profile': self.model_profile,
            'num_packs': self.num_packs,
            'output_format': self.output_format,
            'max_tokens_per_file': self.max_tokens_per_file,
            'optimization': asdict(self.optimization),
            'debounce_ms': self.debounce_ms,
            'profiles': [dict(p) for p in self.profiles]
        }

    def save_yaml(self, file_path: str):
        """Save configuration to YAML file."""
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)

    def save_json(self, file_path: str):
        """Save configuration to JSON file."""
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of issues.

        Returns:
            List of validation issues (empty if valid)
        """
        issues = []

        if self.num_packs < 1:
            issues.append("num_packs must be at least 1")

        if self.output_format not in OUTPUT_FORMATS:
            issues.append(f"Invalid output_format '{self.output_format}'")

        if self.debounce_ms < 0:
            issues.append("debounce_ms must be non-negative")

        if self.optimization.dead_code_elimination and not self.optimization.entry_point:
            issues.append("dead_code_elimination requires an entry_point")

        seen = set()
        for profile in self.profiles:
            profile_id = profile.get('id')
            if not profile_id:
                issues.append("Custom profile without an id")
                continue
            if profile_id in seen:
                issues.append(f"Duplicate custom profile id '{profile_id}'")
            seen.add(profile_id)
            if profile.get('context_window_tokens', 0) <= 0:
                issues.append(f"Profile '{profile_id}': context_window_tokens must be positive")

        return issues


def get_default_config() -> PackConfig:
    """Get the default packing configuration."""
    return PackConfig.from_dict({
        'model_profile': 'claude-opus-4',
        'num_packs': 1,
        'output_format': 'plaintext',
        'optimization': {
            'strip_comments': False,
            'reduce_whitespace': False,
            'minify_markdown': False
        },
        'debounce_ms': DEFAULT_DEBOUNCE_MS
    })
