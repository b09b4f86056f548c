"""Registry of target model profiles."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..core.tokenizer_service import TokenizerStrategy

TOKENIZERS = ('cl100k', 'o200k', 'gemini', 'claude')
APPROXIMATE_TOKENIZERS = ('claude', 'gemini')


@dataclass(frozen=True)
class ModelProfile:
    """Context window and tokenizer facts for one target model."""
    id: str
    name: str
    context_window_tokens: int
    max_attachments: int = 20
    tokenizer: str = 'cl100k'
    tokens_per_file: Optional[int] = None

    @property
    def strategy(self) -> TokenizerStrategy:
        return tokenizer_strategy(self.tokenizer)

    @property
    def is_approximate(self) -> bool:
        return is_approximate_tokenizer(self.tokenizer)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelProfile':
        tokenizer = data.get('tokenizer', 'cl100k')
        if tokenizer not in TOKENIZERS:
            raise ValueError(f"Unknown tokenizer '{tokenizer}' for profile '{data.get('id')}'")
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            context_window_tokens=int(data['context_window_tokens']),
            max_attachments=int(data.get('max_attachments', 20)),
            tokenizer=tokenizer,
            tokens_per_file=data.get('tokens_per_file')
        )


def tokenizer_strategy(tokenizer: str) -> TokenizerStrategy:
    """Exact o200k counting for o200k profiles, max of cl100k and o200k otherwise."""
    if tokenizer == 'o200k':
        return TokenizerStrategy.OPENAI
    return TokenizerStrategy.APPROX


def is_approximate_tokenizer(tokenizer: str) -> bool:
    """Claude and Gemini counts are estimates from OpenAI encodings."""
    return tokenizer in APPROXIMATE_TOKENIZERS


DEFAULT_PROFILES = [
    ModelProfile('claude-opus-4', 'Anthropic Claude (Opus 4)', 200_000, 20, 'claude'),
    ModelProfile('claude-sonnet-4', 'Anthropic Claude (Sonnet 4)', 200_000, 20, 'claude'),
    ModelProfile('gemini-2-5-pro', 'Google Gemini 2.5 Pro', 1_048_576, 20, 'gemini'),
    ModelProfile('gemini-2-0-flash', 'Google Gemini 2.0 Flash', 1_048_576, 20, 'gemini'),
    ModelProfile('chatgpt-4o', 'OpenAI ChatGPT-4o', 128_000, 20, 'o200k'),
    ModelProfile('chatgpt-o3', 'OpenAI o3', 200_000, 20, 'o200k'),
    ModelProfile('chatgpt-o4-mini', 'OpenAI o4-mini', 200_000, 20, 'o200k'),
]


class ModelProfileRegistry:
    """Looks up model profiles by id."""

    def __init__(self, profiles: Optional[Iterable[ModelProfile]] = None):
        self.profiles: Dict[str, ModelProfile] = {}
        for profile in (DEFAULT_PROFILES if profiles is None else profiles):
            self.register(profile)

    @classmethod
    def from_dicts(cls, profile_dicts: Iterable[Dict[str, Any]],
                   include_defaults: bool = True) -> 'ModelProfileRegistry':
        """Build a registry from config dictionaries, optionally on top of the defaults."""
        registry = cls() if include_defaults else cls([])
        for data in profile_dicts:
            registry.register(ModelProfile.from_dict(data))
        return registry

    def with_profiles(self, profile_dicts: Iterable[Dict[str, Any]]) -> 'ModelProfileRegistry':
        """Copy of this registry with config profiles added or replacing existing ids."""
        registry = ModelProfileRegistry(self.list_profiles())
        for data in profile_dicts:
            registry.register(ModelProfile.from_dict(data))
        return registry

    def register(self, profile: ModelProfile):
        """Add or replace a profile."""
        self.profiles[profile.id] = profile

    def get(self, profile_id: str) -> ModelProfile:
        """Get a profile, falling back to the first registered one for unknown ids."""
        if not self.profiles:
            raise LookupError("No model profiles registered")
        return self.profiles.get(profile_id) or next(iter(self.profiles.values()))

    def list_profiles(self) -> List[ModelProfile]:
        return list(self.profiles.values())
