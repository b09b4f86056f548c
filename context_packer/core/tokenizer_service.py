"""Tokenizer service: token counting for transformed file contents."""

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Union

import tiktoken

from .models import TokenBatch, TokenBatchResult, TokenCountResult

logger = logging.getLogger(__name__)

APPROX_CHARS_PER_TOKEN = 4


class TokenizerStrategy(Enum):
    """How a batch is counted."""
    OPENAI = "openai"  # exact o200k_base count
    APPROX = "approx"  # max of cl100k_base and o200k_base

    @classmethod
    def coerce(cls, value: Union[str, 'TokenizerStrategy']) -> 'TokenizerStrategy':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown tokenizer strategy: {value}") from None


STRATEGY_ENCODINGS: Dict[TokenizerStrategy, List[str]] = {
    TokenizerStrategy.OPENAI: ["o200k_base"],
    TokenizerStrategy.APPROX: ["cl100k_base", "o200k_base"],
}


@lru_cache(maxsize=None)
def get_encoding(encoding_name: str) -> tiktoken.Encoding:
    """Load a tiktoken encoding once per process."""
    return tiktoken.get_encoding(encoding_name)


def char_estimate(content: str) -> int:
    """Character-based fallback: one token per four characters, rounded up."""
    return math.ceil(len(content) / APPROX_CHARS_PER_TOKEN)


class BaseTokenizer(ABC):
    """Abstract base class for tokenizers."""

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """Count tokens in the given text."""
        pass

    def estimate_tokens(self, text: str) -> int:
        """Estimate token count from character length."""
        return char_estimate(text)


class CharEstimateTokenizer(BaseTokenizer):
    """Tokenizer that only uses the character-length estimate."""

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return char_estimate(text)


class TiktokenTokenizer(BaseTokenizer):
    """Tokenizer backed by one or more tiktoken encodings.

    With several encodings the largest count wins, which keeps the estimate
    on the safe side for models whose tokenizer is not public.
    """

    def __init__(self, encoding_names: List[str]):
        self.encoding_names = list(encoding_names)

    def count_tokens(self, text: str) -> int:
        """Count tokens, falling back to the character estimate on failure."""
        if not text:
            return 0
        try:
            return max(
                len(get_encoding(name).encode(text, disallowed_special=()))
                for name in self.encoding_names
            )
        except Exception as e:
            logger.debug("Token encoding failed, using character estimate: %s", e)
            return char_estimate(text)


def count_tokens(content: str, strategy: Union[str, TokenizerStrategy]) -> int:
    """
    Count tokens in content for the given strategy.

    Args:
        content: Transformed file content
        strategy: Tokenizer strategy or its string tag

    Returns:
        Token count; the character estimate if encoding fails
    """
    strategy = TokenizerStrategy.coerce(strategy)
    return TiktokenTokenizer(STRATEGY_ENCODINGS[strategy]).count_tokens(content)


def count_batch(batch: TokenBatch) -> TokenBatchResult:
    """Count every file of a batch. Runs on the background executor."""
    tokenizer = TiktokenTokenizer(STRATEGY_ENCODINGS[TokenizerStrategy.coerce(batch.strategy)])
    results = [
        TokenCountResult(path=path, tokens=tokenizer.count_tokens(content))
        for path, content in batch.files.items()
    ]
    return TokenBatchResult(request_id=batch.request_id, results=results)


class TokenizerService:
    """Tokenizer service bound to one counting strategy."""

    def __init__(self, strategy: Union[str, TokenizerStrategy] = TokenizerStrategy.APPROX):
        """
        Initialize tokenizer service.

        Args:
            strategy: Tokenizer strategy ('openai', 'approx') or 'estimate'
                for the character estimate only
        """
        if strategy == "estimate":
            self.strategy = None
            self.tokenizer: BaseTokenizer = CharEstimateTokenizer()
        else:
            self.strategy = TokenizerStrategy.coerce(strategy)
            self.tokenizer = TiktokenTokenizer(STRATEGY_ENCODINGS[self.strategy])

    def count_tokens(self, text: Union[str, List[str], Dict[str, str]]) -> int:
        """
        Count tokens in text.

        Args:
            text: String, list of strings, or dict of path to content

        Returns:
            Total token count
        """
        if isinstance(text, str):
            return self.tokenizer.count_tokens(text)
        elif isinstance(text, list):
            return sum(self.tokenizer.count_tokens(item) for item in text)
        elif isinstance(text, dict):
            return sum(self.tokenizer.count_tokens(value) for value in text.values())
        else:
            return self.tokenizer.count_tokens(str(text))

    def estimate_tokens(self, text: str) -> int:
        """Estimate tokens from character length (no encoding)."""
        return self.tokenizer.estimate_tokens(text)

    def get_tokenizer_info(self) -> Dict[str, Union[str, bool, List[str]]]:
        """Get information about the current tokenizer."""
        info: Dict[str, Union[str, bool, List[str]]] = {
            "backend": type(self.tokenizer).__name__,
            "strategy": self.strategy.value if self.strategy else "estimate",
            "approximate": self.strategy is not TokenizerStrategy.OPENAI,
        }
        if isinstance(self.tokenizer, TiktokenTokenizer):
            info["encodings"] = self.tokenizer.encoding_names
        return info
