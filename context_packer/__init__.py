"""
ContextPacker: token budgeting and content transforms for packing source code into LLM context.

This package splits oversized files against an advisory per-file budget,
prunes unreachable declarations, and keeps token estimates in sync with a
changing file selection.
"""

__version__ = "0.1.0"
__author__ = "ContextPacker Team"

from .core.models import SourceFile, PackFile, ReachabilityResult, PackItem, PackResponse
from .core.tokenizer_service import TokenizerService, TokenizerStrategy, count_tokens
from .core.pack_strategy import balance, per_pack_advisory, resolve_ceiling, split_by_budget
from .core.pruner import LanguageFamily, apply_pruning, strip_unreachable
from .core.token_pipeline import TokenEstimationPipeline
from .core.packager import Packager, PackOutcome
from .services.model_profiles import ModelProfile, ModelProfileRegistry
from .config.settings import OptimizationSettings, PackConfig

__all__ = [
    "SourceFile",
    "PackFile",
    "ReachabilityResult",
    "PackItem",
    "PackResponse",
    "TokenizerService",
    "TokenizerStrategy",
    "count_tokens",
    "balance",
    "per_pack_advisory",
    "resolve_ceiling",
    "split_by_budget",
    "LanguageFamily",
    "apply_pruning",
    "strip_unreachable",
    "TokenEstimationPipeline",
    "Packager",
    "PackOutcome",
    "ModelProfile",
    "ModelProfileRegistry",
    "OptimizationSettings",
    "PackConfig",
]
