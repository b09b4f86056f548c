"""Packager: end-to-end assembly of a selection into bundles."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .models import PackFile, PackItem, PackResponse, SourceFile
from .pack_strategy import BalanceResult, PerPackAdvisoryStatus, AdvisoryLevel
from .pack_strategy import balance, per_pack_advisory, resolve_ceiling
from .pruner import ReachabilityOracle, apply_pruning
from ..config.settings import PackConfig
from ..errors import BundlerError
from ..services.content_transforms import apply_transforms
from ..services.model_profiles import ModelProfileRegistry

logger = logging.getLogger(__name__)


class Bundler(Protocol):
    """External step that lays files out into packs."""

    def __call__(self, files: List[PackFile], num_packs: int, output_format: str,
                 model_profile_id: str) -> PackResponse:
        ...


@dataclass
class PackOutcome:
    """Result of one pack attempt. Exactly one of response and error is set."""
    response: Optional[PackResponse] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    strategy: Optional[BalanceResult] = None
    advisory: Optional[PerPackAdvisoryStatus] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def load_contents(files: Sequence[SourceFile],
                  reader: Optional[Callable[[str], str]] = None) -> Dict[str, str]:
    """
    Read raw content for non-directory files.

    Args:
        files: Files to read
        reader: Callable mapping a path to its content; defaults to UTF-8 file reads

    Returns:
        Content keyed by path; files whose read raises map to an empty string
    """
    reader = reader or _read_text
    contents = {}
    for file in files:
        if file.is_dir:
            continue
        try:
            contents[file.path] = reader(file.path)
        except Exception as e:
            logger.warning("Could not read %s, treating it as empty: %s", file.path, e)
            contents[file.path] = ""
    return contents


class Packager:
    """Transforms, balances and bundles a selection."""

    def __init__(self,
                 bundler: Bundler,
                 oracle: Optional[ReachabilityOracle] = None,
                 registry: Optional[ModelProfileRegistry] = None):
        """
        Initialize the packager.

        Args:
            bundler: External bundler producing the packs
            oracle: Reachability oracle for dead-code elimination
            registry: Model profiles; defaults to the built-in profiles
        """
        self.bundler = bundler
        self.oracle = oracle
        self.registry = registry or ModelProfileRegistry()

    def prepare_files(self,
                      selected_files: Sequence[SourceFile],
                      contents: Mapping[str, str],
                      config: PackConfig,
                      token_map: Optional[Mapping[str, int]] = None) -> List[PackFile]:
        """Prune and transform the selection into bundler entries, before balancing."""
        files = [f for f in selected_files if not f.is_dir]
        raw_contents = {f.path: contents.get(f.path) or "" for f in files}

        settings = config.optimization
        if settings.pruning_enabled:
            raw_contents = apply_pruning(files, raw_contents, settings.entry_point, self.oracle)

        pack_files = []
        for file in files:
            content = apply_transforms(raw_contents[file.path], file.normalized_extension, settings)
            token_count = token_map.get(file.path) if token_map is not None else None
            if token_count is None:
                token_count = file.explicit_token_count
            pack_files.append(PackFile(path=file.bundle_path, content=content, token_count=token_count))
        return pack_files

    def pack(self,
             selected_files: Sequence[SourceFile],
             contents: Mapping[str, str],
             config: PackConfig,
             token_map: Optional[Mapping[str, int]] = None) -> PackOutcome:
        """
        Run the full pack pipeline once.

        Args:
            selected_files: Current selection
            contents: Raw content keyed by path; missing files count as empty
            config: Pack configuration
            token_map: Known token counts keyed by path, used as explicit counts

        Returns:
            PackOutcome with the bundler response, or a single error message
        """
        registry = self.registry.with_profiles(config.profiles) if config.profiles else self.registry
        profile = registry.get(config.model_profile)
        pack_files = self.prepare_files(selected_files, contents, config, token_map)

        configured = config.max_tokens_per_file
        if configured is None:
            configured = profile.tokens_per_file
        ceiling = resolve_ceiling(configured, profile.context_window_tokens)
        strategy = balance(pack_files, ceiling)
        warnings = list(strategy.warnings)

        try:
            response = self._bundle(strategy.files, config, profile.id)
        except BundlerError as e:
            logger.error("Packing failed: %s", e)
            return PackOutcome(error=str(e), warnings=warnings, strategy=strategy)

        advisory = per_pack_advisory(response.total_tokens, config.num_packs, ceiling)
        if advisory.level is not AdvisoryLevel.OK:
            warnings.append(advisory.message)

        logger.info(
            "Packed %d files into %d pack(s), %d tokens",
            len(strategy.files), len(response.packs), response.total_tokens
        )
        return PackOutcome(
            response=response,
            warnings=warnings,
            strategy=strategy,
            advisory=advisory
        )

    def _bundle(self, files: List[PackFile], config: PackConfig, profile_id: str) -> PackResponse:
        try:
            return self.bundler(files, config.num_packs, config.output_format, profile_id)
        except Exception as e:
            raise BundlerError(e) from e


def build_pack_file_token_map(packs: Sequence[PackItem],
                              token_map: Optional[Mapping[str, int]] = None) -> Dict[str, int]:
    """
    Attribute tokens to every file of every pack.

    Files with a known count keep it; the rest of each pack's estimate is
    shared evenly among its files without a known count.
    """
    file_tokens: Dict[str, int] = {}

    for pack in packs:
        known_total = 0
        unknown_paths = []
        for path in pack.file_paths:
            known = token_map.get(path) if token_map is not None else None
            if known is None:
                unknown_paths.append(path)
            else:
                file_tokens[path] = known
                known_total += known

        if unknown_paths:
            remaining = max(pack.estimated_tokens - known_total, 0)
            per_unknown = int(remaining / len(unknown_paths) + 0.5)
            for path in unknown_paths:
                file_tokens[path] = per_unknown

    return file_tokens
