"""Token estimation pipeline.

Keeps a per-file token map in step with the current selection and transform
settings. Only files whose transformed content changed are recounted; changed
files are debounced into one batch and counted on a background executor.
Every batch carries a monotonically increasing request id, and a result whose
id is older than the latest dispatched batch is dropped instead of merged.
"""

import functools
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from .models import SourceFile, TokenBatch, TokenBatchResult, TokenCountResult
from .pruner import ReachabilityOracle, apply_pruning
from .tokenizer_service import TokenizerStrategy, char_estimate, count_batch
from ..config.settings import OptimizationSettings, PackConfig
from ..services.content_transforms import apply_transforms

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.15


class PipelineState(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    DISPATCHED = "dispatched"


@dataclass
class PipelineStats:
    """Counters describing what the pipeline has done so far."""
    reachability_recomputes: int = 0
    reachability_cache_hits: int = 0
    batches_dispatched: int = 0
    files_dispatched: int = 0
    results_applied: int = 0
    results_dropped: int = 0


@dataclass
class _ReachabilityCacheEntry:
    entry_point: str
    selection_key: Tuple[Tuple[str, str], ...]
    raw_contents: Dict[str, str]
    result: Dict[str, str]

    def matches(self, entry_point: str, selection_key: Tuple[Tuple[str, str], ...],
                raw_contents: Mapping[str, str]) -> bool:
        return (self.entry_point == entry_point
                and self.selection_key == selection_key
                and self.raw_contents == raw_contents)


class TokenizerChannel:
    """Sends token batches to an executor and hands results back by callback."""

    def __init__(self, executor: Optional[Executor] = None):
        """
        Initialize the channel.

        Args:
            executor: Executor running the counting task. Defaults to a
                single-worker thread pool owned by the channel.
        """
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="tokenizer")

    def submit(self, batch: TokenBatch,
               on_result: Callable[[TokenBatch, Future], None]) -> Future:
        future = self._executor.submit(count_batch, batch)
        future.add_done_callback(functools.partial(on_result, batch))
        return future

    def shutdown(self, wait: bool = True):
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


class TokenEstimationPipeline:
    """Debounced, cached, concurrent token counting for a file selection."""

    def __init__(self,
                 oracle: Optional[ReachabilityOracle] = None,
                 executor: Optional[Executor] = None,
                 debounce_seconds: float = DEBOUNCE_SECONDS):
        """
        Initialize the pipeline.

        Args:
            oracle: Reachability oracle used when dead-code elimination is on
            executor: Executor for the counting task (see TokenizerChannel)
            debounce_seconds: Quiescence window before a batch is dispatched;
                0 dispatches on every recompute
        """
        self.oracle = oracle
        self.debounce_seconds = debounce_seconds
        self.stats = PipelineStats()

        self._channel = TokenizerChannel(executor)
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)

        self._fingerprints: Dict[str, str] = {}
        self._pending: Dict[str, str] = {}
        self._outstanding: Dict[int, Dict[str, str]] = {}
        self._token_map: Dict[str, int] = {}
        self._settings_key: Optional[Tuple[OptimizationSettings, TokenizerStrategy]] = None
        self._strategy = TokenizerStrategy.APPROX
        self._request_counter = 0
        self._latest_request_id = 0
        self._reachability_cache: Optional[_ReachabilityCacheEntry] = None
        self._timer: Optional[threading.Timer] = None
        self._timer_generation = 0

    @classmethod
    def from_config(cls, config: PackConfig,
                    oracle: Optional[ReachabilityOracle] = None,
                    executor: Optional[Executor] = None) -> 'TokenEstimationPipeline':
        """Build a pipeline using the debounce window of a pack configuration."""
        return cls(oracle=oracle, executor=executor, debounce_seconds=config.debounce_seconds)

    def __enter__(self) -> 'TokenEstimationPipeline':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def token_map(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._token_map)

    @property
    def latest_request_id(self) -> int:
        with self._lock:
            return self._latest_request_id

    @property
    def state(self) -> PipelineState:
        with self._lock:
            if self._pending:
                return PipelineState.DEBOUNCING
            if self._outstanding:
                return PipelineState.DISPATCHED
            return PipelineState.IDLE

    @property
    def is_calculating(self) -> bool:
        return self.state is not PipelineState.IDLE

    def total_tokens(self, selected_files: Sequence[SourceFile]) -> int:
        """Sum of known counts for selected non-directory files."""
        with self._lock:
            return sum(self._token_map.get(f.path, 0) for f in selected_files if not f.is_dir)

    def recompute(self,
                  selected_files: Sequence[SourceFile],
                  contents: Mapping[str, str],
                  settings: OptimizationSettings,
                  strategy: Union[str, TokenizerStrategy]) -> int:
        """
        Bring the token map in line with the selection and settings.

        Files whose transformed content is unchanged since it was last
        counted are skipped. Changed files join the pending batch and the
        debounce window restarts.

        Args:
            selected_files: Current selection
            contents: Raw content keyed by path; files without content are skipped
            settings: Transform settings
            strategy: Tokenizer strategy of the active model profile

        Returns:
            Number of files newly queued for counting
        """
        strategy = TokenizerStrategy.coerce(strategy)
        files = [f for f in selected_files if not f.is_dir]
        raw_contents = {f.path: contents[f.path] for f in files if contents.get(f.path) is not None}

        base_contents = self._prune(files, raw_contents, settings)
        counted = {
            f.path: apply_transforms(base_contents[f.path], f.normalized_extension, settings)
            for f in files if f.path in base_contents
        }

        with self._lock:
            settings_key = (settings, strategy)
            if settings_key != self._settings_key:
                if self._settings_key is not None:
                    logger.debug("Settings or tokenizer changed, recounting all %d files", len(counted))
                self._fingerprints.clear()
                self._pending.clear()
                self._settings_key = settings_key
                self._strategy = strategy

            queued = 0
            for path, content in counted.items():
                if self._fingerprints.get(path) != content:
                    self._fingerprints[path] = content
                    self._pending[path] = content
                    queued += 1

            if queued:
                self._schedule_dispatch()
            return queued

    def flush(self) -> Optional[int]:
        """Dispatch pending files now. Returns the request id, or None if nothing was pending."""
        with self._lock:
            self._cancel_timer()
            return self._dispatch()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Flush, then block until every dispatched batch has been applied or dropped."""
        self.flush()
        with self._idle:
            return self._idle.wait_for(lambda: not self._outstanding, timeout)

    def apply_result(self, result: TokenBatchResult) -> bool:
        """
        Merge a batch result into the token map unless it is stale.

        Returns:
            True if merged, False if dropped because a newer batch was dispatched
        """
        with self._lock:
            self._outstanding.pop(result.request_id, None)
            try:
                if result.request_id < self._latest_request_id:
                    self.stats.results_dropped += 1
                    logger.debug(
                        "Stale token result ignored request=%d latest=%d",
                        result.request_id, self._latest_request_id
                    )
                    return False

                delta = 0
                for entry in result.results:
                    delta += entry.tokens - self._token_map.get(entry.path, 0)
                    self._token_map[entry.path] = entry.tokens
                self.stats.results_applied += 1
                logger.debug(
                    "Token result applied request=%d files=%d deltaTokens=%d",
                    result.request_id, len(result.results), delta
                )
                return True
            finally:
                self._idle.notify_all()

    def close(self):
        """Stop the debounce timer and the background executor."""
        with self._lock:
            self._cancel_timer()
            self._pending.clear()
        self._channel.shutdown(wait=True)

    def _prune(self, files: Sequence[SourceFile], raw_contents: Dict[str, str],
               settings: OptimizationSettings) -> Dict[str, str]:
        if not settings.pruning_enabled:
            with self._lock:
                self._reachability_cache = None
            return raw_contents

        selection_key = tuple((f.path, f.normalized_extension) for f in files)
        with self._lock:
            cached = self._reachability_cache
            if cached is not None and cached.matches(settings.entry_point, selection_key, raw_contents):
                self.stats.reachability_cache_hits += 1
                logger.debug("Reachability cache hit files=%d", len(raw_contents))
                return dict(cached.result)

        # The oracle is called without holding the lock.
        pruned = apply_pruning(files, raw_contents, settings.entry_point, self.oracle)

        with self._lock:
            self._reachability_cache = _ReachabilityCacheEntry(
                entry_point=settings.entry_point,
                selection_key=selection_key,
                raw_contents=dict(raw_contents),
                result=dict(pruned)
            )
            self.stats.reachability_recomputes += 1
        logger.debug("Reachability recomputed files=%d", len(raw_contents))
        return pruned

    def _schedule_dispatch(self):
        self._cancel_timer()
        if self.debounce_seconds <= 0:
            self._dispatch()
            return
        generation = self._timer_generation
        self._timer = threading.Timer(self.debounce_seconds, self._on_debounce_elapsed, args=(generation,))
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self):
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_debounce_elapsed(self, generation: int):
        with self._lock:
            if generation != self._timer_generation:
                return
            self._timer = None
            self._dispatch()

    def _dispatch(self) -> Optional[int]:
        if not self._pending:
            return None

        files = dict(self._pending)
        self._pending.clear()

        # Carry over files of older in-flight batches so dropping their
        # result as stale does not lose a count.
        for batch_files in self._outstanding.values():
            for path, content in batch_files.items():
                if path not in files and self._fingerprints.get(path) == content:
                    files[path] = content

        self._request_counter += 1
        request_id = self._request_counter
        self._latest_request_id = request_id
        self._outstanding[request_id] = files
        self.stats.batches_dispatched += 1
        self.stats.files_dispatched += len(files)

        logger.debug(
            "Token batch queued request=%d files=%d chars=%d strategy=%s",
            request_id, len(files), sum(len(c) for c in files.values()), self._strategy.value
        )
        batch = TokenBatch(request_id=request_id, files=files, strategy=self._strategy.value)
        self._channel.submit(batch, self._on_batch_done)
        return request_id

    def _on_batch_done(self, batch: TokenBatch, future: Future):
        try:
            result = future.result()
        except Exception as e:
            logger.warning("Token counting failed for request %d, using estimates: %s",
                           batch.request_id, e)
            result = TokenBatchResult(
                request_id=batch.request_id,
                results=[TokenCountResult(path, char_estimate(content))
                         for path, content in batch.files.items()]
            )
        self.apply_result(result)
