"""Shared fixtures and fakes for the test suite."""

from concurrent.futures import Executor, Future

import pytest

from context_packer.core import tokenizer_service
from context_packer.core.models import PackItem, PackResponse, ReachabilityResult, SourceFile


class WordEncoding:
    """Stand-in for a tiktoken encoding: one token per whitespace-separated word."""

    def __init__(self, name="fake", weight=1):
        self.name = name
        self.weight = weight

    def encode(self, text, disallowed_special=()):
        return text.split() * self.weight


class ManualExecutor(Executor):
    """Executor that only runs submitted work when told to."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.calls.append((future, fn, args, kwargs))
        return future

    @property
    def batches(self):
        return [args[0] for _, _, args, _ in self.calls]

    def run(self, index):
        future, fn, args, kwargs = self.calls[index]
        future.set_result(fn(*args, **kwargs))

    def fail(self, index, error):
        future, _, _, _ = self.calls[index]
        future.set_exception(error)

    def run_all(self):
        for index, (future, _, _, _) in enumerate(self.calls):
            if not future.done():
                self.run(index)


class FakeOracle:
    """Reachability oracle returning a fixed result and recording calls."""

    def __init__(self, unreachable=None, error=None):
        self.unreachable = unreachable or {}
        self.error = error
        self.calls = []

    def __call__(self, entry_point, files):
        self.calls.append((entry_point, files))
        if self.error is not None:
            raise self.error
        return ReachabilityResult(unreachable_symbols=dict(self.unreachable))


class FakeBundler:
    """Bundler that puts every file into one pack, or raises."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def __call__(self, files, num_packs, output_format, model_profile_id):
        self.calls.append((files, num_packs, output_format, model_profile_id))
        if self.error is not None:
            raise self.error
        total = sum(len(f.content) // 4 for f in files)
        pack = PackItem(
            index=0,
            content="\n\n".join(f.content for f in files),
            estimated_tokens=total,
            file_count=len(files),
            file_paths=[f.path for f in files]
        )
        return PackResponse(packs=[pack], total_tokens=total)


@pytest.fixture
def word_encoding(monkeypatch):
    """Make token counts deterministic: one token per word."""
    monkeypatch.setattr(tokenizer_service, "get_encoding", lambda name: WordEncoding(name))


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def sample_files():
    return [
        SourceFile.from_path("/proj/src/app.ts", "// header\nconst a = 1; // one\n"),
        SourceFile.from_path("/proj/src/util.py", "# util\nx = 2  # two\n"),
        SourceFile.from_path("/proj/README.md", "# Title\n\nSome words here.\n"),
    ]
