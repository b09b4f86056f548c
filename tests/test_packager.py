"""Tests for end-to-end packing."""

from context_packer.config.settings import OptimizationSettings, PackConfig
from context_packer.core.models import PackItem, SourceFile
from context_packer.core.pack_strategy import AdvisoryLevel
from context_packer.core.packager import Packager, build_pack_file_token_map, load_contents
from context_packer.services.model_profiles import ModelProfile, ModelProfileRegistry

from conftest import FakeBundler, FakeOracle


class TestPrepareFiles:
    """Test cases for turning a selection into bundler entries."""

    def test_transforms_and_paths(self):
        """Test transforms, relative paths and directory skipping."""
        files = [
            SourceFile("/proj/src", is_dir=True),
            SourceFile.from_path("/proj/src/app.ts", relative_path="src/app.ts"),
            SourceFile.from_path("/proj/notes.txt"),
        ]
        contents = {"/proj/src/app.ts": "run(); // go\n\n\n\nstop();\n"}
        config = PackConfig(optimization=OptimizationSettings(strip_comments=True, reduce_whitespace=True))

        pack_files = Packager(FakeBundler()).prepare_files(files, contents, config)

        assert [f.path for f in pack_files] == ["src/app.ts", "/proj/notes.txt"]
        assert pack_files[0].content == "run();\n\nstop();"
        assert pack_files[1].content == ""

    def test_token_counts(self):
        """Test that known counts win over explicit counts."""
        files = [
            SourceFile.from_path("a.ts", explicit_token_count=11),
            SourceFile.from_path("b.ts", explicit_token_count=12),
        ]
        pack_files = Packager(FakeBundler()).prepare_files(
            files, {"a.ts": "a", "b.ts": "b"}, PackConfig(), token_map={"a.ts": 5}
        )
        assert [f.token_count for f in pack_files] == [5, 12]

    def test_dead_code_elimination(self):
        """Test that unreachable declarations are pruned before bundling."""
        files = [SourceFile.from_path("main.ts"), SourceFile.from_path("util.ts")]
        contents = {
            "main.ts": "import { used } from './util';\nused();\n",
            "util.ts": "export function used() {}\nfunction unused() {}\n",
        }
        config = PackConfig(optimization=OptimizationSettings(dead_code_elimination=True, entry_point="main.ts"))
        packager = Packager(FakeBundler(), oracle=FakeOracle({"util.ts": ["unused"]}))

        pack_files = packager.prepare_files(files, contents, config)
        assert "unused" not in pack_files[1].content
        assert contents["util.ts"].endswith("function unused() {}\n")


class TestPack:
    """Test cases for Packager.pack."""

    def test_successful_pack(self):
        """Test a pack with nothing oversized."""
        bundler = FakeBundler()
        files = [SourceFile.from_path("a.ts"), SourceFile.from_path("b.ts")]
        outcome = Packager(bundler).pack(files, {"a.ts": "aaaa", "b.ts": "bbbb"}, PackConfig(num_packs=2))

        assert outcome.ok
        assert outcome.error is None
        assert outcome.warnings == []
        assert outcome.strategy.ceiling == 16_000
        assert outcome.advisory.level is AdvisoryLevel.OK
        _, num_packs, output_format, profile_id = bundler.calls[0]
        assert (num_packs, output_format, profile_id) == (2, "plaintext", "claude-opus-4")

    def test_oversized_file_is_split(self):
        """Test that the bundler receives parts of an oversized file."""
        bundler = FakeBundler()
        files = [SourceFile.from_path("src/big.ts"), SourceFile.from_path("small.ts")]
        contents = {"src/big.ts": "x" * 500, "small.ts": "ok"}
        outcome = Packager(bundler).pack(files, contents, PackConfig(max_tokens_per_file=60, num_packs=3))

        sent = [f.path for f in bundler.calls[0][0]]
        assert sent == [
            "src/big.part-1-of-3.ts",
            "src/big.part-2-of-3.ts",
            "src/big.part-3-of-3.ts",
            "small.ts",
        ]
        assert outcome.strategy.split_file_count == 1
        assert any("Auto-balance enabled" in w for w in outcome.warnings)

    def test_profile_tokens_per_file(self):
        """Test that a profile's per-file budget is used when the config has none."""
        registry = ModelProfileRegistry([ModelProfile("tiny", "Tiny", 10_000, tokens_per_file=50)])
        files = [SourceFile.from_path("a.ts")]
        outcome = Packager(FakeBundler(), registry=registry).pack(
            files, {"a.ts": "x" * 100}, PackConfig(model_profile="tiny")
        )
        assert outcome.strategy.ceiling == 50

    def test_config_profiles(self):
        """Test that custom profiles from the config are used for the lookup."""
        bundler = FakeBundler()
        config = PackConfig.from_dict({
            "model_profile": "local",
            "profiles": [{"id": "local", "context_window_tokens": 32_000, "tokens_per_file": 3000}],
        })
        packager = Packager(bundler)
        outcome = packager.pack([SourceFile.from_path("a.ts")], {"a.ts": "aaaa"}, config)

        assert outcome.strategy.ceiling == 3000
        assert bundler.calls[0][3] == "local"
        assert "local" not in packager.registry.profiles

    def test_config_profile_derived_ceiling(self):
        """Test that a custom profile's context window drives the derived ceiling."""
        config = PackConfig(
            model_profile="wide",
            profiles=[{"id": "wide", "context_window_tokens": 150_000}]
        )
        outcome = Packager(FakeBundler()).pack([SourceFile.from_path("a.ts")], {"a.ts": "a"}, config)
        assert outcome.strategy.ceiling == 12_000

    def test_advisory_warning(self):
        """Test that an exceeded per-pack advisory is reported."""
        files = [
            SourceFile.from_path("a.ts", explicit_token_count=50),
            SourceFile.from_path("b.ts", explicit_token_count=50),
        ]
        contents = {"a.ts": "a" * 300, "b.ts": "b" * 300}
        outcome = Packager(FakeBundler()).pack(files, contents, PackConfig(max_tokens_per_file=100))

        assert outcome.ok
        assert outcome.advisory.level is AdvisoryLevel.DANGER
        assert any(w.startswith("Advisory exceeded") for w in outcome.warnings)

    def test_bundler_failure(self):
        """Test that a bundler exception becomes a single error message."""
        packager = Packager(FakeBundler(error=RuntimeError("bundler exploded")))
        outcome = packager.pack([SourceFile.from_path("a.ts")], {"a.ts": "a"}, PackConfig())
        assert not outcome.ok
        assert outcome.response is None
        assert outcome.error == "bundler exploded"

    def test_bundler_failure_without_message(self):
        """Test the error type name for exceptions without a message."""
        packager = Packager(FakeBundler(error=ValueError()))
        outcome = packager.pack([SourceFile.from_path("a.ts")], {"a.ts": "a"}, PackConfig())
        assert outcome.error == "ValueError"


class TestHelpers:
    """Test cases for content loading and per-file token attribution."""

    def test_load_contents(self, tmp_path):
        """Test reading files, skipping directories and tolerating failures."""
        good = tmp_path / "good.py"
        good.write_text("print('hi')\n", encoding="utf-8")
        files = [
            SourceFile.from_path(str(good)),
            SourceFile.from_path(str(tmp_path / "missing.py")),
            SourceFile(str(tmp_path), is_dir=True),
        ]
        contents = load_contents(files)
        assert contents == {str(good): "print('hi')\n", str(tmp_path / "missing.py"): ""}

    def test_load_contents_custom_reader(self):
        """Test a caller-provided reader."""
        contents = load_contents([SourceFile.from_path("a.ts")], reader=lambda path: path.upper())
        assert contents == {"a.ts": "A.TS"}

    def test_load_contents_reader_failure(self):
        """Test that any exception from a reader yields empty content."""
        def reader(path):
            if path == "bad.ts":
                raise ValueError("boom")
            return "ok"

        files = [SourceFile.from_path("bad.ts"), SourceFile.from_path("good.ts")]
        assert load_contents(files, reader=reader) == {"bad.ts": "", "good.ts": "ok"}

    def test_build_pack_file_token_map(self):
        """Test known counts plus an even share of the remainder."""
        packs = [
            PackItem(0, "", 100, 3, ["a.ts", "b.ts", "c.ts"]),
            PackItem(1, "", 9, 1, ["d.ts"]),
        ]
        token_map = build_pack_file_token_map(packs, {"a.ts": 40})
        assert token_map == {"a.ts": 40, "b.ts": 30, "c.ts": 30, "d.ts": 9}
