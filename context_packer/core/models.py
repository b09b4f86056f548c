"""Data model shared by the packing pipeline."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import posixpath


@dataclass(frozen=True)
class SourceFile:
    """A file selected by the user. Raw content is never mutated in place."""
    path: str
    raw_content: str = ""
    extension: str = ""
    explicit_token_count: Optional[int] = None
    relative_path: Optional[str] = None
    is_dir: bool = False

    @classmethod
    def from_path(cls, path: str, raw_content: str = "", **kwargs) -> 'SourceFile':
        """Build a SourceFile, deriving the extension from the path."""
        _, ext = posixpath.splitext(path.replace("\\", "/"))
        return cls(path=path, raw_content=raw_content, extension=ext.lstrip("."), **kwargs)

    @property
    def normalized_extension(self) -> str:
        return self.extension.lower().lstrip(".")

    @property
    def bundle_path(self) -> str:
        """Path used when the file is handed to the bundler."""
        return self.relative_path or self.path


@dataclass
class PackFile:
    """A file entry as seen by the pack strategy and the bundler."""
    path: str
    content: str
    token_count: Optional[int] = None


@dataclass
class ReachabilityResult:
    """Reachability oracle output, keyed by file path."""
    reachable_symbols: Dict[str, List[str]] = field(default_factory=dict)
    unreachable_symbols: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, List[str]]]) -> 'ReachabilityResult':
        return cls(
            reachable_symbols=dict(data.get('reachable_symbols', {})),
            unreachable_symbols=dict(data.get('unreachable_symbols', {}))
        )

    def unreachable_for(self, path: str) -> List[str]:
        return self.unreachable_symbols.get(path) or []


@dataclass(frozen=True)
class TokenBatch:
    """Outbound message: a batch of transformed file contents to count."""
    request_id: int
    files: Dict[str, str]
    strategy: str


@dataclass(frozen=True)
class TokenCountResult:
    path: str
    tokens: int


@dataclass(frozen=True)
class TokenBatchResult:
    """Inbound message: counts for one batch, tagged with its request id."""
    request_id: int
    results: List[TokenCountResult]


@dataclass
class PackItem:
    """One bundle produced by the bundler."""
    index: int
    content: str
    estimated_tokens: int
    file_count: int
    file_paths: List[str] = field(default_factory=list)


@dataclass
class PackResponse:
    packs: List[PackItem]
    total_tokens: int
