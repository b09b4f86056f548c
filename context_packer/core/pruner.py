"""Reachability-driven pruning of unreachable top-level declarations.

The oracle decides which symbols are unreachable; this module only removes
declarations it can match with a conservative, line-based heuristic. A
declaration starts at an unindented line carrying its keyword and name and
runs to the next unindented sibling declaration or end of file. Symbols that
look externally visible are never removed.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .models import ReachabilityResult, SourceFile

logger = logging.getLogger(__name__)

MAX_STRIP_SIZE = 200_000


class LanguageFamily(Enum):
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    RUST = "rust"
    GO = "go"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_extension(cls, extension: str) -> 'LanguageFamily':
        return _EXTENSION_FAMILIES.get(extension.lower().lstrip("."), cls.UNSUPPORTED)


_EXTENSION_FAMILIES = {
    "ts": LanguageFamily.TYPESCRIPT,
    "tsx": LanguageFamily.TYPESCRIPT,
    "js": LanguageFamily.TYPESCRIPT,
    "jsx": LanguageFamily.TYPESCRIPT,
    "mjs": LanguageFamily.TYPESCRIPT,
    "cjs": LanguageFamily.TYPESCRIPT,
    "py": LanguageFamily.PYTHON,
    "rs": LanguageFamily.RUST,
    "go": LanguageFamily.GO,
}

SUPPORTED_EXTENSIONS = frozenset(_EXTENSION_FAMILIES)


class ReachabilityOracle(Protocol):
    """External analysis naming unreachable symbols from an entry point."""

    def __call__(self, entry_point: str, files: List[Dict[str, str]]) -> ReachabilityResult:
        ...


def _until_sibling(boundary: str) -> str:
    return rf"[\s\S]*?(?=\n(?![ \t])(?:{boundary}|\Z)|\Z)"


@dataclass(frozen=True)
class DeclarationMatcher:
    """Protection and removal rules for one language family.

    Pattern templates use ``{name}`` for the escaped symbol name.
    """
    protected_patterns: Sequence[str]
    removal_patterns: Sequence[str]
    is_protected_name: Optional[Callable[[str, str], bool]] = None

    def is_protected(self, content: str, symbol: str) -> bool:
        if self.is_protected_name is not None and self.is_protected_name(content, symbol):
            return True
        escaped = re.escape(symbol)
        return any(
            re.search(pattern.format(name=escaped), content, re.MULTILINE)
            for pattern in self.protected_patterns
        )

    def strip(self, content: str, symbol: str) -> str:
        escaped = re.escape(symbol)
        for pattern in self.removal_patterns:
            content = re.sub(pattern.format(name=escaped), r"\1", content)
        return content


_TS_BOUNDARY = r"export|async\s+function|function|const|let|var|class|interface|type|enum|//|/\*"
_PY_BOUNDARY = r"def\s|async\s+def\s|class\s|@"
_RS_BOUNDARY = r"pub|fn|async\s+fn|struct|impl|enum|trait|use|mod|#\[|//|/\*"
_GO_BOUNDARY = r"func\s|type\s|var\s|const\s|import\s|package\s"


def _python_all_lists(content: str, symbol: str) -> bool:
    """Names listed in a module-level ``__all__`` are public."""
    for match in re.finditer(r"^__all__\s*(?:\+?=)\s*[\[(]([^\])]*)[\])]", content, re.MULTILINE):
        if re.search(rf"""['"]{re.escape(symbol)}['"]""", match.group(1)):
            return True
    return False


def _go_exported(content: str, symbol: str) -> bool:
    """Go exports identifiers that start with an upper-case letter."""
    first = symbol[:1]
    return first.isalpha() and first.isupper()


# {{ and }} are literal braces once the templates are formatted.
MATCHERS: Dict[LanguageFamily, DeclarationMatcher] = {
    LanguageFamily.TYPESCRIPT: DeclarationMatcher(
        protected_patterns=(
            r"^\s*export\s+(?:default\s+)?(?:async\s+)?function(?:\s*\*\s*|\s+){name}\b",
            r"^\s*export\s+(?:const|let|var)\s+{name}\b",
            r"^\s*export\s+(?:default\s+)?(?:abstract\s+)?class\s+{name}\b",
            r"^\s*export\s*\{{[^}}]*\b{name}\b[^}}]*\}}",
        ),
        removal_patterns=(
            r"(^|\n)(?![ \t])(?:async\s+)?function(?:\s*\*\s*|\s+){name}\s*[(<]" + _until_sibling(_TS_BOUNDARY),
            r"(^|\n)(?![ \t])(?:const|let|var)\s+{name}\s*[=:]" + _until_sibling(_TS_BOUNDARY),
            r"(^|\n)(?![ \t])(?:abstract\s+)?class\s+{name}\b" + _until_sibling(_TS_BOUNDARY),
        ),
    ),
    LanguageFamily.PYTHON: DeclarationMatcher(
        protected_patterns=(),
        removal_patterns=(
            r"(^|\n)(?:@[^\n]*\n)*(?![ \t])(?:async\s+)?def\s+{name}\s*\(" + _until_sibling(_PY_BOUNDARY),
            r"(^|\n)(?:@[^\n]*\n)*(?![ \t])class\s+{name}\b" + _until_sibling(_PY_BOUNDARY),
        ),
        is_protected_name=_python_all_lists,
    ),
    LanguageFamily.RUST: DeclarationMatcher(
        protected_patterns=(
            r"^\s*pub(?:\([^)]*\))?\s+(?:async\s+)?fn\s+{name}\b",
            r"^\s*pub(?:\([^)]*\))?\s+struct\s+{name}\b",
            r"^\s*pub(?:\([^)]*\))?\s+enum\s+{name}\b",
            r"^\s*pub(?:\([^)]*\))?\s+trait\s+{name}\b",
            r"^\s*pub(?:\([^)]*\))?\s+type\s+{name}\b",
        ),
        removal_patterns=(
            r"(^|\n)(?![ \t])(?:async\s+)?fn\s+{name}\b" + _until_sibling(_RS_BOUNDARY),
        ),
    ),
    LanguageFamily.GO: DeclarationMatcher(
        protected_patterns=(),
        removal_patterns=(
            r"(^|\n)(?![ \t])func\s+(?:\([^)]+\)\s+)?{name}\s*\([^)]*\)" + _until_sibling(_GO_BOUNDARY),
        ),
        is_protected_name=_go_exported,
    ),
}


def is_protected_declaration(content: str, symbol: str, family: LanguageFamily) -> bool:
    """Whether ``symbol`` looks externally visible and must be kept."""
    matcher = MATCHERS.get(family)
    if matcher is None:
        return False
    return matcher.is_protected(content, symbol)


def strip_unreachable(content: str, symbols: Sequence[str], family: LanguageFamily) -> str:
    """
    Remove the top-level declarations of unprotected symbols.

    Args:
        content: File content
        symbols: Symbol names reported unreachable
        family: Language family of the file

    Returns:
        Content with matching declarations removed. Content is returned
        unchanged when there are no symbols, the family is unsupported, or
        the content exceeds MAX_STRIP_SIZE characters.
    """
    matcher = MATCHERS.get(family)
    if not symbols or matcher is None:
        return content

    if len(content) > MAX_STRIP_SIZE:
        logger.debug("Skipping strip: %d chars exceeds %d", len(content), MAX_STRIP_SIZE)
        return content

    result = content
    for symbol in symbols:
        if not symbol or matcher.is_protected(result, symbol):
            continue
        result = matcher.strip(result, symbol)
    return result


def is_eligible(file: SourceFile) -> bool:
    return not file.is_dir and file.normalized_extension in SUPPORTED_EXTENSIONS


def apply_pruning(selected_files: Sequence[SourceFile],
                  content_by_path: Mapping[str, str],
                  entry_point: Optional[str],
                  oracle: Optional[ReachabilityOracle]) -> Dict[str, str]:
    """
    Strip unreachable declarations from every eligible selected file.

    Args:
        selected_files: Files in the current selection
        content_by_path: Content keyed by file path
        entry_point: Path of the entry point, or None to skip pruning
        oracle: Reachability oracle

    Returns:
        New mapping of path to content. Unchanged copy of the input when
        there is no entry point, no eligible file, or the oracle fails.
    """
    result = dict(content_by_path)
    if not entry_point or oracle is None:
        return result

    eligible = [f for f in selected_files if is_eligible(f)]
    if not eligible:
        return result

    try:
        reachability = oracle(
            entry_point,
            [{"path": f.path, "content": content_by_path.get(f.path, "")} for f in eligible]
        )
    except Exception as e:
        logger.warning("Reachability analysis failed, skipping pruning: %s", e)
        return result

    for file in eligible:
        unreachable = reachability.unreachable_for(file.path)
        if not unreachable:
            continue
        family = LanguageFamily.from_extension(file.normalized_extension)
        current = result.get(file.path, "")
        if len(current) > MAX_STRIP_SIZE:
            logger.info("Not pruning %s: file too large (%d chars)", file.path, len(current))
            continue
        result[file.path] = strip_unreachable(current, unreachable, family)

    return result
