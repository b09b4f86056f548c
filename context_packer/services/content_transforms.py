"""Content transforms applied before counting and packing."""

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from ..config.settings import OptimizationSettings


@dataclass(frozen=True)
class CommentSyntax:
    """Comment and string-literal rules for a group of languages."""
    line_comment: str
    block_comment: Optional[Tuple[str, str]] = None
    quotes: str = "\"'"
    multiline_quotes: str = ""
    raw_quotes: str = ""


_JS_SYNTAX = CommentSyntax("//", ("/*", "*/"), quotes="\"'`", multiline_quotes="`")
_GO_SYNTAX = CommentSyntax("//", ("/*", "*/"), quotes="\"'`", multiline_quotes="`", raw_quotes="`")
# ' is a lifetime marker in Rust, not a string delimiter.
_RUST_SYNTAX = CommentSyntax("//", ("/*", "*/"), quotes="\"", multiline_quotes="\"")
_C_SYNTAX = CommentSyntax("//", ("/*", "*/"))
_SQL_SYNTAX = CommentSyntax("--", ("/*", "*/"))
_LUA_SYNTAX = CommentSyntax("--", ("--[[", "]]"))

SCANNED_SYNTAXES: Dict[str, CommentSyntax] = {
    "ts": _JS_SYNTAX, "tsx": _JS_SYNTAX, "js": _JS_SYNTAX, "jsx": _JS_SYNTAX,
    "mjs": _JS_SYNTAX, "cjs": _JS_SYNTAX,
    "go": _GO_SYNTAX,
    "rs": _RUST_SYNTAX,
    "c": _C_SYNTAX, "cpp": _C_SYNTAX, "h": _C_SYNTAX, "hpp": _C_SYNTAX,
    "cs": _C_SYNTAX, "java": _C_SYNTAX, "kt": _C_SYNTAX, "swift": _C_SYNTAX,
    "sql": _SQL_SYNTAX,
    "lua": _LUA_SYNTAX,
}

HASH_COMMENT_EXTENSIONS: FrozenSet[str] = frozenset(
    ["py", "rb", "sh", "bash", "zsh", "yaml", "yml", "toml", "r"]
)
MARKDOWN_EXTENSIONS: FrozenSet[str] = frozenset(["md", "markdown"])

_DOCSTRING_PATTERN = re.compile(r'"""[\s\S]*?"""|\'\'\'[\s\S]*?\'\'\'')


def _string_end(content: str, start: int, syntax: CommentSyntax) -> int:
    """Index just past the string literal opening at ``start``."""
    quote = content[start]
    raw = quote in syntax.raw_quotes
    multiline = quote in syntax.multiline_quotes
    i = start + 1
    while i < len(content):
        ch = content[i]
        if ch == "\\" and not raw:
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and not multiline:
            return i
        i += 1
    return len(content)


def _strip_scanned(content: str, syntax: CommentSyntax) -> str:
    tokens = [syntax.line_comment] + list(syntax.quotes)
    if syntax.block_comment:
        # Block openers like --[[ must win over the line comment they start with.
        tokens.insert(0, syntax.block_comment[0])
    special = re.compile("|".join(re.escape(t) for t in tokens))

    parts = []
    i = 0
    while i < len(content):
        match = special.search(content, i)
        if match is None:
            parts.append(content[i:])
            break
        parts.append(content[i:match.start()])
        token = match.group()
        i = match.start()

        if syntax.block_comment and token == syntax.block_comment[0]:
            end = content.find(syntax.block_comment[1], i + len(token))
            i = len(content) if end == -1 else end + len(syntax.block_comment[1])
        elif token == syntax.line_comment:
            end = content.find("\n", i)
            i = len(content) if end == -1 else end
        else:
            end = _string_end(content, i, syntax)
            parts.append(content[i:end])
            i = end

    return "".join(parts)


def _find_hash_comment(line: str) -> int:
    """Index of a ``#`` comment in a line, ignoring ``#`` inside quotes; -1 if none."""
    in_single = False
    in_double = False
    for i, c in enumerate(line):
        if c == "'" and not in_double:
            in_single = not in_single
        elif c == '"' and not in_single:
            in_double = not in_double
        elif c == "#" and not in_single and not in_double:
            return i
    return -1


def _strip_hash_comments(content: str, extension: str) -> str:
    lines = []
    for index, line in enumerate(content.split("\n")):
        if index == 0 and line.startswith("#!"):
            lines.append(line)
            continue
        comment_start = _find_hash_comment(line)
        lines.append(line if comment_start == -1 else line[:comment_start].rstrip())
    result = "\n".join(lines)

    if extension == "py":
        result = _DOCSTRING_PATTERN.sub("", result)
    return result


def strip_comments(content: str, extension: str) -> str:
    """
    Remove comments from source content.

    String literals are left intact, so ``"http://x"`` or ``'a--b'`` survive.
    Python files also lose their triple-quoted docstrings.

    Args:
        content: Source content
        extension: File extension without the dot

    Returns:
        Content without comments; unchanged for unknown extensions
    """
    ext = extension.lower().lstrip(".")
    syntax = SCANNED_SYNTAXES.get(ext)
    if syntax is not None:
        return _strip_scanned(content, syntax)
    if ext in HASH_COMMENT_EXTENSIONS:
        return _strip_hash_comments(content, ext)
    return content


def reduce_whitespace(content: str) -> str:
    """Collapse blank-line runs, drop trailing spaces, trim the whole text."""
    result = re.sub(r"\n{3,}", "\n\n", content)
    result = "\n".join(line.rstrip() for line in result.split("\n"))
    return result.strip()


def minify_markdown(content: str, strip_headings: bool = False, strip_blockquotes: bool = False) -> str:
    """Strip badges, HTML and extra blank lines from markdown."""
    result = re.sub(r"\[!\[.*?\]\(.*?\)\]\(.*?\)", "", content)
    result = re.sub(r"<!--[\s\S]*?-->", "", result)
    result = re.sub(
        r"<(div|details|summary|table|thead|tbody|tr|td|th)[^>]*>[\s\S]*?</\1>",
        "", result, flags=re.IGNORECASE
    )
    result = re.sub(r"<(img|br|hr)[^>]*/?>", "", result, flags=re.IGNORECASE)
    result = re.sub(r"<[^>]+>", "", result)
    result = re.sub(r"\n{3,}", "\n\n", result)

    if strip_headings:
        result = re.sub(r"^#{1,6}[ \t]+.*$", "", result, flags=re.MULTILINE)
    if strip_blockquotes:
        result = re.sub(r"^>[ \t]?.*$", "", result, flags=re.MULTILINE)

    return result.strip()


def apply_transforms(content: str, extension: str, settings: OptimizationSettings) -> str:
    """Apply the enabled transforms in fixed order: comments, whitespace, markdown."""
    ext = extension.lower().lstrip(".")
    if settings.strip_comments:
        content = strip_comments(content, ext)
    if settings.reduce_whitespace:
        content = reduce_whitespace(content)
    if settings.minify_markdown and ext in MARKDOWN_EXTENSIONS:
        content = minify_markdown(content, settings.strip_headings, settings.strip_blockquotes)
    return content
