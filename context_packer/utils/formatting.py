"""Formatting helpers for token counts and generated file names."""


def format_token_count(tokens: float) -> str:
    """Format a token count compactly, e.g. 12345 -> '12.3k'."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}k"
    return str(int(tokens))


def to_part_path(path: str, part_index: int, part_count: int) -> str:
    """
    Name one part of a split file.

    The suffix ``.part-{i+1}-of-{n}`` is inserted before the extension, or
    appended when the file name has no extension (dotfiles included).

    Args:
        path: Original file path, with ``/`` or ``\\`` separators
        part_index: Zero-based index of the part
        part_count: Total number of parts

    Returns:
        Path of the part, e.g. ``src/app.part-1-of-3.ts``
    """
    slash_index = max(path.rfind("/"), path.rfind("\\"))
    directory = path[:slash_index + 1] if slash_index >= 0 else ""
    file_name = path[slash_index + 1:] if slash_index >= 0 else path

    suffix = f".part-{part_index + 1}-of-{part_count}"
    dot_index = file_name.rfind(".")
    if dot_index <= 0:
        return f"{directory}{file_name}{suffix}"
    return f"{directory}{file_name[:dot_index]}{suffix}{file_name[dot_index:]}"
