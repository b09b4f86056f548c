"""Pack strategy: advisory per-file budgets and oversized-file splitting."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .models import PackFile
from ..utils.formatting import format_token_count, to_part_path

MIN_ADVISORY_TOKENS_PER_FILE = 4_000
MAX_ADVISORY_TOKENS_PER_FILE = 20_000
ADVISORY_WINDOW_RATIO = 0.08
APPROX_CHARS_PER_TOKEN = 4
MIN_BREAK_SCAN_RATIO = 0.35
ADVISORY_WARN_RATIO = 0.85
MAX_WARNING_EXAMPLES = 3


class AdvisoryLevel(str, Enum):
    OK = "ok"
    WARN = "warn"
    DANGER = "danger"


ADVISORY_MESSAGES = {
    AdvisoryLevel.OK: "Within advisory: average tokens per pack are under the recommended "
                      "per-file budget.",
    AdvisoryLevel.WARN: "Approaching advisory limit: average tokens per pack are close to the "
                        "recommended per-file budget.",
    AdvisoryLevel.DANGER: "Advisory exceeded: average tokens per pack are above the recommended "
                          "per-file budget. Increase packs or select fewer files.",
}


@dataclass(frozen=True)
class OversizedFile:
    path: str
    token_count: int


@dataclass
class BalanceResult:
    """Outcome of balancing a file list against the advisory ceiling."""
    files: List[PackFile]
    oversized_files: List[OversizedFile]
    warnings: List[str]
    ceiling: int
    split_file_count: int = 0
    generated_part_count: int = 0


@dataclass
class PerPackAdvisoryStatus:
    avg_tokens_per_pack: float
    ceiling: int
    utilization: float
    level: AdvisoryLevel
    message: str = field(default="")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_tokens(content: str) -> int:
    """Estimate tokens from length: 0 for empty content, else at least 1."""
    if not content:
        return 0
    return max(math.ceil(len(content) / APPROX_CHARS_PER_TOKEN), 1)


def derive_ceiling(context_window_tokens: int) -> int:
    """Derive the advisory per-file token ceiling from a context window size."""
    scaled = _round_half_up(context_window_tokens * ADVISORY_WINDOW_RATIO)
    return min(MAX_ADVISORY_TOKENS_PER_FILE, max(MIN_ADVISORY_TOKENS_PER_FILE, scaled))


def resolve_ceiling(configured: Optional[float], context_window_tokens: int) -> int:
    """Use a positive configured ceiling, otherwise derive one from the window."""
    if configured is None or configured <= 0:
        return derive_ceiling(context_window_tokens)
    return max(1, _round_half_up(configured))


def effective_token_count(file: PackFile) -> int:
    if file.token_count is not None:
        return max(0, file.token_count)
    return estimate_tokens(file.content)


def find_oversized(files: Sequence[PackFile], ceiling: int) -> List[OversizedFile]:
    """Return files above the ceiling, in input order."""
    if ceiling <= 0:
        return []
    oversized = []
    for file in files:
        tokens = effective_token_count(file)
        if tokens > ceiling:
            oversized.append(OversizedFile(path=file.path, token_count=tokens))
    return oversized


def split_by_budget(content: str, ceiling: int) -> List[str]:
    """
    Split content into chunks of roughly ``ceiling`` tokens.

    Each window is ``ceiling * 4`` characters. A chunk ends after the last
    paragraph break in the window, or the last line break, provided the
    break lies at least 35% into the window; otherwise the window is cut
    hard. Joining the chunks always yields the original content.

    Args:
        content: Content to split
        ceiling: Token budget per chunk

    Returns:
        List of chunks; ``[content]`` when no split is needed
    """
    if ceiling <= 0:
        return [content]
    max_chars = max(1, ceiling * APPROX_CHARS_PER_TOKEN)
    if len(content) <= max_chars:
        return [content]

    min_break_offset = int(max_chars * MIN_BREAK_SCAN_RATIO)
    chunks = []
    cursor = 0

    while cursor < len(content):
        split_at = min(cursor + max_chars, len(content))

        if split_at < len(content):
            last_paragraph_break = content.rfind("\n\n", 0, split_at + 2)
            last_line_break = content.rfind("\n", 0, split_at + 1)

            if last_paragraph_break >= cursor + min_break_offset:
                split_at = last_paragraph_break + 2
            elif last_line_break >= cursor + min_break_offset:
                split_at = last_line_break + 1

        chunks.append(content[cursor:split_at])
        cursor = split_at

    return chunks


def build_oversized_warning(oversized_files: Sequence[OversizedFile], ceiling: int) -> Optional[str]:
    if not oversized_files:
        return None
    examples = ", ".join(
        f"{f.path} (~{format_token_count(f.token_count)})"
        for f in oversized_files[:MAX_WARNING_EXAMPLES]
    )
    extra = len(oversized_files) - MAX_WARNING_EXAMPLES
    more = f" +{extra} more" if extra > 0 else ""
    return (
        f"Some files exceed the advisory per-file limit of {format_token_count(ceiling)} tokens. "
        "Large single files can reduce LLM reliability and increase hallucination risk. "
        "Consider selecting fewer files. "
        f"Oversized: {examples}{more}."
    )


def balance(files: Sequence[PackFile], ceiling: int) -> BalanceResult:
    """
    Split oversized files into parts so packs stay within the advisory ceiling.

    A file whose content yields a single chunk (for example an explicit token
    count far above what its text suggests) is kept as is but still reported
    as oversized.

    Args:
        files: Transformed files to balance
        ceiling: Advisory per-file token ceiling, clamped to at least 1

    Returns:
        BalanceResult with the new file list, oversized files and warnings
    """
    ceiling = max(1, ceiling)
    oversized_files = find_oversized(files, ceiling)

    if not oversized_files:
        return BalanceResult(files=list(files), oversized_files=[], warnings=[], ceiling=ceiling)

    oversized_paths = {f.path for f in oversized_files}
    balanced_files: List[PackFile] = []
    split_file_count = 0
    generated_part_count = 0

    for file in files:
        if file.path not in oversized_paths:
            balanced_files.append(file)
            continue

        chunks = split_by_budget(file.content, ceiling)
        if len(chunks) <= 1:
            balanced_files.append(file)
            continue

        split_file_count += 1
        generated_part_count += len(chunks)
        for i, chunk in enumerate(chunks):
            balanced_files.append(PackFile(path=to_part_path(file.path, i, len(chunks)), content=chunk))

    warnings = [build_oversized_warning(oversized_files, ceiling)]
    if split_file_count > 0:
        warnings.append(
            f"Auto-balance enabled: split {split_file_count} oversized file(s) into "
            f"{generated_part_count} part(s) to better balance pack sizes."
        )

    return BalanceResult(
        files=balanced_files,
        oversized_files=oversized_files,
        warnings=warnings,
        ceiling=ceiling,
        split_file_count=split_file_count,
        generated_part_count=generated_part_count
    )


def forecast_part_counts(files: Sequence[PackFile], ceiling: int) -> Dict[str, int]:
    """Expected number of parts for each file that will be split."""
    if ceiling <= 0:
        return {}
    part_counts = {}
    for file in files:
        tokens = effective_token_count(file)
        if tokens > ceiling:
            part_counts[file.path] = max(2, math.ceil(tokens / ceiling))
    return part_counts


def per_pack_advisory(total_tokens: float, num_packs: int, ceiling: int) -> PerPackAdvisoryStatus:
    """Compare the average pack size against the advisory ceiling."""
    safe_packs = max(1, num_packs)
    safe_ceiling = max(1, ceiling)
    avg_tokens_per_pack = total_tokens / safe_packs
    utilization = avg_tokens_per_pack / safe_ceiling

    if utilization >= 1:
        level = AdvisoryLevel.DANGER
    elif utilization >= ADVISORY_WARN_RATIO:
        level = AdvisoryLevel.WARN
    else:
        level = AdvisoryLevel.OK

    return PerPackAdvisoryStatus(
        avg_tokens_per_pack=avg_tokens_per_pack,
        ceiling=safe_ceiling,
        utilization=utilization,
        level=level,
        message=ADVISORY_MESSAGES[level]
    )
