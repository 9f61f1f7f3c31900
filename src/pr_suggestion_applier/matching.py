"""
Strategies that locate the block of lines a review suggestion replaces.

Each strategy takes the current file lines, the expected lines (the hunk's
added lines) and the raw hunk text, and returns ``(matched, outcome)``.
:data:`MATCH_STRATEGIES` is the order the applier tries them in.
"""
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .diff_parser import first_added_line, parse_hunk, zero_based
from .exceptions import HunkParseError
from .models import MatchOutcome, MatchStrategy

logger = logging.getLogger(__name__)

StrategyResult = Tuple[bool, Optional[MatchOutcome]]
MatchStrategyFunc = Callable[[Sequence[str], Sequence[str], str], StrategyResult]


def block_matches(file_lines: Sequence[str], start: int, expected: Sequence[str]) -> bool:
    """Exact, whitespace-sensitive comparison of expected lines at file_lines[start:]."""
    if start < 0 or start + len(expected) > len(file_lines):
        return False
    return all(file_lines[start + i] == line for i, line in enumerate(expected))


def first_mismatch(file_lines: Sequence[str], start: int, expected: Sequence[str]) -> Optional[int]:
    """
    Returns the 1-based file line where expected lines stop matching at start,
    or None if the whole block matches. Lines past the end of the file count as mismatches.
    """
    for i, line in enumerate(expected):
        index = start + i
        if index < 0 or index >= len(file_lines) or file_lines[index] != line:
            return index + 1
    return None


def predicted_target(hunk_text: str) -> Optional[int]:
    """0-based index of the hunk's first added line in the new file, or None."""
    try:
        hunk = parse_hunk(hunk_text)
    except HunkParseError as e:
        logger.debug(f"Position mapping unavailable: {e}")
        return None
    line = first_added_line(hunk)
    if line is None:
        return None
    return zero_based(line.target_line_no)


def match_by_position(file_lines: Sequence[str], added_lines: Sequence[str], hunk_text: str) -> StrategyResult:
    """Strategy 1: trust the hunk's new-file line numbers, but only if the content there is identical."""
    target = predicted_target(hunk_text)
    if target is None:
        return False, None

    logger.debug(f"Position mapping: first added line predicted at index {target}")
    if block_matches(file_lines, target, added_lines):
        return True, MatchOutcome(MatchStrategy.POSITION, target, len(added_lines))

    logger.debug("Position mapping found a location but its content differs, falling back to search.")
    return False, None


def match_by_content(file_lines: Sequence[str], added_lines: Sequence[str], hunk_text: str) -> StrategyResult:
    """Strategy 2: first exact occurrence of the expected block, scanning top-down."""
    if not added_lines:
        return False, None
    for i in range(len(file_lines) - len(added_lines) + 1):
        if block_matches(file_lines, i, added_lines):
            logger.debug(f"Content search: found expected block at index {i}")
            return True, MatchOutcome(MatchStrategy.CONTENT, i, len(added_lines))
    return False, None


MATCH_STRATEGIES: Tuple[MatchStrategyFunc, ...] = (match_by_position, match_by_content)


def find_replacement_target(
    file_lines: Sequence[str],
    added_lines: Sequence[str],
    hunk_text: str,
    strategies: Sequence[MatchStrategyFunc] = MATCH_STRATEGIES,
) -> Optional[MatchOutcome]:
    """Runs the strategies in order and returns the first match, or None when all are exhausted."""
    for strategy in strategies:
        matched, outcome = strategy(file_lines, added_lines, hunk_text)
        if matched:
            return outcome
    return None


def candidate_location(file_lines: List[str], hunk_text: str, comment_line: int = 0) -> int:
    """
    Best-guess 0-based location used in diagnostics when no match was found:
    the position the hunk predicts, else the comment's own line, clamped to the file.
    """
    target = predicted_target(hunk_text)
    if target is None:
        target = zero_based(comment_line) if comment_line > 0 else 0
    return max(0, min(target, max(len(file_lines) - 1, 0)))
