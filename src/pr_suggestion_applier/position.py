# src/pr_suggestion_applier/position.py
import logging
from typing import Optional

from .diff_parser import parse_hunk
from .exceptions import HunkParseError
from .models import DiffSide, PositionResult

logger = logging.getLogger(__name__)


def calculate_comment_position(
    line: Optional[int],
    original_line: Optional[int],
    hunk_text: str,
    side: DiffSide = DiffSide.RIGHT,
) -> PositionResult:
    """
    Works out display metadata for a review comment from its diff hunk.

    A comment is outdated when the hunk's line range for the comment's side
    (new-file range for RIGHT, old-file range for LEFT) no longer covers the
    line the comment is anchored to. Anything we cannot decide (unparseable
    hunk, missing line number, empty range) is reported as not outdated: this
    flag is advisory and must never stop a suggestion from being applied.
    """
    try:
        hunk = parse_hunk(hunk_text)
    except HunkParseError as e:
        logger.debug(f"Cannot compute comment position, treating as current: {e}")
        return PositionResult(is_outdated=False)

    try:
        side = DiffSide(side)
    except ValueError:
        logger.debug(f"Unknown diff side {side!r}, treating as current")
        return PositionResult(is_outdated=False)
    if side == DiffSide.LEFT:
        anchor = original_line or line
        range_start, range_length = hunk.source_start, hunk.source_length
    else:
        anchor = line
        range_start, range_length = hunk.target_start, hunk.target_length

    if not anchor or range_length <= 0:
        return PositionResult(is_outdated=False)

    range_end = range_start + range_length - 1
    outdated = not (range_start <= anchor <= range_end)
    if outdated:
        logger.debug(f"Line {anchor} ({side.value}) is outside hunk range [{range_start}, {range_end}]")
    return PositionResult(is_outdated=outdated)


def is_outdated(
    line: Optional[int],
    original_line: Optional[int],
    hunk_text: str,
    side: DiffSide = DiffSide.RIGHT,
) -> bool:
    return calculate_comment_position(line, original_line, hunk_text, side).is_outdated
