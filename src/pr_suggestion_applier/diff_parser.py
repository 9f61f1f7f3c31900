# src/pr_suggestion_applier/diff_parser.py
import logging
from typing import List

from unidiff.constants import (
    LINE_TYPE_ADDED,
    LINE_TYPE_CONTEXT,
    LINE_TYPE_NO_NEWLINE,
    LINE_TYPE_REMOVED,
    RE_HUNK_HEADER,
)
from unidiff.patch import Hunk, Line

from .exceptions import HunkParseError

logger = logging.getLogger(__name__)

_BODY_LINE_TYPES = (LINE_TYPE_CONTEXT, LINE_TYPE_ADDED, LINE_TYPE_REMOVED)


def parse_hunk(hunk_text: str) -> Hunk:
    """
    Parses a single unified-diff hunk, as GitHub stores it on a review comment,
    into a unidiff Hunk with old/new line numbers on every line.

    GitHub truncates the hunk at the commented line, so the body is usually
    shorter than the header counts announce. That is not an error here.

    Args:
        hunk_text: Raw hunk text starting with the "@@ -a,b +c,d @@" header.

    Returns:
        A unidiff Hunk whose Line objects carry source_line_no (old file) for
        context/removed lines and target_line_no (new file) for context/added lines.

    Raises:
        HunkParseError: if the header is missing/malformed or a body line has an unknown prefix.
    """
    if not hunk_text:
        raise HunkParseError("empty diff hunk")

    raw_lines = hunk_text.split("\n")
    if hunk_text.endswith("\n"):
        raw_lines.pop() # Trailing newline is not an extra context line

    header_match = RE_HUNK_HEADER.match(raw_lines[0])
    if not header_match:
        raise HunkParseError(f"invalid diff hunk header: {raw_lines[0][:80]!r}")

    old_start, old_count, new_start, new_count, section_header = header_match.groups()
    hunk = Hunk(
        int(old_start),
        int(old_count) if old_count is not None else 1,
        int(new_start),
        int(new_count) if new_count is not None else 1,
        section_header or "",
    )

    old_line = hunk.source_start
    new_line = hunk.target_start

    for diff_line_no, raw in enumerate(raw_lines[1:], start=2):
        if raw.startswith(LINE_TYPE_NO_NEWLINE):
            # "\ No newline at end of file" annotates the previous line only
            continue

        line_type = raw[:1] if raw else LINE_TYPE_CONTEXT
        if line_type not in _BODY_LINE_TYPES:
            raise HunkParseError(f"invalid diff hunk line {diff_line_no}: {raw[:80]!r}")
        value = raw[1:]

        if line_type == LINE_TYPE_ADDED:
            hunk.append(Line(value, line_type, target_line_no=new_line, diff_line_no=diff_line_no))
            new_line += 1
        elif line_type == LINE_TYPE_REMOVED:
            hunk.append(Line(value, line_type, source_line_no=old_line, diff_line_no=diff_line_no))
            old_line += 1
        else:
            hunk.append(Line(value, line_type, source_line_no=old_line,
                             target_line_no=new_line, diff_line_no=diff_line_no))
            old_line += 1
            new_line += 1

    return hunk


def get_added_lines(hunk_text: str) -> List[str]:
    """
    Returns the text of every added ('+') line of a hunk, in order.

    This is the content the reviewed revision had at the comment location, and
    therefore what we expect to find (and replace) in the local file. An empty
    list means the hunk is a pure deletion or could not be parsed.
    """
    try:
        hunk = parse_hunk(hunk_text)
    except HunkParseError as e:
        logger.debug(f"Cannot extract added lines from hunk: {e}")
        return []
    return [line.value for line in hunk if line.is_added]


def first_added_line(hunk: Hunk):
    """Returns the first added Line of a parsed hunk, or None."""
    return next((line for line in hunk if line.is_added), None)


def zero_based(line_number: int) -> int:
    """Converts a 1-based file line number to a list index. Callers must bound-check."""
    return line_number - 1
