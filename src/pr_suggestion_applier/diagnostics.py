# src/pr_suggestion_applier/diagnostics.py
import logging
import os
import tempfile
from typing import List, Optional, Sequence

from .models import ReviewComment, SuggestionResponse

logger = logging.getLogger(__name__)

TOOL_NAME = "pr-suggestion-applier"
CONTEXT_LINES = 5


def mismatch_diff_path(comment_id: int, directory: Optional[str] = None) -> str:
    return os.path.join(directory or tempfile.gettempdir(), f"{TOOL_NAME}-mismatch-{comment_id}.diff")


def ai_patch_path(comment_id: int, directory: Optional[str] = None) -> str:
    return os.path.join(directory or tempfile.gettempdir(), f"{TOOL_NAME}-ai-patch-{comment_id}.patch")


def build_mismatch_report(
    comment: ReviewComment,
    file_lines: Sequence[str],
    target: int,
    expected: Sequence[str],
    mismatch_line: int,
) -> str:
    """
    Renders what the review expected at `target` (0-based) against what the file
    actually has there, so a user can see exactly where the code diverged.

    The report is a comment-annotated unified diff: expected lines are shown as
    removed, actual lines as added, with CONTEXT_LINES of file context around them,
    followed by the suggested replacement.
    """
    out: List[str] = [
        f"# Diagnostic diff for comment ID {comment.id}",
        f"# File: {comment.path}",
        f"# Comment URL: {comment.html_url}",
        f"# Mismatch at line: {mismatch_line}",
        f"# Comment info: Line={comment.line}, OriginalLine={comment.original_line}, "
        f"DiffSide={getattr(comment.diff_side, 'value', comment.diff_side)}, IsOutdated={comment.is_outdated}",
        "#",
        "# Original diff hunk from GitHub:",
    ]
    out.extend(f"# {line}" for line in comment.diff_hunk.split("\n"))
    out.append("#")

    out.append("# EXPECTED (from GitHub review):")
    for i, line in enumerate(expected):
        number = target + i + 1
        marker = "!" if number == mismatch_line else " "
        out.append(f"# {marker} [{number}] {line}")
    out.append("#")

    out.append("# ACTUAL (current file content):")
    actual_end = min(target + len(expected), len(file_lines))
    for index in range(target, actual_end):
        number = index + 1
        marker = "!" if number == mismatch_line else " "
        out.append(f"# {marker} [{number}] {file_lines[index]}")
    out.append("#")

    out.append("# Unified diff (expected vs. actual):")
    out.append("#")
    context_start = max(0, target - CONTEXT_LINES)
    context_end = min(len(file_lines), target + len(expected) + CONTEXT_LINES)
    out.append(f"--- a/{comment.path} (expected based on review)")
    out.append(f"+++ b/{comment.path} (actual current content)")
    leading = range(context_start, min(target, len(file_lines)))
    actual = range(target, actual_end)
    trailing = range(target + len(expected), context_end)
    # Both sides of the header count the shared context lines
    old_count = len(leading) + len(expected) + len(trailing)
    new_count = len(leading) + len(actual) + len(trailing)
    out.append(f"@@ -{context_start + 1},{old_count} +{context_start + 1},{new_count} @@")
    out.extend(f" {file_lines[i]}" for i in leading)
    out.extend(f"-{line}" for line in expected)
    out.extend(f"+{file_lines[i]}" for i in actual)
    out.extend(f" {file_lines[i]}" for i in trailing)

    out.append("")
    out.append("#")
    out.append("# Suggested change from review:")
    out.append("#")
    out.extend(f"# > {line}" for line in comment.suggested_code.split("\n"))
    return "\n".join(out) + "\n"


def save_mismatch_diff(
    comment: ReviewComment,
    file_lines: Sequence[str],
    target: int,
    expected: Sequence[str],
    mismatch_line: int,
    directory: Optional[str] = None,
) -> Optional[str]:
    """Writes the mismatch report and returns its path, or None if it could not be written."""
    path = mismatch_diff_path(comment.id, directory)
    report = build_mismatch_report(comment, file_lines, target, expected, mismatch_line)
    return _write_artifact(path, report)


def build_ai_patch_report(
    comment: ReviewComment,
    provider_name: str,
    response: SuggestionResponse,
    error: str,
    apply_output: str,
) -> str:
    out = [
        f"# AI-generated patch for comment ID {comment.id}",
        f"# File: {comment.path}",
        f"# AI Provider: {provider_name}",
        f"# Confidence: {response.confidence * 100:.0f}%",
        f"# Error: {error}",
        "# git apply output:",
    ]
    out.extend(f"# {line}" for line in apply_output.split("\n"))
    out.extend(["#", "# Generated patch:", "#"])
    return "\n".join(out) + "\n" + response.patch


def save_failed_ai_patch(
    comment: ReviewComment,
    provider_name: str,
    response: SuggestionResponse,
    error: str,
    apply_output: str,
    directory: Optional[str] = None,
) -> Optional[str]:
    path = ai_patch_path(comment.id, directory)
    report = build_ai_patch_report(comment, provider_name, response, error, apply_output)
    return _write_artifact(path, report)


def _write_artifact(path: str, content: str) -> Optional[str]:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        logger.error(f"Failed to save diagnostic file {path}: {e}")
        return None
    logger.debug(f"Saved diagnostic file to: {path}")
    return path
