# src/pr_suggestion_applier/suggestion_parser.py
import re
from typing import Pattern

# Opening fence is the literal, case-sensitive "```suggestion", optionally
# followed by spaces/tabs, then a line break. The block ends at the next "```".
SUGGESTION_BLOCK_RE: Pattern = re.compile(r"```suggestion[ \t]*\r?\n(.*?)```", re.DOTALL)
IMAGE_MARKDOWN_RE: Pattern = re.compile(r"!\[.*?\]\(.*?\)")


def has_suggestion(body: str, pattern: Pattern = SUGGESTION_BLOCK_RE) -> bool:
    """True when the body contains a suggestion block, even an empty one."""
    return bool(body) and pattern.search(body) is not None


def extract_suggestion(body: str, pattern: Pattern = SUGGESTION_BLOCK_RE) -> str:
    """
    Extracts the replacement text of the first suggestion block in a comment body.

    Only the first block is used when a comment has several. The newline that
    ends the opening fence and the one before the closing fence are removed;
    everything else, indentation included, is returned verbatim.

    Returns:
        The suggested code, or "" when the body has no suggestion block.
    """
    if not body:
        return ""
    match = pattern.search(body)
    if not match:
        return ""
    code = match.group(1)
    if code.endswith("\r\n"):
        return code[:-2]
    if code.endswith("\n"):
        return code[:-1]
    return code


def strip_suggestion_block(body: str, pattern: Pattern = SUGGESTION_BLOCK_RE) -> str:
    """Removes suggestion blocks and markdown images, leaving the prose of a comment."""
    result = (body or "").strip()
    result = pattern.sub("", result)
    result = IMAGE_MARKDOWN_RE.sub("", result)
    return result.strip()
