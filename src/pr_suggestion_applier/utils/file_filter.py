from typing import List, Optional, Sequence

from pathspec import PathSpec
from pathspec.patterns.gitwildmatch import GitWildMatchPattern

from ..models import ReviewComment


def _build_spec(patterns: Optional[Sequence[str]]) -> Optional[PathSpec]:
    if not patterns:
        return None
    return PathSpec.from_lines(GitWildMatchPattern, patterns)


def filter_comments_by_patterns(
    comments: Sequence[ReviewComment],
    include_patterns: Optional[Sequence[str]] = None,
    exclude_patterns: Optional[Sequence[str]] = None
) -> List[ReviewComment]:
    """
    Filter review comments by the path they are attached to.

    Args:
        comments: Review comments to filter
        include_patterns: Optional list of patterns to include (git-style patterns)
        exclude_patterns: Optional list of patterns to exclude (git-style patterns)

    Returns:
        Comments whose path matches an include pattern (or all, when there are none)
        and no exclude pattern, in their original order
    """
    if not comments:
        return []

    include_spec = _build_spec(include_patterns)
    exclude_spec = _build_spec(exclude_patterns)

    # No include patterns means include everything
    if include_spec:
        included = [c for c in comments if include_spec.match_file(c.path)]
    else:
        included = list(comments)

    if exclude_spec:
        return [c for c in included if not exclude_spec.match_file(c.path)]

    return included
