# src/pr_suggestion_applier/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class DiffSide(str, Enum):
    """Which revision a review comment's line number refers to."""
    LEFT = "LEFT"   # old file
    RIGHT = "RIGHT" # new file


class MatchStrategy(str, Enum):
    POSITION = "position"
    CONTENT = "content"


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    DELEGATED_TO_AI = "delegated_to_ai"


@dataclass
class ThreadComment:
    """A reply inside a review thread."""
    id: int
    body: str
    author: str = ""
    html_url: str = ""


@dataclass
class ReviewComment:
    """
    A top-level pull request review comment, as fetched from the SCM.
    Only the subset used by the apply engine is required.
    """
    id: int
    path: str
    line: int # Line number in the new file (1-based), 0 when GitHub has none
    diff_hunk: str = ""
    original_line: int = 0 # Line number in the old file (1-based)
    diff_side: DiffSide = DiffSide.RIGHT
    body: str = ""
    suggested_code: str = ""
    has_suggestion: bool = False

    # Data-source extras, not consulted by the matching algorithm
    thread_id: str = "" # GraphQL node ID used to resolve the thread
    author: str = ""
    html_url: str = ""
    start_line: int = 0
    original_start_line: int = 0
    subject_type: str = ""
    is_outdated: bool = False
    thread_comments: List[ThreadComment] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.subject_type == "resolved"

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass
class PositionResult:
    """Advisory position metadata for display. Never used for matching."""
    is_outdated: bool = False


@dataclass
class MatchOutcome:
    """Where a suggestion's expected lines were found in the current file."""
    strategy: MatchStrategy
    target_index: int # 0-based index of the first line to replace
    replace_count: int


@dataclass
class ApplyResult:
    """Terminal state of one suggestion."""
    comment: ReviewComment
    status: ApplyStatus
    reason: str = ""
    error_kind: Optional[str] = None # Exception class name on failure
    outcome: Optional[MatchOutcome] = None
    diagnostic_path: Optional[str] = None
    fatal: bool = False # A write failure; the batch stops here

    @property
    def succeeded(self) -> bool:
        return self.status in (ApplyStatus.APPLIED, ApplyStatus.DELEGATED_TO_AI)


@dataclass
class ApplySummary:
    applied: int = 0
    failed: int = 0
    results: List[ApplyResult] = field(default_factory=list)
    aborted: bool = False

    def record(self, result: ApplyResult) -> None:
        self.results.append(result)
        if result.succeeded:
            self.applied += 1
        else:
            self.failed += 1

    @property
    def total(self) -> int:
        return len(self.results)


@dataclass
class SuggestionRequest:
    """Everything an AI provider gets to produce a patch for one suggestion."""
    review_comment: str
    suggested_code: str
    original_diff_hunk: str
    comment_id: int
    file_path: str
    current_file_content: str
    target_line_number: int # 0-based best guess
    expected_lines: List[str] = field(default_factory=list)
    file_language: str = "unknown"


@dataclass
class SuggestionResponse:
    patch: str
    explanation: str = ""
    confidence: float = 0.0
    warnings: List[str] = field(default_factory=list)
