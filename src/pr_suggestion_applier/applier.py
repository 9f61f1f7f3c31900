# src/pr_suggestion_applier/applier.py
import logging
import os
import stat
import subprocess
import tempfile
from typing import Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from .diagnostics import save_failed_ai_patch, save_mismatch_diff
from .diff_parser import get_added_lines
from .exceptions import (
    ContentMismatchError,
    NoAddedLinesError,
    NotFoundError,
    PatchApplyError,
    ProviderError,
    SuggestionApplyError,
    WriteError,
)
from .matching import (
    MATCH_STRATEGIES,
    MatchStrategyFunc,
    candidate_location,
    find_replacement_target,
    first_mismatch,
)
from .models import (
    ApplyResult,
    ApplyStatus,
    ApplySummary,
    MatchOutcome,
    ReviewComment,
    SuggestionRequest,
)
from .utils.language import detect_language

if TYPE_CHECKING:
    from .ai_provider import AIProvider

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644
GIT_APPLY_TIMEOUT = 60

# Direct failures that an AI provider may still be able to handle
AI_RECOVERABLE_ERRORS = (NoAddedLinesError, NotFoundError, ContentMismatchError)


def split_lines(content: str) -> Tuple[List[str], List[str], str]:
    """
    Splits file content into lines, keeping each line's own terminator.

    Returns:
        (lines, terminators, newline). terminators[i] is "\\r\\n", "\\n", or ""
        for a last line without one. newline is what inserted lines get:
        "\\r\\n" when the file uses it anywhere, "\\n" otherwise.
    """
    newline = "\r\n" if "\r\n" in content else "\n"
    lines: List[str] = []
    terminators: List[str] = []
    parts = content.split("\n")
    for part in parts[:-1]:
        if part.endswith("\r"):
            lines.append(part[:-1])
            terminators.append("\r\n")
        else:
            lines.append(part)
            terminators.append("\n")
    if parts[-1]:
        lines.append(parts[-1])
        terminators.append("")
    return lines, terminators, newline


def join_lines(lines: Sequence[str], terminators: Sequence[str]) -> str:
    return "".join(line + terminator for line, terminator in zip(lines, terminators))


def suggestion_lines(suggested_code: str) -> List[str]:
    """Lines of a suggestion, without its one trailing newline. An empty suggestion deletes."""
    code = suggested_code.replace("\r\n", "\n")
    if not code:
        return []
    if code.endswith("\n"):
        code = code[:-1]
    return code.split("\n")


def replace_block(
    lines: Sequence[str],
    terminators: Sequence[str],
    start: int,
    count: int,
    replacement: Sequence[str],
    newline: str = "\n",
) -> Tuple[List[str], List[str]]:
    """
    Replaces lines[start:start + count]. Replacement lines reuse the replaced
    lines' terminators; extra lines get newline, and the last one inherits the
    block's final terminator so a missing newline at end of file stays missing.
    """
    end = start + count
    block = list(terminators[start:end])
    new_terminators = [block[i] if i < len(block) - 1 else newline for i in range(len(replacement))]
    if new_terminators:
        new_terminators[-1] = block[-1]

    head_terminators = list(terminators[:start])
    if not replacement and end == len(lines) and head_terminators and block and not block[-1]:
        # Deleting the unterminated last line moves end-of-file up
        head_terminators[-1] = ""

    return (
        list(lines[:start]) + list(replacement) + list(lines[end:]),
        head_terminators + new_terminators + list(terminators[end:]),
    )


class Applier:
    """
    Applies review suggestions to files in the local working copy.

    Each suggestion is read, matched, verified and written before the next one
    is looked at, so suggestions on the same file always match against what the
    previous ones left on disk.
    """

    def __init__(
        self,
        ai_provider: Optional['AIProvider'] = None,
        thread_resolver=None,
        repo_root: Optional[str] = None,
        diagnostic_dir: Optional[str] = None,
        auto_resolve: bool = False,
        ai_fallback: bool = False,
        ai_timeout: Optional[float] = None,
        strategies: Sequence[MatchStrategyFunc] = MATCH_STRATEGIES,
    ):
        """
        Args:
            ai_provider: Optional AIProvider used by apply_with_ai() and the AI fallback.
            thread_resolver: Optional object with resolve_thread(thread_id), e.g. GitHubClient.
            repo_root: Directory comment paths are relative to. Defaults to the current directory.
            diagnostic_dir: Where diagnostic artifacts go. Defaults to the platform temp dir.
            auto_resolve: Resolve the review thread after a successful application.
            ai_fallback: Delegate to the AI provider when direct matching fails.
            ai_timeout: Timeout in seconds passed to the AI provider.
            strategies: Ordered matching strategies.
        """
        self.ai_provider = ai_provider
        self.thread_resolver = thread_resolver
        self.repo_root = repo_root or os.getcwd()
        self.diagnostic_dir = diagnostic_dir
        self.auto_resolve = auto_resolve
        self.ai_fallback = ai_fallback
        self.ai_timeout = ai_timeout
        self.strategies = tuple(strategies)

    # --- Batch entry points ---

    def apply_all(self, comments: Sequence[ReviewComment]) -> ApplySummary:
        """Applies every suggestion in order; a failure never stops the batch unless it is a write failure."""
        return self._run_batch(comments, self.apply_suggestion)

    def apply_all_with_ai(self, comments: Sequence[ReviewComment]) -> ApplySummary:
        """Applies every suggestion through the AI provider."""
        if self.ai_provider is None:
            raise ProviderError("AI provider not configured")
        return self._run_batch(comments, self.apply_with_ai)

    def _run_batch(self, comments: Sequence[ReviewComment],
                   apply_fn: Callable[[ReviewComment], ApplyResult]) -> ApplySummary:
        summary = ApplySummary()
        for comment in comments:
            result = apply_fn(comment)
            summary.record(result)
            if result.succeeded:
                via = " (via AI)" if result.status == ApplyStatus.DELEGATED_TO_AI else ""
                logger.info(f"Applied suggestion to {comment.location}{via}")
            else:
                logger.error(f"Failed to apply suggestion for {comment.location}: {result.reason}")
            if result.fatal:
                logger.error("Write failure, not processing the remaining suggestions.")
                summary.aborted = True
                break
        logger.info(f"Applied {summary.applied}/{len(comments)} suggestions ({summary.failed} failed)")
        return summary

    # --- Single suggestion ---

    def apply_suggestion(self, comment: ReviewComment) -> ApplyResult:
        """
        Applies one suggestion by direct textual replacement, falling back to the
        AI provider when enabled. Never raises for per-suggestion failures.
        """
        logger.debug(f"Applying suggestion for comment ID={comment.id}, Path={comment.path}, Line={comment.line}")
        try:
            outcome = self._apply_direct(comment)
        except SuggestionApplyError as e:
            if self.ai_fallback and self.ai_provider is not None and isinstance(e, AI_RECOVERABLE_ERRORS):
                logger.info(f"Direct application failed for {comment.location} ({e}); delegating to AI.")
                result = self.apply_with_ai(comment)
                if not result.succeeded:
                    result.reason = f"{e}; AI fallback failed: {result.reason}"
                    result.diagnostic_path = result.diagnostic_path or e.diagnostic_path
                return result
            return self._failure(comment, e)

        self._resolve_thread(comment)
        return ApplyResult(
            comment=comment,
            status=ApplyStatus.APPLIED,
            reason=f"replaced {outcome.replace_count} line(s) at line {outcome.target_index + 1} ({outcome.strategy.value} match)",
            outcome=outcome,
        )

    def _apply_direct(self, comment: ReviewComment) -> MatchOutcome:
        if not comment.has_suggestion and not comment.suggested_code:
            raise SuggestionApplyError("comment has no suggestion block")

        path = self._full_path(comment.path)
        content = self._read_file(path)
        file_lines, terminators, newline = split_lines(content)

        added_lines = get_added_lines(comment.diff_hunk)
        if not added_lines:
            raise NoAddedLinesError("no added lines found in diff hunk - cannot determine what to replace")

        outcome = find_replacement_target(file_lines, added_lines, comment.diff_hunk, self.strategies)
        if outcome is None:
            candidate = candidate_location(file_lines, comment.diff_hunk, comment.line)
            mismatch_line = first_mismatch(file_lines, candidate, added_lines) or candidate + 1
            diagnostic = save_mismatch_diff(comment, file_lines, candidate, added_lines, mismatch_line,
                                            self.diagnostic_dir)
            raise NotFoundError(
                f"could not find the code to replace in current file "
                f"(looking for {len(added_lines)} lines starting with {added_lines[0]!r})",
                diagnostic,
            )

        # Verify once more right before mutating anything
        mismatch_line = first_mismatch(file_lines, outcome.target_index, added_lines)
        if mismatch_line is not None:
            diagnostic = save_mismatch_diff(comment, file_lines, outcome.target_index, added_lines, mismatch_line,
                                            self.diagnostic_dir)
            raise ContentMismatchError(
                f"content mismatch at line {mismatch_line} - the code may have changed since the review",
                diagnostic,
            )

        logger.debug(f"Replacing {outcome.replace_count} lines starting at line {outcome.target_index + 1} "
                     f"({outcome.strategy.value} match)")
        new_lines, new_terminators = replace_block(file_lines, terminators, outcome.target_index,
                                                   outcome.replace_count,
                                                   suggestion_lines(comment.suggested_code), newline)
        self._write_file(path, join_lines(new_lines, new_terminators))
        return outcome

    # --- AI delegation ---

    def apply_with_ai(self, comment: ReviewComment) -> ApplyResult:
        """Asks the AI provider for a patch and applies it with git apply. Never retried."""
        if self.ai_provider is None:
            return self._failure(comment, ProviderError("AI provider not configured"))
        try:
            self._apply_with_ai(comment)
        except SuggestionApplyError as e:
            return self._failure(comment, e)

        self._resolve_thread(comment)
        return ApplyResult(
            comment=comment,
            status=ApplyStatus.DELEGATED_TO_AI,
            reason=f"applied patch from {self.ai_provider.name()}/{self.ai_provider.model()}",
        )

    def _apply_with_ai(self, comment: ReviewComment) -> None:
        content = self._read_file(self._full_path(comment.path))
        request = SuggestionRequest(
            review_comment=comment.body,
            suggested_code=comment.suggested_code,
            original_diff_hunk=comment.diff_hunk,
            comment_id=comment.id,
            file_path=comment.path,
            current_file_content=content,
            target_line_number=max(comment.line - 1, 0),
            expected_lines=get_added_lines(comment.diff_hunk),
            file_language=detect_language(comment.path),
        )

        provider_name = self.ai_provider.name()
        logger.info(f"Using AI to apply suggestion for {comment.location} ({provider_name}/{self.ai_provider.model()})...")
        try:
            response = self.ai_provider.apply_suggestion(request, timeout=self.ai_timeout)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"AI provider error: {e}") from e

        logger.info(f"AI analysis: {response.explanation}")
        for warning in response.warnings:
            logger.warning(f"AI warning for {comment.location}: {warning}")
        logger.info(f"AI confidence: {response.confidence * 100:.0f}%")
        logger.debug(f"AI-generated patch:\n{response.patch}")

        applied, output = self._git_apply(response.patch)
        if not applied:
            diagnostic = save_failed_ai_patch(comment, provider_name, response, "git apply failed", output,
                                              self.diagnostic_dir)
            raise PatchApplyError(f"failed to apply AI-generated patch: {output.strip() or 'git apply failed'}",
                                  diagnostic)

    def _git_apply(self, patch: str) -> Tuple[bool, str]:
        """Applies a patch with exact context (no fuzz). Returns (success, combined output)."""
        try:
            result = subprocess.run(
                ["git", "apply", "--unidiff-zero", "-"],
                input=patch,
                capture_output=True,
                text=True,
                cwd=self.repo_root,
                timeout=GIT_APPLY_TIMEOUT,
            )
        except FileNotFoundError:
            return False, "'git' command not found"
        except subprocess.TimeoutExpired:
            return False, f"git apply timed out after {GIT_APPLY_TIMEOUT}s"
        return result.returncode == 0, (result.stdout or "") + (result.stderr or "")

    # --- Helpers ---

    def _resolve_thread(self, comment: ReviewComment) -> None:
        if not self.auto_resolve or self.thread_resolver is None:
            return
        if not comment.thread_id or comment.is_resolved:
            return
        try:
            self.thread_resolver.resolve_thread(comment.thread_id)
        except Exception as e:
            logger.warning(f"Failed to auto-resolve thread for {comment.location}: {e}")
            return
        comment.subject_type = "resolved"
        logger.info(f"Review thread for {comment.location} marked as resolved")

    def _failure(self, comment: ReviewComment, error: SuggestionApplyError) -> ApplyResult:
        return ApplyResult(
            comment=comment,
            status=ApplyStatus.FAILED,
            reason=str(error),
            error_kind=type(error).__name__,
            diagnostic_path=error.diagnostic_path,
            fatal=isinstance(error, WriteError),
        )

    def _full_path(self, path: str) -> str:
        return os.path.join(self.repo_root, path)

    @staticmethod
    def _read_file(path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise SuggestionApplyError(f"failed to read file {path}: {e}") from e

    @staticmethod
    def _write_file(path: str, content: str) -> None:
        """Writes through a temp file in the same directory, keeping the original permission bits."""
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
        except OSError:
            mode = DEFAULT_FILE_MODE

        directory = os.path.dirname(os.path.abspath(path))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise WriteError(f"failed to write file {path}: {e}") from e
