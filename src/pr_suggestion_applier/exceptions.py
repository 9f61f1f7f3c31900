"""Error taxonomy for applying review suggestions.

Everything except :class:`WriteError` is recoverable per suggestion: the
batch logs it, counts a failure and moves on.
"""
from typing import Optional


class SuggestionApplyError(Exception):
    """Base class for per-suggestion failures."""

    def __init__(self, message: str, diagnostic_path: Optional[str] = None):
        super().__init__(message)
        self.diagnostic_path = diagnostic_path

    def __str__(self) -> str:
        message = super().__str__()
        if self.diagnostic_path:
            return f"{message} (diagnostic diff saved to: {self.diagnostic_path})"
        return message


class HunkParseError(SuggestionApplyError):
    """The diff hunk header or body is malformed."""


class NoAddedLinesError(SuggestionApplyError):
    """The hunk has no added lines, so there is nothing to locate."""


class NotFoundError(SuggestionApplyError):
    """No occurrence of the expected lines exists in the current file."""


class ContentMismatchError(SuggestionApplyError):
    """A matched location failed verification right before mutation."""


class WriteError(SuggestionApplyError):
    """The target file could not be written back."""


class ProviderError(SuggestionApplyError):
    """The AI provider call failed or returned an unusable response."""


class PatchApplyError(SuggestionApplyError):
    """An AI-generated patch was rejected by the exact-context apply step."""


class SCMClientError(Exception):
    """A GitHub API call failed."""
