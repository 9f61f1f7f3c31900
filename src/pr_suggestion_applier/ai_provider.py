# src/pr_suggestion_applier/ai_provider.py
import json
import logging
import importlib.resources # For loading prompt from package data
from abc import ABC, abstractmethod
from string import Template
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import litellm  # type: ignore

from .exceptions import ProviderError
from .models import SuggestionRequest, SuggestionResponse

if TYPE_CHECKING:
    from .app_config import AppConfig

logger = logging.getLogger(__name__)

FALLBACK_PROMPT = (
    "Apply this review suggestion to ${file_path} and answer with JSON "
    '{"patch": "...", "explanation": "...", "confidence": 0.0, "warnings": []}.\n'
    "Suggestion:\n${suggested_code}\nCurrent file:\n${current_file_content}"
)


class AIProvider(ABC):
    """
    Interface for AI backends that turn a review suggestion into a unified diff.
    The applier only ever talks to this interface.
    """

    @abstractmethod
    def name(self) -> str:
        """Short provider identifier, e.g. "litellm"."""

    @abstractmethod
    def model(self) -> str:
        """Model identifier used for requests."""

    @abstractmethod
    def apply_suggestion(self, request: SuggestionRequest, timeout: Optional[float] = None) -> SuggestionResponse:
        """
        Produces a patch for the request.

        Raises:
            ProviderError: if the call fails, times out or the response is unusable.
        """


def _strip_code_fence(text: str) -> str:
    """Removes a markdown code fence wrapped around a model response, if any."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        newline_pos = cleaned.find("\n")
        if newline_pos == -1:
            return ""
        cleaned = cleaned[newline_pos + 1:]
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3].rstrip()
    return cleaned


def parse_suggestion_response(content: str) -> SuggestionResponse:
    """Parses the JSON object a model returns into a SuggestionResponse."""
    try:
        data = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as e:
        logger.error(f"LLM Raw Response Content that failed parsing: {content[:1000]}...")
        raise ProviderError(f"AI response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProviderError("AI response is not a JSON object")

    patch = data.get("patch")
    if not isinstance(patch, str) or not patch.strip():
        raise ProviderError("AI response does not contain a patch")
    if not patch.endswith("\n"):
        patch += "\n" # git apply rejects a patch whose last line is unterminated

    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        logger.warning(f"Invalid confidence value in AI response: {data.get('confidence')!r}")
        confidence = 0.0

    warnings = data.get("warnings") or []
    if not isinstance(warnings, list):
        warnings = [str(warnings)]

    return SuggestionResponse(
        patch=patch,
        explanation=str(data.get("explanation", "")),
        confidence=min(max(confidence, 0.0), 1.0),
        warnings=[str(w) for w in warnings],
    )


def _number_lines(content: str) -> str:
    return "\n".join(f"{i:>5} | {line}" for i, line in enumerate(content.split("\n"), start=1))


class LiteLLMProvider(AIProvider):
    """AI provider backed by LiteLLM, so any model LiteLLM can route to works."""

    def __init__(self, config: 'AppConfig'):
        """
        Initializes the provider.

        Args:
            config: The application configuration object. ai_model must be set.
        """
        if not config.ai_model:
            raise ProviderError("AI model is not configured (PRSUGGEST_AI_MODEL or --ai-model)")
        self.config = config
        self.prompt_template: Template = self._load_prompt_template()

    def name(self) -> str:
        return "litellm"

    def model(self) -> str:
        return self.config.ai_model

    def _load_prompt_template(self) -> Template:
        """Loads the prompt template from the configured path or the packaged default."""
        if self.config.ai_template_path:
            try:
                with open(self.config.ai_template_path, 'r', encoding='utf-8') as f:
                    logger.info(f"Using custom prompt template: {self.config.ai_template_path}")
                    return Template(f.read())
            except OSError as e:
                raise ProviderError(f"Cannot read prompt template {self.config.ai_template_path}: {e}") from e

        try:
            prompt_file_ref = importlib.resources.files('pr_suggestion_applier.prompts').joinpath('default_apply_prompt.txt')
            prompt_template_str = prompt_file_ref.read_text(encoding='utf-8')
        except FileNotFoundError:
            logger.error("Prompt template file 'default_apply_prompt.txt' not found in package.")
            prompt_template_str = FALLBACK_PROMPT
        return Template(prompt_template_str)

    def _create_prompt_messages(self, request: SuggestionRequest) -> List[Dict[str, str]]:
        try:
            prompt = self.prompt_template.substitute(
                file_path=request.file_path,
                file_language=request.file_language,
                comment_id=request.comment_id,
                review_comment=request.review_comment,
                suggested_code=request.suggested_code,
                original_diff_hunk=request.original_diff_hunk,
                expected_lines="\n".join(request.expected_lines) or "(none)",
                target_line=request.target_line_number + 1,
                current_file_content=_number_lines(request.current_file_content),
            )
        except (KeyError, ValueError) as e:
            raise ProviderError(f"Invalid placeholder in prompt template: {e}") from e

        return [
            {"role": "system", "content": prompt},
            {"role": "user", "content": "Generate the patch now. Respond with the JSON object only."},
        ]

    def apply_suggestion(self, request: SuggestionRequest, timeout: Optional[float] = None) -> SuggestionResponse:
        messages = self._create_prompt_messages(request)

        kwargs_for_litellm: Dict[str, Any] = {
            "model": self.config.ai_model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "timeout": timeout if timeout is not None else self.config.ai_timeout,
        }
        if self.config.ai_api_key:
            kwargs_for_litellm["api_key"] = self.config.ai_api_key
        if self.config.ai_api_base:
            kwargs_for_litellm["api_base"] = self.config.ai_api_base
        if self.config.azure_api_version and "azure" in self.config.ai_model.lower():
            kwargs_for_litellm["api_version"] = self.config.azure_api_version

        logger.info(f"Requesting patch from {self.config.ai_model} for {request.file_path} (comment {request.comment_id})")
        if logger.isEnabledFor(logging.DEBUG):
            debug_kwargs = {k: (v if k not in ("messages", "api_key") else "[TRUNCATED]") for k, v in kwargs_for_litellm.items()}
            logger.debug(f"LiteLLM Request kwargs: {json.dumps(debug_kwargs, indent=2, default=str)}")

        try:
            response = litellm.completion(**kwargs_for_litellm)
        except litellm.exceptions.Timeout as e: # type: ignore
            raise ProviderError(f"AI request timed out: {e}") from e
        except litellm.exceptions.RateLimitError as e: # type: ignore
            raise ProviderError(f"AI rate limit exceeded: {e}") from e
        except litellm.exceptions.APIConnectionError as e: # type: ignore
            raise ProviderError(f"AI API connection error: {e}") from e
        except litellm.exceptions.APIError as e: # type: ignore
            raise ProviderError(f"AI API error (status {getattr(e, 'status_code', 'N/A')}): {e}") from e
        except Exception as e:
            raise ProviderError(f"Unexpected error calling AI provider: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderError("AI response structure not as expected") from e
        if not content or not content.strip():
            raise ProviderError("AI returned empty content")

        logger.debug(f"LLM response content to parse: {content}")
        return parse_suggestion_response(content)


PROVIDERS: Dict[str, Callable[['AppConfig'], AIProvider]] = {
    "litellm": LiteLLMProvider,
}


def get_ai_provider(config: 'AppConfig') -> AIProvider:
    """Instantiates the provider selected by config.ai_provider."""
    factory = PROVIDERS.get(config.ai_provider)
    if factory is None:
        raise ProviderError(f"Unsupported AI provider: {config.ai_provider} (available: {', '.join(sorted(PROVIDERS))})")
    return factory(config)
