# src/pr_suggestion_applier/app_config.py
import os
from dataclasses import dataclass, field
from typing import Optional, List

# Default values for optional parameters
DEFAULT_AI_PROVIDER = "litellm"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 4096
DEFAULT_AI_TIMEOUT = 120.0
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_LOG_LEVEL = "INFO"


def _split_patterns(value: str) -> List[str]:
    return [p.strip() for p in value.split(',') if p.strip()]


@dataclass
class AppConfig:
    """
    Holds all configuration for applying review suggestions,
    sourced from PRSUGGEST_ prefixed environment variables and overridden by CLI flags.
    """

    # --- AI Provider Settings ---
    ai_provider: str = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AI_PROVIDER", DEFAULT_AI_PROVIDER).lower()
    )
    ai_model: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AI_MODEL")
    )
    ai_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AI_API_KEY")
    )
    ai_api_base: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AI_API_BASE")
    )
    ai_template_path: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AI_TEMPLATE")
    )
    ai_timeout: float = field(
        default_factory=lambda: float(os.getenv("PRSUGGEST_AI_TIMEOUT", str(DEFAULT_AI_TIMEOUT)))
    )
    temperature: float = field(
        default_factory=lambda: float(os.getenv("PRSUGGEST_TEMPERATURE", str(DEFAULT_TEMPERATURE)))
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.getenv("PRSUGGEST_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)))
    )

    # --- Optional Provider-Specific Configuration ---
    azure_api_version: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AZURE_API_VERSION")
    )
    vertex_project: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_VERTEXAI_PROJECT")
    )
    vertex_location: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_VERTEXAI_LOCATION")
    )
    aws_region_name: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_AWS_REGION_NAME")
    )

    # --- GitHub Settings ---
    github_token: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_GITHUB_TOKEN") or os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
    )
    github_api_url: str = field(
        default_factory=lambda: os.getenv("PRSUGGEST_GITHUB_API_URL", DEFAULT_GITHUB_API_URL).rstrip('/')
    )
    repo: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_REPO")
    ) # "owner/name"; resolved from the git remote when unset

    # --- Apply Behavior ---
    diagnostic_dir: Optional[str] = field(
        default_factory=lambda: os.getenv("PRSUGGEST_DIAGNOSTIC_DIR")
    ) # Defaults to the platform temp directory
    include_patterns: List[str] = field(
        default_factory=lambda: _split_patterns(os.getenv("PRSUGGEST_INCLUDE_PATTERNS", ""))
    )
    exclude_patterns: List[str] = field(
        default_factory=lambda: _split_patterns(os.getenv("PRSUGGEST_EXCLUDE_PATTERNS", ""))
    )
    log_level: str = field(
        default_factory=lambda: os.getenv("PRSUGGEST_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    )

    def __post_init__(self):
        if not self.github_token:
            print("WARN: [AppConfig] No GitHub token found (PRSUGGEST_GITHUB_TOKEN / GITHUB_TOKEN / GH_TOKEN).")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            print(f"WARN: [AppConfig] Invalid PRSUGGEST_LOG_LEVEL '{self.log_level}'. Defaulting to '{DEFAULT_LOG_LEVEL}'.")
            self.log_level = DEFAULT_LOG_LEVEL

    @property
    def ai_configured(self) -> bool:
        return bool(self.ai_model)


def load_app_config() -> AppConfig:
    """
    Factory function to create and return an AppConfig instance.
    """
    return AppConfig()
