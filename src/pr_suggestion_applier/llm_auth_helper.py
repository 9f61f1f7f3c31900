# src/pr_suggestion_applier/llm_auth_helper.py
import os
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .app_config import AppConfig

logger = logging.getLogger(__name__)


def setup_litellm_provider_env(config: 'AppConfig') -> None:
    """
    Exports provider-specific environment variables that LiteLLM reads on its own.
    API key, base URL and API version are passed straight to litellm.completion()
    by the provider, so only project/region style settings are handled here.
    """
    if not config.ai_model:
        logger.debug("No AI model configured, skipping LiteLLM provider environment setup.")
        return

    model = config.ai_model.lower()
    provider_part = model.split('/')[0] if "/" in model else ""

    # --- Vertex AI ---
    if provider_part == "vertex_ai" or "vertex_ai" in model:
        if config.vertex_project:
            os.environ["VERTEXAI_PROJECT"] = config.vertex_project
            logger.info(f"Set VERTEXAI_PROJECT to '{config.vertex_project}'")
        else:
            logger.info("PRSUGGEST_VERTEXAI_PROJECT not set. Relying on gcloud ADC defaults for the Vertex AI project.")
        if config.vertex_location:
            os.environ["VERTEXAI_LOCATION"] = config.vertex_location
            logger.info(f"Set VERTEXAI_LOCATION to '{config.vertex_location}'")

    # --- AWS Bedrock ---
    if provider_part == "bedrock":
        if config.aws_region_name:
            os.environ["AWS_REGION_NAME"] = config.aws_region_name
            os.environ["AWS_DEFAULT_REGION"] = config.aws_region_name
            logger.info(f"Set AWS_REGION_NAME/AWS_DEFAULT_REGION to '{config.aws_region_name}' for Bedrock.")
        else:
            logger.info("PRSUGGEST_AWS_REGION_NAME not set. Relying on default AWS SDK configuration for Bedrock region.")

    # --- Azure OpenAI ---
    if provider_part == "azure" and not config.azure_api_version:
        logger.warning("Azure model configured but PRSUGGEST_AZURE_API_VERSION is not set. "
                       "This is usually required for Azure OpenAI calls.")
