"""Build pydantic-ai models from a `ModelConfig`.

Usage:
    from services.analysis.model_factory import build_model, build_model_settings

    model = build_model(config)
    settings = build_model_settings(config)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel, OpenAIChatModelSettings
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from core.config import Settings, get_settings
from services.analysis.config_source import ModelConfig
from services.analysis.exceptions import ProviderConfigurationError


if TYPE_CHECKING:
    from httpx import AsyncClient

# OpenAI reasoning models: no temperature/top_p, low reasoning effort
REASONING_MODELS = {
    "gpt-5",
    "gpt-5-mini",
    "gpt-5-nano",
    "o1",
    "o1-mini",
    "o3",
    "o3-mini",
    "o4-mini",
}

logger = logging.getLogger(__name__)


def _normalize_azure_endpoint(endpoint: str) -> str:
    """Strip trailing slashes; Azure 404s on `//openai/...` paths."""
    return endpoint.rstrip("/")


def is_reasoning_model(model_name: str) -> bool:
    return model_name in REASONING_MODELS


def _create_openai_model(
    config: ModelConfig,
    settings: Settings,
    http_client: AsyncClient | None = None,
) -> Model:
    if not settings.OPENAI_API_KEY:
        logger.warning("LLM provider openai selected but OPENAI_API_KEY is missing")
        raise ProviderConfigurationError("OPENAI_API_KEY is not configured")

    provider = OpenAIProvider(api_key=settings.OPENAI_API_KEY, http_client=http_client)
    return _openai_chat_model(config.model_name, provider)


def _create_azure_model(
    config: ModelConfig,
    settings: Settings,
    http_client: AsyncClient | None = None,
) -> Model:
    if (
        not settings.AZURE_OPENAI_ENDPOINT
        or not settings.AZURE_OPENAI_API_KEY
        or not settings.AZURE_OPENAI_API_VERSION
    ):
        logger.warning("LLM provider azure_openai selected but credentials are missing")
        raise ProviderConfigurationError(
            "Azure OpenAI requires AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY "
            "and AZURE_OPENAI_API_VERSION"
        )

    from openai import AsyncAzureOpenAI

    azure_client = AsyncAzureOpenAI(
        azure_endpoint=_normalize_azure_endpoint(settings.AZURE_OPENAI_ENDPOINT),
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        http_client=http_client,
    )
    return _openai_chat_model(config.model_name, OpenAIProvider(openai_client=azure_client))


def _openai_chat_model(model_name: str, provider: OpenAIProvider) -> Model:
    if is_reasoning_model(model_name):
        logger.info("Applying low reasoning effort for reasoning model: %s", model_name)
        return OpenAIChatModel(
            model_name,
            provider=provider,
            settings=OpenAIChatModelSettings(openai_reasoning_effort="low"),
        )
    return OpenAIChatModel(model_name, provider=provider)


def _create_gemini_model(
    config: ModelConfig,
    settings: Settings,
    http_client: AsyncClient | None = None,
) -> Model:
    if not settings.GEMINI_API_KEY:
        logger.warning("LLM provider gemini selected but GEMINI_API_KEY is missing")
        raise ProviderConfigurationError("GEMINI_API_KEY is not configured")

    provider = GoogleProvider(api_key=settings.GEMINI_API_KEY, http_client=http_client)
    return cast(Model, GoogleModel(config.model_name, provider=provider))


_BUILDERS = {
    "openai": _create_openai_model,
    "azure_openai": _create_azure_model,
    "gemini": _create_gemini_model,
}


def build_model(
    config: ModelConfig,
    settings: Settings | None = None,
    http_client: AsyncClient | None = None,
) -> Model:
    """Create the pydantic-ai model named by `config`.

    Args:
        config: Provider and model selection.
        settings: Credentials source; defaults to `get_settings()`.
        http_client: Optional shared HTTP client.

    Raises:
        ProviderConfigurationError: Credentials for the provider are missing.
    """
    settings = settings or get_settings()
    logger.info("Building %s model %s", config.provider, config.model_name)
    return _BUILDERS[config.provider](config, settings, http_client)


def build_model_settings(config: ModelConfig) -> ModelSettings:
    """Sampling parameters for a run, minus those reasoning models reject."""
    model_settings = ModelSettings(max_tokens=config.max_tokens)
    if not is_reasoning_model(config.model_name):
        model_settings["temperature"] = config.temperature
        model_settings["top_p"] = config.top_p
    return model_settings
