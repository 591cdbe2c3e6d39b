"""Provider adapters: one LLM backend behind `ProviderAdapter.stream`.

Two variants exist and `create_provider` picks one from the configuration:

- `StreamingAgentProvider` relays text deltas as the model produces them.
- `SingleShotAgentProvider` waits for the whole response and yields it as a
  single delta, for backends or deployments without incremental delivery.

Both wrap every backend failure in `ProviderError` and never retry.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING

from pydantic_ai import Agent
from pydantic_ai.messages import BinaryContent, UserContent
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from core.config import Settings
from services.analysis.config_source import ModelConfig
from services.analysis.exceptions import ProviderError
from services.analysis.interfaces import Attachment, ProviderAdapter
from services.analysis.model_factory import build_model, build_model_settings
from services.analysis.prompts import ANALYSIS_SYSTEM_PROMPT


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)


def _user_content(prompt: str, attachment: Attachment | None) -> Sequence[UserContent]:
    """Prompt first, then the document (inline for plain text)."""
    if attachment is None:
        return [prompt]
    if attachment.media_type.startswith("text/"):
        text = attachment.data.decode("utf-8", errors="replace")
        return [prompt, f"\n\nDocument:\n{text}"]
    return [prompt, BinaryContent(data=attachment.data, media_type=attachment.media_type)]


def _provider_error(exc: Exception) -> ProviderError:
    status = getattr(exc, "status_code", None)
    prefix = f"{exc.__class__.__name__}"
    if status is not None:
        prefix += f" (status {status})"
    return ProviderError(f"{prefix}: {exc}")


class _AgentProvider:
    def __init__(
        self,
        model: Model | str,
        model_settings: ModelSettings | None = None,
        system_prompt: str = ANALYSIS_SYSTEM_PROMPT,
    ) -> None:
        self._agent: Agent[None, str] = Agent(
            model, output_type=str, system_prompt=system_prompt
        )
        self._model_settings = model_settings


class StreamingAgentProvider(_AgentProvider):
    """Incremental delivery through `Agent.run_stream`."""

    async def stream(
        self, prompt: str, attachment: Attachment | None = None
    ) -> AsyncIterator[str]:
        try:
            async with self._agent.run_stream(
                _user_content(prompt, attachment), model_settings=self._model_settings
            ) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        yield delta
        except ProviderError:
            raise
        except Exception as exc:
            logger.warning("Streaming provider call failed: %s", exc.__class__.__name__)
            raise _provider_error(exc) from exc


class SingleShotAgentProvider(_AgentProvider):
    """Whole response at once, surfaced as one synthetic delta."""

    async def stream(
        self, prompt: str, attachment: Attachment | None = None
    ) -> AsyncIterator[str]:
        try:
            result = await self._agent.run(
                _user_content(prompt, attachment), model_settings=self._model_settings
            )
        except Exception as exc:
            logger.warning("Single-shot provider call failed: %s", exc.__class__.__name__)
            raise _provider_error(exc) from exc
        if result.output:
            yield result.output


def create_provider(
    config: ModelConfig,
    settings: Settings | None = None,
    http_client: AsyncClient | None = None,
) -> ProviderAdapter:
    """Build the adapter variant selected by `config.streaming`.

    Raises:
        ProviderConfigurationError: Credentials for the provider are missing.
    """
    model = build_model(config, settings, http_client)
    model_settings = build_model_settings(config)
    if config.streaming:
        return StreamingAgentProvider(model, model_settings)
    return SingleShotAgentProvider(model, model_settings)
