"""Tests for the provider adapters built on pydantic-ai agents."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from pydantic_ai import models
from pydantic_ai.messages import BinaryContent, ModelMessage, ModelResponse, TextPart, UserPromptPart
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.test import TestModel

from services.analysis.config_source import ModelConfig
from services.analysis.exceptions import ProviderConfigurationError, ProviderError
from services.analysis.interfaces import Attachment
from services.analysis.providers import (
    SingleShotAgentProvider,
    StreamingAgentProvider,
    create_provider,
)
from tests.fixtures.analysis_fixtures import SAMPLE_JSON, make_settings


# Block any real model requests in tests
models.ALLOW_MODEL_REQUESTS = False


async def drain(stream: AsyncIterator[str]) -> list[str]:
    return [delta async for delta in stream]


def user_parts(messages: list[ModelMessage]) -> list[object]:
    parts: list[object] = []
    for message in messages:
        for part in getattr(message, "parts", []):
            if isinstance(part, UserPromptPart):
                content = part.content
                parts.extend(content if isinstance(content, list) else [content])
    return parts


@pytest.mark.asyncio
class TestStreamingAgentProvider:
    async def test_deltas_concatenate_to_response(self) -> None:
        text = "one two three four five"
        provider = StreamingAgentProvider(TestModel(custom_output_text=text))

        deltas = await drain(provider.stream("Analyze"))

        assert len(deltas) > 1
        assert "".join(deltas) == text

    async def test_failure_mid_stream_raises_provider_error(self) -> None:
        async def stream_then_fail(
            _messages: list[ModelMessage], _info: AgentInfo
        ) -> AsyncIterator[str]:
            yield '{"overall_score": '
            raise ConnectionError("socket closed")

        provider = StreamingAgentProvider(FunctionModel(stream_function=stream_then_fail))

        with pytest.raises(ProviderError) as exc_info:
            await drain(provider.stream("Analyze"))

        assert exc_info.value.__cause__ is not None
        assert exc_info.value.error_code == "provider_error"


@pytest.mark.asyncio
class TestSingleShotAgentProvider:
    async def test_yields_exactly_one_delta(self) -> None:
        provider = SingleShotAgentProvider(TestModel(custom_output_text=SAMPLE_JSON))

        deltas = await drain(provider.stream("Analyze"))

        assert deltas == [SAMPLE_JSON]

    async def test_pdf_attachment_sent_as_binary_content(self) -> None:
        captured: list[list[ModelMessage]] = []

        def respond(messages: list[ModelMessage], _info: AgentInfo) -> ModelResponse:
            captured.append(messages)
            return ModelResponse(parts=[TextPart("{}")])

        provider = SingleShotAgentProvider(FunctionModel(respond))
        attachment = Attachment(data=b"%PDF-1.4", media_type="application/pdf")

        await drain(provider.stream("Analyze this", attachment))

        parts = user_parts(captured[0])
        assert parts[0] == "Analyze this"
        assert isinstance(parts[1], BinaryContent)
        assert parts[1].data == b"%PDF-1.4"

    async def test_text_attachment_inlined(self) -> None:
        captured: list[list[ModelMessage]] = []

        def respond(messages: list[ModelMessage], _info: AgentInfo) -> ModelResponse:
            captured.append(messages)
            return ModelResponse(parts=[TextPart("{}")])

        provider = SingleShotAgentProvider(FunctionModel(respond))
        attachment = Attachment(data="Jane Doe\nEngineer".encode(), media_type="text/plain")

        await drain(provider.stream("Analyze this", attachment))

        parts = user_parts(captured[0])
        assert any(isinstance(p, str) and "Jane Doe" in p for p in parts)

    async def test_failure_raises_provider_error(self) -> None:
        def explode(_messages: list[ModelMessage], _info: AgentInfo) -> ModelResponse:
            raise TimeoutError("Request timed out")

        provider = SingleShotAgentProvider(FunctionModel(explode))

        with pytest.raises(ProviderError):
            await drain(provider.stream("Analyze"))


class TestCreateProvider:
    """Variant selection from the model configuration."""

    def test_streaming_config_builds_streaming_provider(self) -> None:
        config = ModelConfig(provider="openai", model_name="gpt-4o-mini", streaming=True)

        provider = create_provider(config, make_settings())

        assert isinstance(provider, StreamingAgentProvider)

    def test_non_streaming_config_builds_single_shot_provider(self) -> None:
        config = ModelConfig(provider="openai", model_name="gpt-4o-mini", streaming=False)

        provider = create_provider(config, make_settings())

        assert isinstance(provider, SingleShotAgentProvider)

    def test_missing_credentials(self) -> None:
        config = ModelConfig(provider="gemini", model_name="gemini-1.5-flash")

        with pytest.raises(ProviderConfigurationError):
            create_provider(config, make_settings(GEMINI_API_KEY=None))
