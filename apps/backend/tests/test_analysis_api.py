"""Integration tests for the analysis streaming and session endpoints."""

from __future__ import annotations

import asyncio
import base64

import pytest
from httpx import AsyncClient

from core.config import get_settings
from dependencies.analysis import get_provider_client
from main import app
from schemas.checkpoints import CheckpointStatus
from services.analysis.checkpoints import CheckpointStore
from services.analysis.client import ProviderClient
from services.analysis.config_source import ModelConfigSource
from services.analysis.exceptions import ProviderConfigurationError
from services.analysis.wire import decode_frames
from tests.fixtures.analysis_fixtures import (
    OWNER_ID,
    SAMPLE_ANALYSIS,
    SAMPLE_JSON,
    ScriptedProvider,
    make_settings,
    make_token,
    provider_failure,
    split_text,
)


STREAM_URL = "/api/v1/analysis/stream"


def stream_body(session_id: str = "session-1", document: bytes = b"%PDF-1.4 resume") -> dict:
    return {
        "session_id": session_id,
        "file_name": "resume.pdf",
        "file_data": base64.b64encode(document).decode("ascii"),
        "media_type": "application/pdf",
    }


@pytest.mark.asyncio
class TestStreamEndpoint:
    async def test_streams_frames_ending_with_result(
        self, async_client: AsyncClient, checkpoint_store: CheckpointStore
    ) -> None:
        response = await async_client.post(STREAM_URL, json=stream_body())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        frames, remainder = decode_frames(response.text)
        assert remainder == ""
        assert len(frames) > 1
        assert not any(frame.is_error for frame in frames)
        assert frames[-1].payload() == SAMPLE_ANALYSIS

        checkpoint = await checkpoint_store.fetch("session-1", OWNER_ID)
        assert checkpoint is not None
        assert checkpoint.status is CheckpointStatus.COMPLETED
        assert checkpoint.progress == 1.0

    async def test_provider_failure_ends_with_error_frame(
        self,
        async_client: AsyncClient,
        scripted_provider: ScriptedProvider,
        checkpoint_store: CheckpointStore,
    ) -> None:
        scripted_provider.deltas = ['{"overall_score": 72,', ' "ats_score": 6']
        scripted_provider.fail_with = provider_failure()

        response = await async_client.post(STREAM_URL, json=stream_body())

        frames, _ = decode_frames(response.text)
        assert frames[-1].is_error
        assert "high demand" in frames[-1].payload()["error"]
        checkpoint = await checkpoint_store.fetch("session-1", OWNER_ID)
        assert checkpoint is not None
        assert checkpoint.status is CheckpointStatus.IN_PROGRESS
        assert checkpoint.partial_result == {"overall_score": 72}

    async def test_unconfigured_provider_fails_before_streaming(
        self, async_client: AsyncClient
    ) -> None:
        settings = make_settings()

        def failing_factory(_config, _settings, _http):
            raise ProviderConfigurationError("OPENAI_API_KEY is not configured")

        broken = ProviderClient(ModelConfigSource(None, settings), settings, factory=failing_factory)
        app.dependency_overrides[get_provider_client] = lambda: broken

        response = await async_client.post(STREAM_URL, json=stream_body())

        assert response.status_code == 503
        assert response.json()["success"] is False

    async def test_oversized_document_rejected(
        self, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(get_settings(), "MAX_DOCUMENT_BYTES", 4)

        response = await async_client.post(STREAM_URL, json=stream_body(document=b"0123456789"))

        assert response.status_code == 413
        assert response.json()["error"]["type"] == "domain_error"

    async def test_invalid_base64_rejected(self, async_client: AsyncClient) -> None:
        body = {**stream_body(), "file_data": "not base64!!"}

        response = await async_client.post(STREAM_URL, json=body)

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["type"] == "validation_error"
        assert error["validation_errors"][0]["loc"][-1] == "file_data"

    async def test_invalid_token_rejected(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            STREAM_URL, json=stream_body(), headers={"Authorization": "Bearer garbage"}
        )

        assert response.status_code == 401


@pytest.mark.asyncio
class TestSessionEndpoints:
    async def test_get_checkpoint(
        self, async_client: AsyncClient, checkpoint_store: CheckpointStore
    ) -> None:
        await checkpoint_store.save(
            "session-1", OWNER_ID, 0.4, {"overall_score": 72}, CheckpointStatus.IN_PROGRESS
        )

        response = await async_client.get("/api/v1/analysis/sessions/session-1/checkpoint")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["progress"] == 0.4
        assert data["partial_result"] == {"overall_score": 72}
        assert data["status"] == "IN_PROGRESS"

    async def test_checkpoint_of_other_owner_is_not_found(
        self, async_client: AsyncClient, checkpoint_store: CheckpointStore
    ) -> None:
        await checkpoint_store.save("session-1", OWNER_ID, 0.4, {}, CheckpointStatus.IN_PROGRESS)

        response = await async_client.get(
            "/api/v1/analysis/sessions/session-1/checkpoint",
            headers={"Authorization": f"Bearer {make_token('someone-else')}"},
        )

        assert response.status_code == 404

    async def test_cancel_session(
        self, async_client: AsyncClient, checkpoint_store: CheckpointStore
    ) -> None:
        await checkpoint_store.save("session-1", OWNER_ID, 0.4, {}, CheckpointStatus.IN_PROGRESS)

        response = await async_client.post("/api/v1/analysis/sessions/session-1/cancel")

        assert response.status_code == 200
        assert response.json()["data"] == {"session_id": "session-1", "status": "CANCELLED"}

    async def test_cancel_stops_live_stream(
        self,
        async_client: AsyncClient,
        scripted_provider: ScriptedProvider,
        checkpoint_store: CheckpointStore,
    ) -> None:
        gate = asyncio.Event()
        scripted_provider.deltas = split_text(SAMPLE_JSON, len(SAMPLE_JSON) // 20 + 1)
        scripted_provider.gate = gate
        scripted_provider.release_after = 3

        stream = asyncio.ensure_future(async_client.post(STREAM_URL, json=stream_body()))
        for _ in range(500):
            if scripted_provider.delivered >= 3 and app.state.active_streams:
                break
            await asyncio.sleep(0.01)

        cancel = await async_client.post("/api/v1/analysis/sessions/session-1/cancel")
        response = await asyncio.wait_for(stream, timeout=5)
        gate.set()

        assert cancel.status_code == 200
        assert cancel.json()["data"]["status"] == "CANCELLED"
        assert response.status_code == 200
        frames, _ = decode_frames(response.text)
        assert not any(frame.is_error for frame in frames)
        assert all(frame.payload() != SAMPLE_ANALYSIS for frame in frames)
        assert scripted_provider.delivered == 3
        assert scripted_provider.closed
        checkpoint = await checkpoint_store.fetch("session-1", OWNER_ID)
        assert checkpoint is not None
        assert checkpoint.status is CheckpointStatus.CANCELLED
        assert len(app.state.active_streams) == 0

    async def test_cancel_unknown_session(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/v1/analysis/sessions/missing/cancel")

        assert response.status_code == 404

    async def test_list_recoverable(
        self, async_client: AsyncClient, checkpoint_store: CheckpointStore
    ) -> None:
        await checkpoint_store.save("open", OWNER_ID, 0.4, {}, CheckpointStatus.IN_PROGRESS)
        await checkpoint_store.save("done", OWNER_ID, 1.0, {}, CheckpointStatus.COMPLETED)

        response = await async_client.get("/api/v1/analysis/sessions/recoverable")

        assert response.status_code == 200
        assert [c["session_id"] for c in response.json()["data"]] == ["open"]
