"""Streaming document analysis and checkpoint recovery endpoints."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, status
from fastapi.responses import StreamingResponse

from core.config import get_settings
from core.exceptions import CheckpointNotFoundError, DocumentTooLargeError
from dependencies.analysis import (
    ActiveStreamsDep,
    CheckpointStoreDep,
    ProviderClientDep,
    StreamerDep,
)
from dependencies.auth import CurrentOwner
from schemas.api import ApiResponse
from schemas.checkpoints import Checkpoint
from schemas.streaming import AnalysisStreamRequest
from services.analysis.streamer import ActiveStreams, AnalysisStreamer
from services.analysis.wire import encode_chunk


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/stream",
    summary="Stream a document analysis via Server-Sent Events",
    response_class=StreamingResponse,
)
async def stream_analysis(
    payload: AnalysisStreamRequest,
    owner_id: CurrentOwner,
    provider_client: ProviderClientDep,
    streamer: StreamerDep,
    active_streams: ActiveStreamsDep,
) -> StreamingResponse:
    """Analyze an uploaded document, streaming results as they become known.

    Frames:
      data: {...}                 partial or final analysis fields
      event: error / data: {...}  terminal failure with an `error` message

    The stream ends when the response closes. Progress is checkpointed under
    `session_id` so an interrupted session can be inspected and retried.
    Cancelling the session through `/sessions/{session_id}/cancel` ends the
    stream without a terminal frame.
    """
    max_bytes = get_settings().MAX_DOCUMENT_BYTES
    # base64 inflates by 4/3; decoded size is checked once the cheap bound passes
    if len(payload.file_data) * 3 // 4 > max_bytes and len(payload.document_bytes()) > max_bytes:
        raise DocumentTooLargeError(
            f"Document exceeds the {max_bytes // (1024 * 1024)} MiB limit"
        )

    # Fail fast with a JSON error before committing to a stream
    await provider_client.get_provider()

    return StreamingResponse(
        build_analysis_stream(streamer, payload, owner_id, active_streams),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def build_analysis_stream(
    streamer: AnalysisStreamer,
    payload: AnalysisStreamRequest,
    owner_id: str,
    active_streams: ActiveStreams,
) -> AsyncGenerator[str, None]:
    """Encode the streamer's chunks as SSE frames, in order.

    The streamer is registered for the lifetime of the response so the
    cancel endpoint can stop it.
    """
    active_streams.add(owner_id, payload.session_id, streamer)
    try:
        async with contextlib.aclosing(streamer.stream(payload, owner_id)) as chunks:
            async for chunk in chunks:
                try:
                    frame = encode_chunk(chunk)
                except ValueError:
                    # Terminal chunks are size-checked by the streamer
                    logger.warning(
                        "Skipping oversized partial frame for session %s",
                        payload.session_id,
                    )
                    continue
                yield frame
    finally:
        active_streams.discard(owner_id, payload.session_id, streamer)


@router.get(
    "/sessions/recoverable",
    response_model=ApiResponse[list[Checkpoint]],
    summary="List interrupted analysis sessions",
)
async def list_recoverable_sessions(
    owner_id: CurrentOwner,
    store: CheckpointStoreDep,
) -> ApiResponse[list[Checkpoint]]:
    checkpoints = await store.list_recoverable(owner_id)
    return ApiResponse(
        success=True,
        data=checkpoints,
        message=f"Found {len(checkpoints)} recoverable sessions",
    )


@router.get(
    "/sessions/{session_id}/checkpoint",
    response_model=ApiResponse[Checkpoint],
    summary="Get the saved progress of an analysis session",
)
async def get_session_checkpoint(
    session_id: str,
    owner_id: CurrentOwner,
    store: CheckpointStoreDep,
) -> ApiResponse[Checkpoint]:
    checkpoint = await store.fetch(session_id, owner_id)
    if checkpoint is None:
        raise CheckpointNotFoundError(f"No checkpoint for session {session_id}")
    return ApiResponse(success=True, data=checkpoint, message="Checkpoint retrieved")


@router.post(
    "/sessions/{session_id}/cancel",
    response_model=ApiResponse[dict[str, str]],
    status_code=status.HTTP_200_OK,
    summary="Cancel an analysis session",
)
async def cancel_session(
    session_id: str,
    owner_id: CurrentOwner,
    store: CheckpointStoreDep,
    active_streams: ActiveStreamsDep,
) -> ApiResponse[dict[str, str]]:
    """Stop the live stream, if any, and mark the session CANCELLED.

    Finished sessions keep their status.
    """
    stopped = await active_streams.cancel(owner_id, session_id)
    if stopped:
        logger.info("Stopped live stream for session %s", session_id)
    if not await store.cancel(session_id, owner_id) and not stopped:
        raise CheckpointNotFoundError(f"No checkpoint for session {session_id}")
    checkpoint = await store.fetch(session_id, owner_id)
    final_status = checkpoint.status.value if checkpoint else "CANCELLED"
    return ApiResponse(
        success=True,
        data={"session_id": session_id, "status": final_status},
        message="Session cancelled",
    )
