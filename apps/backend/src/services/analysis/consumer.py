"""Client-side counterpart of the analysis stream.

`ConsumerSession` posts an analysis request, reads the SSE response frame by
frame, and keeps a merged view of the evolving result. It is disposable:
as long as the session id and its checkpoint survive, `recover()` rebuilds
the local view without touching the provider.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any

import httpx

from schemas.checkpoints import Checkpoint
from schemas.streaming import AnalysisStreamRequest
from services.analysis.interfaces import CheckpointGateway
from services.analysis.wire import WireFrame, decode_frames


logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/analysis/stream"
SESSIONS_PATH = "/api/v1/analysis/sessions"

FRAME_PROGRESS_STEP = 5
FRAME_PROGRESS_CAP = 99


class StreamingStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


class SessionOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConsumerSession:
    """Drive one analysis session from the client side.

    Args:
        http_client: Client pointed at the API, carrying the bearer token.
        session_id: Identifier issued by the upload service.
        gateway: Checkpoint access used by `recover()` and `stop()`.
        stream_path: Path of the streaming endpoint.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        session_id: str,
        gateway: CheckpointGateway,
        stream_path: str = STREAM_PATH,
    ) -> None:
        self._http = http_client
        self.session_id = session_id
        self._gateway = gateway
        self._stream_path = stream_path

        self._task: asyncio.Task[None] | None = None
        self._last_request: AnalysisStreamRequest | None = None
        self._clear()

    def _clear(self) -> None:
        self._status = StreamingStatus.IDLE
        self._outcome: SessionOutcome | None = None
        self._result: dict[str, Any] = {}
        self._progress = 0
        self._frames = 0
        self._error: str | None = None
        self._recoverable = False

    # ------------------------------------------------------------------ #
    # Observable state
    # ------------------------------------------------------------------ #

    @property
    def status(self) -> StreamingStatus:
        return self._status

    @property
    def outcome(self) -> SessionOutcome | None:
        return self._outcome

    @property
    def result(self) -> dict[str, Any]:
        return self._result

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def recoverable(self) -> bool:
        """True when `recover()` found an interrupted session to resume."""
        return self._recoverable

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def recover(self) -> Checkpoint | None:
        """Seed local state from the session's checkpoint, if interrupted.

        No stream request is issued; call `retry()` or `start()` to resume,
        which re-runs the analysis from scratch.
        """
        checkpoint = await self._gateway.load(self.session_id)
        if checkpoint is None or not checkpoint.is_recoverable:
            self._recoverable = False
            return None

        self._result = dict(checkpoint.partial_result)
        self._progress = round(checkpoint.progress * 100)
        self._recoverable = True
        logger.info(
            "Recovered session %s at %d%% with %d fields",
            self.session_id,
            self._progress,
            len(self._result),
        )
        return checkpoint

    def start(self, request: AnalysisStreamRequest) -> None:
        """Begin streaming `request`; any running stream is abandoned first.

        Raises:
            ValueError: The request belongs to a different session.
        """
        if request.session_id != self.session_id:
            raise ValueError(
                f"Request is for session {request.session_id}, not {self.session_id}"
            )
        if self._task is not None and not self._task.done():
            self._task.cancel()

        self._last_request = request
        self._clear()
        self._status = StreamingStatus.CONNECTING
        self._task = asyncio.create_task(self._run(request))

    def retry(self) -> None:
        """Re-issue the last request.

        Raises:
            RuntimeError: Nothing has been started yet.
        """
        if self._last_request is None:
            raise RuntimeError("No previous request to retry")
        self.start(self._last_request)

    async def wait(self) -> SessionOutcome | None:
        """Wait for the current stream to end and return its outcome."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        return self._outcome

    async def stop(self) -> None:
        """Abort the stream and mark the session's checkpoint CANCELLED."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._outcome in (SessionOutcome.COMPLETED, SessionOutcome.FAILED):
            return
        self._status = StreamingStatus.IDLE
        self._outcome = SessionOutcome.CANCELLED
        self._recoverable = False
        if not await self._gateway.cancel(self.session_id):
            logger.info("No checkpoint to cancel for session %s", self.session_id)

    def reset(self) -> None:
        """Forget all local state. The checkpoint is left untouched."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._last_request = None
        self._clear()

    # ------------------------------------------------------------------ #
    # Stream reading
    # ------------------------------------------------------------------ #

    async def _run(self, request: AnalysisStreamRequest) -> None:
        try:
            async with self._http.stream(
                "POST",
                self._stream_path,
                json=request.model_dump(),
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    self._fail(f"Failed to start analysis: {response.status_code} {body}")
                    return

                self._status = StreamingStatus.STREAMING
                buffer = ""
                async for text in response.aiter_text():
                    buffer += text
                    frames, buffer = decode_frames(buffer)
                    for frame in frames:
                        if self._apply(frame):
                            return
        except httpx.HTTPError as exc:
            logger.warning("Stream for session %s broke: %s", self.session_id, exc)
            self._fail(f"Connection to the analysis service was lost ({exc.__class__.__name__})")
            return

        if self._frames == 0:
            self._fail("The analysis stream ended without a result")
            return
        self._status = StreamingStatus.COMPLETED
        self._outcome = SessionOutcome.COMPLETED
        self._progress = 100
        self._recoverable = False

    def _apply(self, frame: WireFrame) -> bool:
        """Fold one frame into local state. Returns True on a terminal frame."""
        try:
            payload = frame.payload()
        except ValueError:
            logger.debug("Skipping undecodable frame for session %s", self.session_id)
            return False

        if frame.is_error:
            self._fail(str(payload.get("error") or "Unknown stream error"))
            return True

        # Later snapshots refine earlier ones; fields are never dropped.
        self._result.update(payload)
        self._frames += 1
        self._progress = max(
            self._progress,
            min(self._frames * FRAME_PROGRESS_STEP, FRAME_PROGRESS_CAP),
        )
        return False

    def _fail(self, message: str) -> None:
        self._status = StreamingStatus.ERROR
        self._outcome = SessionOutcome.FAILED
        self._error = message


class HttpCheckpointGateway:
    """`CheckpointGateway` backed by the analysis session endpoints."""

    def __init__(self, http_client: httpx.AsyncClient, sessions_path: str = SESSIONS_PATH) -> None:
        self._http = http_client
        self._sessions_path = sessions_path.rstrip("/")

    async def load(self, session_id: str) -> Checkpoint | None:
        try:
            response = await self._http.get(f"{self._sessions_path}/{session_id}/checkpoint")
        except httpx.HTTPError:
            logger.warning("Checkpoint lookup failed for session %s", session_id, exc_info=True)
            return None
        if response.status_code != 200:
            return None
        body = response.json()
        data = body.get("data") if isinstance(body, dict) else None
        return Checkpoint.model_validate(data) if data else None

    async def cancel(self, session_id: str) -> bool:
        try:
            response = await self._http.post(f"{self._sessions_path}/{session_id}/cancel")
        except httpx.HTTPError:
            logger.warning("Cancel request failed for session %s", session_id, exc_info=True)
            return False
        return response.status_code == 200
