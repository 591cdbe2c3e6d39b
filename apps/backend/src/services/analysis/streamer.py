"""Stream multiplexer: one provider stream in, one chunk stream out.

`AnalysisStreamer` runs a single session through

    idle -> requesting -> emitting -> completed | errored

with `cancelled` reachable from any non-terminal state through `cancel()`
and `detached` when the consumer goes away mid-stream. Terminal states are
absorbing.

Three tasks cooperate per session:

- the pump drains the provider into a one-slot queue, so a slow consumer
  stalls provider consumption instead of growing memory;
- the generator returned by `stream()` turns deltas into chunks;
- the checkpoint timer persists the latest partial result every
  `CHECKPOINT_INTERVAL_SECONDS` when it changed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from core.config import Settings, get_settings
from core.error_handler import StructuredLogger
from core.observability import get_tracer
from schemas.checkpoints import CheckpointStatus
from schemas.streaming import AnalysisStreamRequest, StreamChunk
from services.analysis.client import ProviderClient
from services.analysis.exceptions import (
    AnalysisStreamError,
    MalformedOutputError,
    PayloadTooLargeError,
    ProviderConfigurationError,
    ProviderError,
)
from services.analysis.extractor import PartialJsonExtractor
from services.analysis.interfaces import Attachment, CheckpointWriter, ProviderAdapter
from services.analysis.parsing import parse_complete
from services.analysis.prompts import build_user_prompt
from services.analysis.wire import encode_chunk


logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)
tracer = get_tracer(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    EMITTING = "emitting"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"
    DETACHED = "detached"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        SessionState.COMPLETED,
        SessionState.ERRORED,
        SessionState.CANCELLED,
        SessionState.DETACHED,
    }
)

_DONE = object()
_CANCELLED = object()


@dataclass(slots=True)
class _Failure:
    exc: Exception


def user_message_for(exc: Exception) -> str:
    """Map an engine failure to a message safe to show the user."""
    if isinstance(exc, MalformedOutputError):
        return "The AI returned an incomplete analysis. Please try again."
    if isinstance(exc, PayloadTooLargeError):
        return "The analysis result was too large to deliver."
    if isinstance(exc, ProviderConfigurationError):
        return "The analysis service is not available right now. Please try again later."

    text = str(exc).lower()
    if "503" in text or "overloaded" in text or "unavailable" in text:
        return (
            "The AI service is currently experiencing high demand. "
            "Please wait a moment and try again."
        )
    if "429" in text or "rate limit" in text or "quota" in text:
        return "Too many analysis requests right now. Please wait a minute and try again."
    if "401" in text or "403" in text or "authentication" in text:
        return "The analysis service rejected our credentials. Please try again later."
    if "timeout" in text or "timed out" in text:
        return "The analysis took too long to complete. Please try again."
    if "connection" in text or "network" in text:
        return (
            "There was a network issue reaching the AI service. "
            "Please check your connection and try again."
        )
    return "Something went wrong while analyzing your document. Please try again."


class AnalysisStreamer:
    """Run one streaming analysis session.

    Instances are single-use: construct one per session with the shared
    `ProviderClient` and checkpoint store.
    """

    def __init__(
        self,
        provider_client: ProviderClient,
        checkpoints: CheckpointWriter,
        settings: Settings | None = None,
    ) -> None:
        self._provider_client = provider_client
        self._checkpoints = checkpoints
        self._settings = settings or get_settings()

        self._state = SessionState.IDLE
        self._cancel_event = asyncio.Event()
        self._pump_task: asyncio.Task[None] | None = None
        self._timer_task: asyncio.Task[None] | None = None

        self._session_id: str | None = None
        self._owner_id: str | None = None
        self._progress = 0
        self._partials_emitted = 0
        self._partial: dict[str, Any] = {}
        self._checkpoint_dirty = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    async def stream(
        self, request: AnalysisStreamRequest, owner_id: str
    ) -> AsyncIterator[StreamChunk]:
        """Analyze the request's document, yielding chunks as results firm up.

        The last chunk is either `complete` or `error`; nothing follows it.
        Cancellation through `cancel()` ends the iteration without a chunk.
        """
        if self._state is not SessionState.IDLE:
            raise RuntimeError("AnalysisStreamer runs exactly one session")

        self._session_id = request.session_id
        self._owner_id = owner_id
        self._state = SessionState.REQUESTING
        attachment = Attachment(
            data=request.document_bytes(),
            media_type=request.media_type,
            file_name=request.file_name,
        )
        prompt = build_user_prompt(request.file_name)

        span = tracer.start_span("analysis.stream")
        span.set_attribute("analysis.document_bytes", len(attachment.data))
        structured_logger.info(
            "Analysis stream started",
            analysis_session=request.session_id,
            document_bytes=len(attachment.data),
        )

        deltas = 0
        try:
            await self._save(0.0, {}, CheckpointStatus.IN_PROGRESS, restart=True)
            if self._cancel_event.is_set():
                # cancel() ran during the restart write, which may have landed last
                await self._save(0.0, {}, CheckpointStatus.CANCELLED)
                return

            try:
                provider = await self._provider_client.get_provider()
            except AnalysisStreamError as exc:
                yield await self._fail(exc)
                return

            config = self._provider_client.config
            if config is not None:
                span.set_attribute("analysis.provider", config.provider)
                span.set_attribute("analysis.model", config.model_name)

            queue: asyncio.Queue[object] = asyncio.Queue(maxsize=1)
            self._pump_task = asyncio.create_task(
                self._pump(provider, prompt, attachment, queue)
            )
            self._timer_task = asyncio.create_task(self._checkpoint_loop())

            extractor = PartialJsonExtractor()
            text = ""
            while True:
                item = await self._next_item(queue)
                if item is _CANCELLED:
                    return
                if item is _DONE:
                    break
                if isinstance(item, _Failure):
                    yield await self._fail(item.exc)
                    return

                self._state = SessionState.EMITTING
                text += str(item)
                deltas += 1
                partial = extractor.feed(text)
                if partial:
                    yield self._emit_partial(partial)

            try:
                result = parse_complete(extractor.root_text(text) or text)
            except MalformedOutputError as exc:
                logger.warning(
                    "Session %s finished with unusable output (%d chars)",
                    request.session_id,
                    len(text),
                )
                yield await self._fail(exc)
                return

            final = StreamChunk.complete(result)
            try:
                encode_chunk(final)
            except ValueError:
                yield await self._fail(PayloadTooLargeError())
                return

            self._state = SessionState.COMPLETED
            self._progress = 100
            await self._stop_background()
            await self._save(1.0, result, CheckpointStatus.COMPLETED)
            structured_logger.info(
                "Analysis stream completed",
                analysis_session=request.session_id,
                deltas=deltas,
                partials=self._partials_emitted,
            )
            yield final
        except Exception as exc:  # noqa: BLE001
            if self._state.is_terminal:
                raise
            logger.exception("Unexpected failure in session %s", request.session_id)
            yield await self._fail(exc)
        finally:
            await self._stop_background()
            if not self._state.is_terminal:
                await self._detach()
            span.set_attribute("analysis.deltas", deltas)
            span.set_attribute("analysis.outcome", self._state.value)
            span.end()

    async def cancel(self) -> None:
        """Stop the session on explicit user request and mark it CANCELLED.

        Provider reads, the checkpoint timer, and chunk output stop at once.
        Has no effect once the session has ended.
        """
        if self._state.is_terminal:
            return
        started = self._state is not SessionState.IDLE
        self._state = SessionState.CANCELLED
        self._cancel_event.set()
        await self._stop_background()

        if started:
            await self._save(self._progress / 100, self._partial, CheckpointStatus.CANCELLED)
        structured_logger.info(
            "Analysis stream cancelled", analysis_session=self._session_id
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _emit_partial(self, partial: dict[str, Any]) -> StreamChunk:
        # Heuristic step counter; not an estimate of remaining work.
        self._partials_emitted += 1
        step_progress = min(
            self._partials_emitted * self._settings.PROGRESS_STEP,
            self._settings.PROGRESS_CAP,
        )
        self._progress = max(self._progress, step_progress)
        self._partial = partial
        self._checkpoint_dirty = True
        return StreamChunk.partial(partial, self._progress)

    async def _fail(self, exc: Exception) -> StreamChunk:
        """End the session with an error; the checkpoint stays IN_PROGRESS."""
        self._state = SessionState.ERRORED
        await self._stop_background()
        await self._flush_checkpoint()

        error_code = exc.error_code if isinstance(exc, AnalysisStreamError) else "internal_error"
        if isinstance(exc, ProviderError | ProviderConfigurationError):
            logger.warning("Session %s provider failure: %s", self._session_id, exc)
        structured_logger.warning(
            "Analysis stream failed",
            analysis_session=self._session_id,
            error_code=error_code,
        )
        return StreamChunk.failure(
            user_message_for(exc), error_code=error_code, progress=self._progress
        )

    async def _detach(self) -> None:
        """Consumer went away: keep the checkpoint recoverable."""
        self._state = SessionState.DETACHED
        logger.info("Session %s detached before finishing", self._session_id)
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.shield(self._flush_checkpoint())

    async def _pump(
        self,
        provider: ProviderAdapter,
        prompt: str,
        attachment: Attachment,
        queue: asyncio.Queue[object],
    ) -> None:
        try:
            async with contextlib.aclosing(provider.stream(prompt, attachment)) as deltas:
                async for delta in deltas:
                    if delta:
                        await queue.put(delta)
        except Exception as exc:  # noqa: BLE001
            await queue.put(_Failure(exc))
            return
        await queue.put(_DONE)

    async def _next_item(self, queue: asyncio.Queue[object]) -> object:
        """Next pump item, or _CANCELLED as soon as cancellation is requested."""
        if self._cancel_event.is_set():
            return _CANCELLED
        if not queue.empty():
            return queue.get_nowait()

        getter = asyncio.ensure_future(queue.get())
        waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (getter, waiter):
                if not task.done():
                    task.cancel()

        if self._cancel_event.is_set():
            return _CANCELLED
        return getter.result()

    async def _checkpoint_loop(self) -> None:
        interval = self._settings.CHECKPOINT_INTERVAL_SECONDS
        while True:
            await asyncio.sleep(interval)
            await self._flush_checkpoint()

    async def _flush_checkpoint(self) -> None:
        if not self._checkpoint_dirty:
            return
        self._checkpoint_dirty = False
        await self._save(self._progress / 100, self._partial, CheckpointStatus.IN_PROGRESS)

    async def _save(
        self,
        progress: float,
        partial_result: dict[str, Any],
        status: CheckpointStatus,
        *,
        restart: bool = False,
    ) -> None:
        """Best-effort checkpoint write; a failure never reaches the stream."""
        if self._session_id is None or self._owner_id is None:
            return
        try:
            await self._checkpoints.save(
                self._session_id,
                self._owner_id,
                progress,
                partial_result,
                status,
                restart=restart,
            )
        except Exception:  # noqa: BLE001
            logger.warning(
                "Checkpoint write failed for session %s; continuing",
                self._session_id,
                exc_info=True,
            )

    async def _stop_background(self) -> None:
        tasks = [t for t in (self._pump_task, self._timer_task) if t is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task


class ActiveStreams:
    """Streamers currently running in this process, keyed by owner and session."""

    def __init__(self) -> None:
        self._streams: dict[tuple[str, str], AnalysisStreamer] = {}

    def __len__(self) -> int:
        return len(self._streams)

    def add(self, owner_id: str, session_id: str, streamer: AnalysisStreamer) -> None:
        previous = self._streams.get((owner_id, session_id))
        if previous is not None and previous is not streamer:
            logger.info("Session %s restarted while a stream was still open", session_id)
        self._streams[(owner_id, session_id)] = streamer

    def discard(self, owner_id: str, session_id: str, streamer: AnalysisStreamer) -> None:
        # A restarted session may already have replaced this streamer
        if self._streams.get((owner_id, session_id)) is streamer:
            del self._streams[(owner_id, session_id)]

    async def cancel(self, owner_id: str, session_id: str) -> bool:
        """Cancel the live stream for the session, if this process runs one."""
        streamer = self._streams.get((owner_id, session_id))
        if streamer is None:
            return False
        await streamer.cancel()
        return True
