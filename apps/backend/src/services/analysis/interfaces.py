"""Service interfaces for the streaming analysis engine.

The multiplexer, the consumer, and the API depend only on these protocols,
so tests can inject small fakes and production wiring stays in one place.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

from schemas.checkpoints import Checkpoint, CheckpointStatus


@dataclass(frozen=True, slots=True)
class Attachment:
    """Binary document sent alongside the prompt."""

    data: bytes
    media_type: str = "application/pdf"
    file_name: str | None = None


class ProviderAdapter(Protocol):
    """Uniform view of one LLM backend.

    `stream` yields text deltas whose concatenation is the full response.
    Backends without incremental delivery yield exactly one delta. Any
    backend failure is raised as `ProviderError`; adapters never retry.
    """

    def stream(
        self, prompt: str, attachment: Attachment | None = None
    ) -> AsyncIterator[str]:
        ...


class CheckpointWriter(Protocol):
    """Write side of the checkpoint store used by the multiplexer."""

    async def save(
        self,
        session_id: str,
        owner_id: str,
        progress: float,
        partial_result: dict[str, Any],
        status: CheckpointStatus,
        *,
        restart: bool = False,
    ) -> None:
        """Persist progress; failures are logged and never raised."""
        ...


class CheckpointGateway(Protocol):
    """What the consumer needs from the checkpoint store, bound to one owner.

    Implemented in-process by `CheckpointStore.for_owner()` and over HTTP by
    `HttpCheckpointGateway`, where the bearer token fixes the owner.
    """

    async def load(self, session_id: str) -> Checkpoint | None:
        ...

    async def cancel(self, session_id: str) -> bool:
        ...
