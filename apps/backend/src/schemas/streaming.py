"""Schemas for analysis streaming: requests and the chunks the engine emits."""

from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


ChunkType = Literal["partial", "complete", "error", "metadata"]

SUPPORTED_MEDIA_TYPES: frozenset[str] = frozenset({"application/pdf", "text/plain"})


class StreamChunk(BaseModel):
    """One unit of streaming output.

    `partial` and `complete` carry analysis fields in `data`; `error` carries a
    user-facing message plus a stable `error_code`. `complete` and `error` are
    terminal: nothing follows them within a session.
    """

    type: ChunkType
    data: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None
    progress: int = Field(0, ge=0, le=100)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(extra="forbid")

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")

    @classmethod
    def partial(cls, data: dict[str, Any], progress: int) -> StreamChunk:
        return cls(type="partial", data=data, progress=progress)

    @classmethod
    def complete(cls, data: dict[str, Any]) -> StreamChunk:
        return cls(type="complete", data=data, progress=100)

    @classmethod
    def failure(
        cls, message: str, error_code: str | None = None, progress: int = 0
    ) -> StreamChunk:
        return cls(type="error", error=message, error_code=error_code, progress=progress)


class AnalysisStreamRequest(BaseModel):
    """Request payload for streaming the analysis of an uploaded document.

    `session_id` is issued by the upload service before streaming starts and
    keys the checkpoint used for recovery.
    """

    session_id: str = Field(..., min_length=1, max_length=128)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_data: str = Field(..., min_length=1, description="Base64-encoded document")
    media_type: str = Field(default="application/pdf")

    model_config = ConfigDict(extra="forbid")

    @field_validator("file_data")
    @classmethod
    def _validate_base64(cls, v: str) -> str:
        """Accept raw base64 or a data URL; store only the base64 body."""
        if v.startswith("data:") and "," in v:
            v = v.split(",", 1)[1]
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("file_data must be valid base64") from exc
        return v

    @field_validator("media_type")
    @classmethod
    def _validate_media_type(cls, v: str) -> str:
        if v not in SUPPORTED_MEDIA_TYPES:
            raise ValueError(
                f"Unsupported media_type; expected one of {sorted(SUPPORTED_MEDIA_TYPES)}"
            )
        return v

    def document_bytes(self) -> bytes:
        return base64.b64decode(self.file_data)
