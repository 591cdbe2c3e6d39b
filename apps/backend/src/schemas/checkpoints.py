"""Checkpoint schemas shared by the store, the API, and the consumer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CheckpointStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not CheckpointStatus.IN_PROGRESS


class Checkpoint(BaseModel):
    """Durable record of one streaming session's last-known state."""

    session_id: str
    owner_id: str
    progress: float = Field(..., ge=0.0, le=1.0)
    partial_result: dict[str, Any] = Field(default_factory=dict)
    status: CheckpointStatus
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_recoverable(self) -> bool:
        """True while the session was interrupted before finishing."""
        return self.status is CheckpointStatus.IN_PROGRESS and self.progress < 1.0


class CheckpointStats(BaseModel):
    """Row counts per status, used by maintenance jobs and health checks."""

    counts: dict[CheckpointStatus, int] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())
