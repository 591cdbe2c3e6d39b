"""Checkpoint model: durable progress record of one streaming analysis."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AnalysisCheckpoint(Base):
    """Last-known progress and partial result of a streaming session.

    One row per session. The session id is supplied by the upload service
    and is never generated here.
    """

    __tablename__ = "analysis_checkpoints"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
        comment="Owner identity taken from the bearer token subject",
    )
    progress: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, comment="Fractional progress 0.0-1.0"
    )
    partial_result: Mapped[Any] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Best-effort partial analysis, or the full result once completed",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="IN_PROGRESS | COMPLETED | CANCELLED",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<AnalysisCheckpoint(session_id={self.session_id}, "
            f"status={self.status}, progress={self.progress})>"
        )
