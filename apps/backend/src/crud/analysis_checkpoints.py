"""CRUD operations for analysis checkpoints."""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.analysis_checkpoints import AnalysisCheckpoint
from schemas.checkpoints import CheckpointStatus


logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = (CheckpointStatus.COMPLETED.value, CheckpointStatus.CANCELLED.value)


async def get_checkpoint(
    db: AsyncSession,
    session_id: str,
    owner_id: str | None = None,
) -> AnalysisCheckpoint | None:
    """Get a checkpoint by session ID.

    Args:
        db: Database session
        session_id: Externally supplied session identifier
        owner_id: Optional owner ID for ownership check

    Returns:
        AnalysisCheckpoint instance or None if not found
    """
    query = select(AnalysisCheckpoint).where(AnalysisCheckpoint.session_id == session_id)

    if owner_id is not None:
        query = query.where(AnalysisCheckpoint.owner_id == owner_id)

    result = await db.execute(query)
    return result.scalar_one_or_none()


async def upsert_checkpoint(
    db: AsyncSession,
    *,
    session_id: str,
    owner_id: str,
    progress: float,
    partial_result: dict[str, Any],
    status: CheckpointStatus,
    restart: bool = False,
) -> AnalysisCheckpoint | None:
    """Create or update the checkpoint for a session.

    COMPLETED and CANCELLED are absorbing: later writes leave such a row
    untouched unless `restart` is set, which a new stream for the same
    session uses to begin again from IN_PROGRESS.

    Args:
        db: Database session
        session_id: Externally supplied session identifier
        owner_id: Owner of the session
        progress: Fractional progress in [0, 1]
        partial_result: Best-effort partial (or final) analysis
        status: New status
        restart: Overwrite a terminal row (start of a new stream)

    Returns:
        The stored row, or None when the session belongs to another owner
    """
    checkpoint = await get_checkpoint(db, session_id)
    now = datetime.now(UTC)

    if checkpoint is None:
        checkpoint = AnalysisCheckpoint(
            session_id=session_id,
            owner_id=owner_id,
            progress=progress,
            partial_result=partial_result,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        db.add(checkpoint)
    elif checkpoint.owner_id != owner_id:
        logger.warning("Checkpoint %s belongs to another owner; not updated", session_id)
        return None
    elif checkpoint.status in _TERMINAL_STATUSES and not restart:
        logger.debug(
            "Checkpoint %s already %s; ignoring %s write",
            session_id,
            checkpoint.status,
            status.value,
        )
        return checkpoint
    else:
        checkpoint.progress = progress
        checkpoint.partial_result = partial_result
        checkpoint.status = status.value
        checkpoint.updated_at = now

    await db.commit()
    await db.refresh(checkpoint)
    return checkpoint


async def cancel_checkpoint(
    db: AsyncSession,
    session_id: str,
    owner_id: str,
) -> AnalysisCheckpoint | None:
    """Mark an in-progress checkpoint CANCELLED.

    A checkpoint that already finished keeps its status.

    Returns:
        The checkpoint, or None if the owner has no such session
    """
    checkpoint = await get_checkpoint(db, session_id, owner_id)
    if checkpoint is None:
        return None

    if checkpoint.status == CheckpointStatus.IN_PROGRESS.value:
        checkpoint.status = CheckpointStatus.CANCELLED.value
        checkpoint.updated_at = datetime.now(UTC)
        await db.commit()
        await db.refresh(checkpoint)
    return checkpoint


async def list_recoverable_checkpoints(
    db: AsyncSession,
    owner_id: str,
    updated_since: datetime,
    limit: int = 20,
) -> Sequence[AnalysisCheckpoint]:
    """List an owner's interrupted sessions, most recent first.

    Args:
        db: Database session
        owner_id: Owner whose sessions to list
        updated_since: Ignore checkpoints not touched since this instant
        limit: Maximum number of rows

    Returns:
        IN_PROGRESS checkpoints with progress below 1.0
    """
    query = (
        select(AnalysisCheckpoint)
        .where(
            AnalysisCheckpoint.owner_id == owner_id,
            AnalysisCheckpoint.status == CheckpointStatus.IN_PROGRESS.value,
            AnalysisCheckpoint.progress < 1.0,
            AnalysisCheckpoint.updated_at >= updated_since,
        )
        .order_by(AnalysisCheckpoint.updated_at.desc())
        .limit(limit)
    )
    result = await db.execute(query)
    return result.scalars().all()


async def cleanup_stale_checkpoints(
    db: AsyncSession,
    *,
    finished_before: datetime,
    abandoned_before: datetime,
) -> int:
    """Delete checkpoints nobody can use anymore.

    Args:
        db: Database session
        finished_before: COMPLETED/CANCELLED rows older than this are removed
        abandoned_before: IN_PROGRESS rows older than this are removed

    Returns:
        Number of checkpoints deleted
    """
    stmt = delete(AnalysisCheckpoint).where(
        or_(
            and_(
                AnalysisCheckpoint.status.in_(_TERMINAL_STATUSES),
                AnalysisCheckpoint.updated_at < finished_before,
            ),
            and_(
                AnalysisCheckpoint.status == CheckpointStatus.IN_PROGRESS.value,
                AnalysisCheckpoint.updated_at < abandoned_before,
            ),
        )
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount or 0


async def count_checkpoints_by_status(db: AsyncSession) -> dict[str, int]:
    """Count checkpoints grouped by status."""
    query = select(AnalysisCheckpoint.status, func.count()).group_by(
        AnalysisCheckpoint.status
    )
    result = await db.execute(query)
    return {status: count for status, count in result.all()}
