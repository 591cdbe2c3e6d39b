"""Checkpoint store: durable progress records keyed by session.

Writes made while a stream is running are best-effort: failures are logged
and swallowed so a flaky database never interrupts a healthy stream. Reads
used by the API (`fetch`, `cancel`, ...) raise `CheckpointStoreError` so an
outage is not mistaken for a missing checkpoint.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, get_settings
from crud.analysis_checkpoints import (
    cancel_checkpoint,
    cleanup_stale_checkpoints,
    count_checkpoints_by_status,
    get_checkpoint,
    list_recoverable_checkpoints,
    upsert_checkpoint,
)
from schemas.checkpoints import Checkpoint, CheckpointStats, CheckpointStatus
from services.analysis.exceptions import CheckpointStoreError


logger = logging.getLogger(__name__)


class CheckpointStore:
    """Checkpoint persistence over an async SQLAlchemy session factory.

    Each call opens its own session: the multiplexer saves from a timer task
    that must not share the request's session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()

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
        """Upsert the checkpoint; never raises."""
        progress = min(max(progress, 0.0), 1.0)
        try:
            async with self._session_factory() as db:
                await upsert_checkpoint(
                    db,
                    session_id=session_id,
                    owner_id=owner_id,
                    progress=progress,
                    partial_result=partial_result,
                    status=status,
                    restart=restart,
                )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Checkpoint save failed for session %s (%s); continuing",
                session_id,
                exc.__class__.__name__,
                exc_info=True,
            )

    async def fetch(self, session_id: str, owner_id: str) -> Checkpoint | None:
        """Return the owner's checkpoint or None; raise on store failure."""
        try:
            async with self._session_factory() as db:
                row = await get_checkpoint(db, session_id, owner_id)
                return Checkpoint.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(
                f"Could not load checkpoint for session {session_id}"
            ) from exc

    async def load(self, session_id: str, owner_id: str) -> Checkpoint | None:
        """Like `fetch`, but a store failure reads as 'nothing to recover'."""
        try:
            return await self.fetch(session_id, owner_id)
        except CheckpointStoreError:
            logger.warning("Checkpoint load failed for session %s", session_id, exc_info=True)
            return None

    async def cancel(self, session_id: str, owner_id: str) -> bool:
        """Mark the session CANCELLED. Returns False if it does not exist."""
        try:
            async with self._session_factory() as db:
                row = await cancel_checkpoint(db, session_id, owner_id)
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(
                f"Could not cancel checkpoint for session {session_id}"
            ) from exc
        if row is not None:
            logger.info("Checkpoint %s status is now %s", session_id, row.status)
        return row is not None

    async def list_recoverable(self, owner_id: str) -> list[Checkpoint]:
        """Interrupted sessions of an owner within the recovery window."""
        since = datetime.now(UTC) - timedelta(hours=self._settings.RECOVERY_WINDOW_HOURS)
        try:
            async with self._session_factory() as db:
                rows = await list_recoverable_checkpoints(db, owner_id, since)
                return [Checkpoint.model_validate(row) for row in rows]
        except SQLAlchemyError as exc:
            raise CheckpointStoreError("Could not list recoverable sessions") from exc

    async def cleanup(self) -> int:
        """Delete finished checkpoints past retention and abandoned ones.

        Returns:
            Number of rows removed.
        """
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as db:
                deleted = await cleanup_stale_checkpoints(
                    db,
                    finished_before=now
                    - timedelta(hours=self._settings.CHECKPOINT_RETENTION_HOURS),
                    abandoned_before=now
                    - timedelta(hours=self._settings.RECOVERY_WINDOW_HOURS),
                )
        except SQLAlchemyError as exc:
            raise CheckpointStoreError("Checkpoint cleanup failed") from exc
        logger.info("Checkpoint cleanup removed %d rows", deleted)
        return deleted

    async def stats(self) -> CheckpointStats:
        try:
            async with self._session_factory() as db:
                counts = await count_checkpoints_by_status(db)
        except SQLAlchemyError as exc:
            raise CheckpointStoreError("Could not compute checkpoint stats") from exc
        return CheckpointStats(
            counts={CheckpointStatus(status): count for status, count in counts.items()}
        )

    def for_owner(self, owner_id: str) -> OwnerCheckpoints:
        """Bind this store to one owner for use as a consumer gateway."""
        return OwnerCheckpoints(self, owner_id)


class OwnerCheckpoints:
    """In-process `CheckpointGateway` scoped to a single owner."""

    def __init__(self, store: CheckpointStore, owner_id: str) -> None:
        self._store = store
        self._owner_id = owner_id

    async def load(self, session_id: str) -> Checkpoint | None:
        return await self._store.load(session_id, self._owner_id)

    async def cancel(self, session_id: str) -> bool:
        try:
            return await self._store.cancel(session_id, self._owner_id)
        except CheckpointStoreError:
            logger.warning("Cancel not recorded for session %s", session_id, exc_info=True)
            return False
