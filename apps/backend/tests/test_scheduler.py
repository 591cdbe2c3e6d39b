"""Tests for the background checkpoint cleanup scheduler."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core import scheduler as scheduler_module
from core.scheduler import run_checkpoint_cleanup, scheduler_lifespan, setup_scheduler
from schemas.checkpoints import CheckpointStats, CheckpointStatus
from services.analysis.exceptions import CheckpointStoreError
from tests.fixtures.analysis_fixtures import make_settings


def fake_store(deleted: int = 0) -> MagicMock:
    store = MagicMock()
    store.cleanup = AsyncMock(return_value=deleted)
    store.stats = AsyncMock(
        return_value=CheckpointStats(counts={CheckpointStatus.IN_PROGRESS: 2})
    )
    return store


@pytest.mark.asyncio
class TestRunCheckpointCleanup:
    async def test_returns_deleted_count(self, caplog: pytest.LogCaptureFixture) -> None:
        store = fake_store(deleted=3)

        assert await run_checkpoint_cleanup(store) == 3
        store.stats.assert_awaited_once()
        assert "3 removed, 2 remaining" in caplog.text

    async def test_skips_stats_when_nothing_removed(self) -> None:
        store = fake_store(deleted=0)

        assert await run_checkpoint_cleanup(store) == 0
        store.stats.assert_not_awaited()

    async def test_store_failure_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = fake_store()
        store.cleanup.side_effect = CheckpointStoreError("Checkpoint cleanup failed")

        assert await run_checkpoint_cleanup(store) == 0
        assert "Checkpoint cleanup failed" in caplog.text

    async def test_cleanup_against_real_store(self, checkpoint_store) -> None:
        await checkpoint_store.save("a", "owner-1", 0.3, {}, CheckpointStatus.IN_PROGRESS)

        assert await run_checkpoint_cleanup(checkpoint_store) == 0


class TestSetupScheduler:
    def test_registers_cleanup_job(self) -> None:
        settings = make_settings(CHECKPOINT_CLEANUP_INTERVAL_MINUTES=15)

        sched = setup_scheduler(fake_store(), settings)

        jobs = {job.id: job for job in sched.get_jobs()}
        job = jobs["cleanup_analysis_checkpoints"]
        assert job.trigger.interval.total_seconds() == 15 * 60


@pytest.mark.asyncio
class TestSchedulerLifespan:
    async def test_disabled_scheduler_never_starts(self) -> None:
        with patch.object(scheduler_module, "setup_scheduler") as mock_setup:
            async with scheduler_lifespan(fake_store(), make_settings(ENABLE_SCHEDULER=False)):
                pass

        mock_setup.assert_not_called()

    async def test_enabled_scheduler_starts_and_stops(self) -> None:
        async with scheduler_lifespan(fake_store(), make_settings(ENABLE_SCHEDULER=True)):
            assert scheduler_module.scheduler is not None
            assert scheduler_module.scheduler.running

        assert not scheduler_module.scheduler.running
