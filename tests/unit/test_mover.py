"""
Tests for run wiring and requeueing.
"""

from unittest.mock import AsyncMock, patch

import pytest

from upload_mover.core.config import MoverConfig, PostgresConfig
from upload_mover.core.errors import BatchPartialFailureError, MissingConfigurationError, UnresolvableRegionError
from upload_mover.mover import requeue_files, run_mover, validate_storage_bucket
from upload_mover.storage.memory import InMemoryMetadataStore
from upload_mover.types import FileStatus, MigrationStats, SyncResult


class PartialStore(InMemoryMetadataStore):
    """Store whose batch writes leave some files unprocessed."""

    def __init__(self, refuse: set[str]):
        super().__init__()
        self.refuse = refuse

    async def sync_files(self, manifest_id, files):
        files = list(files)
        accepted = [f for f in files if f.upload_id not in self.refuse]
        result = await super().sync_files(manifest_id, accepted)
        return SyncResult(
            updated=result.updated,
            removed=result.removed,
            failed_files=[f.upload_id for f in files if f.upload_id in self.refuse],
        )


class TestValidateStorageBucket:
    def test_valid(self):
        validate_storage_bucket("pennsieve-storage-use1")

    def test_invalid(self):
        with pytest.raises(UnresolvableRegionError):
            validate_storage_bucket("pennsieve-storage")


class TestRunMover:
    """Setup errors abort before any work starts."""

    @pytest.mark.asyncio
    async def test_requires_postgres(self, fake_session):
        config = MoverConfig("manifests", "files", "uploads", "storage-use1")

        with pytest.raises(MissingConfigurationError, match="RDS_PROXY_ENDPOINT"):
            await run_mover(config, session=fake_session)

        assert fake_session.opened == []

    @pytest.mark.asyncio
    async def test_logs_connection_health_before_moving(self, fake_session):
        pool = AsyncMock()
        pool.fetchval.return_value = 1

        async def supplier():
            return pool, 600.0

        config = MoverConfig(
            "manifests", "files", "uploads", "storage-use1", postgres=PostgresConfig(host="proxy")
        )

        with (
            patch("upload_mover.mover.rds_connection_supplier", return_value=supplier),
            patch("upload_mover.mover.MigrationWorkerPool.run", new_callable=AsyncMock) as run,
            patch("upload_mover.mover.logger") as logger,
        ):
            run.return_value = MigrationStats(moved=2)
            stats = await run_mover(config, session=fake_session)

        assert stats.moved == 2
        assert "Relational connection ready" in logger.info.call_args_list[0].args[0]
        logger.warning.assert_not_called()
        pool.close.assert_awaited_once()


class TestRequeueFiles:
    """Tests for requeue_files()."""

    @pytest.mark.asyncio
    async def test_resets_status_and_keeps_attributes(self):
        store = InMemoryMetadataStore()
        store.add_file("m1", "u1", status=FileStatus.FAILED, size=10)

        result, missing = await requeue_files(store, "m1", ["u1", "u9"])

        assert result.updated == 1
        assert missing == ["u9"]
        record = await store.get_file("m1", "u1")
        assert record.status is FileStatus.IMPORTED
        assert record.attributes["Size"] == 10

    @pytest.mark.asyncio
    async def test_partial_failure_raises(self):
        store = PartialStore(refuse={"u2"})
        store.add_file("m1", "u1", status=FileStatus.FAILED)
        store.add_file("m1", "u2", status=FileStatus.FAILED)

        with pytest.raises(BatchPartialFailureError) as exc_info:
            await requeue_files(store, "m1", ["u1", "u2"])

        assert exc_info.value.failed_files == ["u2"]
        assert store.status_of("m1", "u1") is FileStatus.IMPORTED
