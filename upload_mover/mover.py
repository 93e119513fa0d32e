"""
Wiring for a mover run.

Builds the clients, stores, caches and pools from a MoverConfig and
owns their lifetime. Anything wrong at this stage is a configuration
error and aborts the run before a single file is touched.
"""

from collections.abc import Iterable
from contextlib import AsyncExitStack
from typing import Any

import aioboto3

from upload_mover.cache import StorageDestinationCache, make_destination_loader
from upload_mover.core.config import MoverConfig
from upload_mover.core.errors import BatchPartialFailureError, MissingConfigurationError, UnresolvableRegionError
from upload_mover.core.logger import get_logger
from upload_mover.storage.connection import ExpiringConnectionManager
from upload_mover.storage.dynamodb import DEFAULT_MAX_RETRIES, DynamoMetadataStore
from upload_mover.storage.interfaces import MetadataStore
from upload_mover.storage.postgresql import PostgresQueries, rds_connection_supplier
from upload_mover.transfer.clients import RegionalClientFactory
from upload_mover.transfer.multipart import MultipartCopier
from upload_mover.transfer.regions import resolve_region
from upload_mover.types import FileRecord, FileStatus, MigrationStats, SyncResult
from upload_mover.worker import MigrationWorkerPool

logger = get_logger(__name__)


def validate_storage_bucket(bucket: str) -> None:
    """
    The default storage bucket must resolve to a region.

    Raises:
        UnresolvableRegionError: If the bucket name has no known region code
    """
    _, found = resolve_region(bucket)
    if not found:
        raise UnresolvableRegionError(bucket)


async def run_mover(config: MoverConfig, session: Any | None = None) -> MigrationStats:
    """
    Move every pending file once.

    Raises:
        MissingConfigurationError: If the relational store is not configured
        UnresolvableRegionError: If the default storage bucket has no region
        ConnectionRefreshError: If the initial relational connection fails
        PendingScanError: If the pending file scan failed
    """
    if config.postgres is None:
        raise MissingConfigurationError("RDS_PROXY_ENDPOINT")
    validate_storage_bucket(config.default_storage_bucket)

    session = session or aioboto3.Session()
    async with AsyncExitStack() as stack:
        clients = await stack.enter_async_context(
            RegionalClientFactory(session, default_region=config.region)
        )
        dynamodb = await stack.enter_async_context(
            session.client("dynamodb", region_name=config.region)
        )
        store = DynamoMetadataStore(dynamodb, config.manifest_table, config.file_table)

        connections = await stack.enter_async_context(
            ExpiringConnectionManager(
                rds_connection_supplier(config.postgres, session), PostgresQueries
            )
        )
        health = await connections.health_check()
        if health.is_healthy:
            logger.info(f"Relational connection ready in {health.latency_ms:.1f} ms")
        else:
            logger.warning(f"Relational connection unhealthy after setup: {health.message}")

        destinations = StorageDestinationCache(
            make_destination_loader(store, connections.get_queries, config.default_storage_bucket)
        )
        pool = MigrationWorkerPool(
            store,
            destinations,
            clients,
            upload_bucket=config.upload_bucket,
            queries_provider=connections.get_queries,
            copier=MultipartCopier(workers=config.copy_workers),
            workers=config.workers,
            timeout=config.file_move_timeout,
            delete_source=config.delete_source,
        )
        logger.info(
            f"Moving files from {config.upload_bucket} with {config.workers} workers, "
            f"timeout {config.file_move_timeout_minutes} minutes"
        )
        return await pool.run()


async def requeue_files(
    store: MetadataStore,
    manifest_id: str,
    upload_ids: Iterable[str],
) -> tuple[SyncResult, list[str]]:
    """
    Reset files to Imported so the next run moves them again.

    Existing attributes of each file are kept.

    Returns:
        Tuple of (sync result, upload ids not found in the manifest)

    Raises:
        BatchPartialFailureError: If some files could not be written
    """
    records: list[FileRecord] = []
    missing: list[str] = []
    for upload_id in upload_ids:
        existing = await store.get_file(manifest_id, upload_id)
        if existing is None:
            missing.append(upload_id)
            continue
        records.append(
            FileRecord(
                manifest_id=manifest_id,
                upload_id=upload_id,
                status=FileStatus.IMPORTED,
                attributes=existing.attributes,
            )
        )

    result = await store.sync_files(manifest_id, records)
    if not result.success:
        raise BatchPartialFailureError(
            result.failed_files, DEFAULT_MAX_RETRIES, manifest_id=manifest_id
        )
    return result, missing


async def requeue(config: MoverConfig, manifest_id: str, upload_ids: Iterable[str], session: Any | None = None):
    """Requeue files against the configured file table."""
    session = session or aioboto3.Session()
    async with session.client("dynamodb", region_name=config.region) as dynamodb:
        store = DynamoMetadataStore(dynamodb, config.manifest_table, config.file_table)
        return await requeue_files(store, manifest_id, upload_ids)
