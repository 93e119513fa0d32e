"""
Migration Worker Pool - moves pending uploads to permanent storage.

One producer iterates the pending-file source and feeds a bounded queue;
a fixed number of workers drain it. Each file is handled independently:
any failure is logged with the manifest and upload ids, counted, and the
file keeps its status so the next run picks it up again.

Usage:
    >>> pool = MigrationWorkerPool(store, destinations, clients, upload_bucket="uploads")
    >>> stats = await pool.run()
    >>> print(stats.to_dict())

Per file:
    1. resolve the storage destination of the manifest (cached)
    2. get a client for the region of the destination bucket
    3. determine the object size
    4. direct copy within the single-copy limit, multipart copy above it
    5. point the relational file record at the new location
    6. delete the staged object
    7. mark the file Finalized
"""

import asyncio
import time
from collections.abc import AsyncIterable
from typing import Any

from upload_mover.cache import QueriesProvider, StorageDestinationCache
from upload_mover.core.config import DEFAULT_FILE_MOVE_TIMEOUT_MINUTES, DEFAULT_WORKERS
from upload_mover.core.errors import CopyTimeoutError, ErrorKind, PendingScanError
from upload_mover.core.logger import get_logger
from upload_mover.monitoring.logging import clear_file_context, set_file_context
from upload_mover.monitoring.metrics import FILE_DURATION, FILES_PROCESSED
from upload_mover.storage.interfaces import MetadataStore
from upload_mover.transfer.clients import RegionalClientFactory
from upload_mover.transfer.multipart import SINGLE_COPY_LIMIT, MultipartCopier, copy_object
from upload_mover.types import FileStatus, MigrationStats, PendingFile

logger = get_logger(__name__)

_CLOSED = object()


class MigrationWorkerPool:
    """
    Bounded pool of workers moving files out of the upload bucket.

    Attributes:
        store: Metadata store providing pending files and receiving statuses
        destinations: Cache of storage destinations by manifest
        clients: Regional S3 client factory
        upload_bucket: Bucket staged uploads are read from
        queries_provider: Relational queries; None skips file record updates
        copier: Multipart copy engine for large objects
        workers: Number of concurrent file workers
        timeout: Per-file copy deadline in seconds
        single_copy_limit: Largest object copied in a single call
        delete_source: Delete the staged object after a successful move
    """

    def __init__(
        self,
        store: MetadataStore,
        destinations: StorageDestinationCache,
        clients: RegionalClientFactory,
        upload_bucket: str,
        queries_provider: QueriesProvider | None = None,
        copier: MultipartCopier | None = None,
        workers: int = DEFAULT_WORKERS,
        timeout: float = DEFAULT_FILE_MOVE_TIMEOUT_MINUTES * 60.0,
        single_copy_limit: int = SINGLE_COPY_LIMIT,
        delete_source: bool = True,
    ):
        if workers < 1:
            msg = f"workers must be at least 1, got {workers}"
            raise ValueError(msg)
        self.store = store
        self.destinations = destinations
        self.clients = clients
        self.upload_bucket = upload_bucket
        self.queries_provider = queries_provider
        self.copier = copier or MultipartCopier()
        self.workers = workers
        self.timeout = timeout
        self.single_copy_limit = single_copy_limit
        self.delete_source = delete_source

    async def run(self, source: AsyncIterable[PendingFile] | None = None) -> MigrationStats:
        """
        Move every file yielded by the source.

        Args:
            source: Pending files; defaults to the store's pending scan

        Returns:
            Counters for the run

        Raises:
            PendingScanError: If the source failed; raised after the
                files already queued have been processed
        """
        if source is None:
            source = self.store.iter_pending_files()

        stats = MigrationStats()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.workers)
        workers = [
            asyncio.create_task(self._worker(worker_id, queue, stats))
            for worker_id in range(1, self.workers + 1)
        ]
        logger.info(f"Started {self.workers} migration workers")

        scan_error: PendingScanError | None = None
        try:
            async for pending in source:
                if pending.status is not FileStatus.IMPORTED:
                    stats.skipped += 1
                    FILES_PROCESSED.labels(outcome="skipped").inc()
                    continue
                await queue.put(pending)
        except PendingScanError as e:
            scan_error = e
        except Exception as e:
            scan_error = PendingScanError(f"Pending file scan failed: {e}")
            scan_error.__cause__ = e
        finally:
            for _ in workers:
                await queue.put(_CLOSED)
            await asyncio.gather(*workers)

        logger.info(f"Migration run finished: {stats.to_dict()}")
        if scan_error is not None:
            logger.error(f"Pending file scan failed: {scan_error}")
            raise scan_error
        return stats

    async def _worker(self, worker_id: int, queue: asyncio.Queue, stats: MigrationStats) -> None:
        try:
            while True:
                pending = await queue.get()
                if pending is _CLOSED:
                    return
                await self._process(worker_id, pending, stats)
        finally:
            logger.debug(f"Closing migration worker {worker_id}")

    async def _process(self, worker_id: int, pending: PendingFile, stats: MigrationStats) -> None:
        set_file_context(pending.manifest_id, pending.upload_id, worker_id)
        started = time.monotonic()
        try:
            method = await self.move_file(pending)
        except Exception as e:
            stats.failed += 1
            FILES_PROCESSED.labels(outcome="failed").inc()
            logger.error(
                f"Unable to move file {pending.upload_id} of manifest {pending.manifest_id}: {e}"
            )
        else:
            stats.moved += 1
            FILES_PROCESSED.labels(outcome="moved").inc()
            FILE_DURATION.labels(method=method).observe(time.monotonic() - started)
        finally:
            clear_file_context()

    async def move_file(self, pending: PendingFile) -> str:
        """
        Move one file and mark it Finalized.

        Returns:
            "direct" or "multipart", the copy method used

        Raises:
            Exception: Any failure; the file status is left unchanged
        """
        destination = await self.destinations.get_or_load(pending.manifest_id)
        client, region = await self.clients.client_for(destination.storage_bucket)
        source_client = await self.clients.default_client()

        source_key = pending.source_key
        target_key = destination.target_key(pending.manifest_id, pending.upload_id)
        size = pending.size
        if size is None:
            size = await self._object_size(source_client, source_key)

        if size <= self.single_copy_limit:
            method = "direct"
            try:
                await asyncio.wait_for(
                    copy_object(
                        client,
                        self.upload_bucket,
                        source_key,
                        destination.storage_bucket,
                        target_key,
                    ),
                    timeout=self.timeout,
                )
            except TimeoutError as e:
                raise CopyTimeoutError(
                    self.timeout,
                    kind=ErrorKind.PER_FILE,
                    bucket=destination.storage_bucket,
                    key=target_key,
                ) from e
        else:
            method = "multipart"
            await self.copier.copy(
                client,
                self.timeout,
                source_bucket=self.upload_bucket,
                source_key=source_key,
                dest_bucket=destination.storage_bucket,
                dest_key=target_key,
                object_size=size,
            )
        logger.info(
            f"{pending.upload_id} copied to storage bin {destination.storage_bucket} "
            f"({region.region_code}) at {target_key}"
        )

        if self.queries_provider is not None:
            queries = await self.queries_provider()
            await queries.update_bucket_for_file(
                destination.organization_id,
                pending.upload_id,
                destination.storage_bucket,
                target_key,
            )

        if self.delete_source:
            await source_client.delete_object(Bucket=self.upload_bucket, Key=source_key)

        await self.store.update_file_status(
            pending.manifest_id, pending.upload_id, FileStatus.FINALIZED
        )
        return method

    async def _object_size(self, client: Any, key: str) -> int:
        response = await client.head_object(Bucket=self.upload_bucket, Key=key)
        return int(response["ContentLength"])
