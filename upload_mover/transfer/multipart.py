"""
Multipart Copy Engine - server-side chunked copies between buckets.

Objects above the single-copy limit are copied as byte-range parts by a
bounded pool of part workers, then finalized in part-number order. Any
failure aborts the session so no half-copied object ever becomes visible
at the destination key.

Usage:
    >>> copier = MultipartCopier(part_size=105 * MiB, workers=10)
    >>> session = await copier.copy(
    ...     client, timeout=3600,
    ...     source_bucket="uploads", source_key="manifest/upload",
    ...     dest_bucket="storage-use1", dest_key="O1/D2/manifest/upload",
    ...     object_size=size,
    ... )

Lifecycle:
    1. create_multipart_upload → upload id
    2. producer enqueues (part number, byte range) tasks, then closes the queue
    3. part workers issue upload_part_copy, emit (part number, etag)
    4. aggregator collects results until every worker has exited
    5. failure (parts or finalize) → exactly one best-effort abort, original error re-raised
    6. success → parts sorted, complete_multipart_upload
"""

import asyncio
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from upload_mover.core.config import DEFAULT_COPY_WORKERS
from upload_mover.core.errors import (
    CompleteUploadError,
    CopyTimeoutError,
    NoUploadIdError,
    PartCopyError,
)
from upload_mover.core.logger import get_logger
from upload_mover.monitoring.metrics import MULTIPART_ABORTS, PARTS_COPIED

logger = get_logger(__name__)

MiB = 1024 * 1024

# 105 MiB parts keep a 1 TB object under the 10,000 part limit of the destination
DEFAULT_PART_SIZE = 105 * MiB

# Real limit for copy_object is 5 GiB, stay conservative
SINGLE_COPY_LIMIT = 5 * 1000 * 1000 * 1000

_CLOSED = object()


class SessionState(Enum):
    """Lifecycle of a multipart session; OPEN is left exactly once."""

    OPEN = "open"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class CompletedPart:
    """A copied part as required by the completion call."""

    part_number: int
    etag: str

    def to_dict(self) -> dict[str, Any]:
        return {"PartNumber": self.part_number, "ETag": self.etag}


@dataclass(frozen=True)
class AbortOutcome:
    """
    Result of the best-effort abort of a failed session.

    Advisory only: a failed abort is logged and never replaces the error
    that caused it.
    """

    attempted: bool
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.attempted and self.error is None


@dataclass
class MultipartSession:
    """
    Transient state of one chunked copy.

    Attributes:
        upload_id: Session id issued by the destination
        bucket: Destination bucket
        key: Destination key
        parts: Completed parts, in completion order
        state: Current lifecycle state
        abort_outcome: Set when the session was aborted
    """

    upload_id: str
    bucket: str
    key: str
    parts: list[CompletedPart] = field(default_factory=list)
    state: SessionState = SessionState.OPEN
    abort_outcome: AbortOutcome | None = None

    def ordered_parts(self) -> list[CompletedPart]:
        """Parts sorted ascending by part number."""
        return sorted(self.parts, key=lambda part: part.part_number)

    def _transition(self, state: SessionState) -> None:
        if self.state is not SessionState.OPEN:
            msg = f"Multipart session {self.upload_id} already {self.state.value}"
            raise RuntimeError(msg)
        self.state = state


def build_copy_source_range(start: int, object_size: int, part_size: int = DEFAULT_PART_SIZE) -> str:
    """HTTP range of the part starting at ``start``, clamped to the last byte."""
    end = min(start + part_size - 1, object_size - 1)
    return f"bytes={start}-{end}"


def part_ranges(object_size: int, part_size: int = DEFAULT_PART_SIZE) -> Iterator[tuple[int, str]]:
    """
    Partition ``[0, object_size)`` into numbered byte ranges.

    Yields:
        (part_number, "bytes=start-end") with part numbers starting at 1
    """
    for part_number, start in enumerate(range(0, object_size, part_size), start=1):
        yield part_number, build_copy_source_range(start, object_size, part_size)


def strip_etag(etag: str) -> str:
    """The destination returns ETags wrapped in quotes."""
    return etag.strip('"')


async def copy_object(
    client: Any,
    source_bucket: str,
    source_key: str,
    dest_bucket: str,
    dest_key: str,
) -> None:
    """Single-shot server-side copy for objects within the single-copy limit."""
    logger.debug(f"Simple copy: {source_bucket}/{source_key} to: {dest_bucket}:{dest_key}")
    await client.copy_object(
        Bucket=dest_bucket,
        Key=dest_key,
        CopySource={"Bucket": source_bucket, "Key": source_key},
    )


class MultipartCopier:
    """
    Copies one object as parallel byte-range parts.

    Attributes:
        part_size: Size of every part but the last, in bytes
        workers: Number of concurrent part workers per copy
    """

    def __init__(self, part_size: int = DEFAULT_PART_SIZE, workers: int = DEFAULT_COPY_WORKERS):
        if part_size < 1:
            msg = f"part_size must be positive, got {part_size}"
            raise ValueError(msg)
        if workers < 1:
            msg = f"workers must be at least 1, got {workers}"
            raise ValueError(msg)
        self.part_size = part_size
        self.workers = workers

    def part_count(self, object_size: int) -> int:
        return -(-object_size // self.part_size)

    async def copy(
        self,
        client: Any,
        timeout: float,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
        object_size: int,
    ) -> MultipartSession:
        """
        Copy an object with a multipart session.

        Args:
            client: S3 client for the destination region
            timeout: Deadline in seconds for starting the session and copying parts
            source_bucket: Bucket the object is copied from
            source_key: Key of the source object
            dest_bucket: Bucket the object is copied to
            dest_key: Key of the destination object
            object_size: Size of the source object in bytes

        Returns:
            The completed session

        Raises:
            NoUploadIdError: If the destination did not return an upload id
            PartCopyError: If any part failed (session aborted)
            CopyTimeoutError: If the deadline expired (session aborted)
            CompleteUploadError: If finalizing the session failed
        """
        started = time.monotonic()
        try:
            session = await asyncio.wait_for(
                self._start(client, dest_bucket, dest_key), timeout=timeout
            )
        except TimeoutError as e:
            raise CopyTimeoutError(timeout, bucket=dest_bucket, key=dest_key) from e

        remaining = max(timeout - (time.monotonic() - started), 0.0)
        logger.info(
            f"Copying {source_bucket}/{source_key} to {dest_bucket}/{dest_key} "
            f"in {self.part_count(object_size)} parts (upload {session.upload_id})"
        )

        try:
            parts, failure = await asyncio.wait_for(
                self._copy_parts(client, session, source_bucket, source_key, object_size),
                timeout=remaining,
            )
        except TimeoutError as e:
            await self._abort(client, session)
            raise CopyTimeoutError(
                timeout, bucket=dest_bucket, key=dest_key, upload_id=session.upload_id
            ) from e

        if failure is not None:
            part_number, error = failure
            await self._abort(client, session)
            raise PartCopyError(
                f"Part copy failed: {error}",
                upload_id=session.upload_id,
                part_number=part_number,
                bucket=dest_bucket,
                key=dest_key,
            ) from error

        session.parts = parts
        try:
            await self._complete(client, session)
        except CompleteUploadError:
            await self._abort(client, session)
            raise
        logger.info(
            f"Successfully copied: {source_bucket} Key: {source_key} "
            f"to Bucket: {dest_bucket} Key: {dest_key}"
        )
        return session

    async def _start(self, client: Any, dest_bucket: str, dest_key: str) -> MultipartSession:
        response = await client.create_multipart_upload(Bucket=dest_bucket, Key=dest_key)
        upload_id = (response or {}).get("UploadId")
        if not upload_id:
            raise NoUploadIdError(dest_bucket, dest_key)
        return MultipartSession(upload_id=upload_id, bucket=dest_bucket, key=dest_key)

    async def _copy_parts(
        self,
        client: Any,
        session: MultipartSession,
        source_bucket: str,
        source_key: str,
        object_size: int,
    ) -> tuple[list[CompletedPart], tuple[int, Exception] | None]:
        """
        Run producer, part workers and aggregator until every worker exits.

        Returns:
            Collected parts and the first (part_number, error) failure, if any
        """
        tasks: asyncio.Queue = asyncio.Queue(maxsize=self.workers)
        results: asyncio.Queue = asyncio.Queue(maxsize=self.workers)

        producer = asyncio.create_task(self._allocate(tasks, object_size))
        aggregator = asyncio.create_task(self._aggregate(results))
        workers = [
            asyncio.create_task(
                self._worker(worker_id, client, session, source_bucket, source_key, tasks, results)
            )
            for worker_id in range(1, self.workers + 1)
        ]

        try:
            outcomes = await asyncio.gather(*workers)
            await results.put(_CLOSED)
            parts = await aggregator
        finally:
            producer.cancel()
            aggregator.cancel()
            await asyncio.gather(producer, aggregator, return_exceptions=True)

        failures = [outcome for outcome in outcomes if outcome is not None]
        logger.debug(f"Finished checking status of workers for upload {session.upload_id}")
        return parts, failures[0] if failures else None

    async def _allocate(self, tasks: asyncio.Queue, object_size: int) -> None:
        """Enqueue every part, then one close marker per worker."""
        for part in part_ranges(object_size, self.part_size):
            await tasks.put(part)
        for _ in range(self.workers):
            await tasks.put(_CLOSED)

    async def _aggregate(self, results: asyncio.Queue) -> list[CompletedPart]:
        parts: list[CompletedPart] = []
        while True:
            item = await results.get()
            if item is _CLOSED:
                return parts
            parts.append(item)

    async def _worker(
        self,
        worker_id: int,
        client: Any,
        session: MultipartSession,
        source_bucket: str,
        source_key: str,
        tasks: asyncio.Queue,
        results: asyncio.Queue,
    ) -> tuple[int, Exception] | None:
        """
        Copy parts until the queue closes.

        Returns:
            None when the queue was drained, (part_number, error) on the
            first failure; a failed worker takes no further parts
        """
        try:
            while True:
                task = await tasks.get()
                if task is _CLOSED:
                    return None

                part_number, copy_source_range = task
                try:
                    response = await client.upload_part_copy(
                        Bucket=session.bucket,
                        Key=session.key,
                        PartNumber=part_number,
                        UploadId=session.upload_id,
                        CopySource={"Bucket": source_bucket, "Key": source_key},
                        CopySourceRange=copy_source_range,
                    )
                    etag = strip_etag(response["CopyPartResult"]["ETag"])
                except Exception as e:
                    logger.warning(
                        f"Part {part_number} of upload {session.upload_id} failed "
                        f"({copy_source_range}): {e}"
                    )
                    return part_number, e

                await results.put(CompletedPart(part_number=part_number, etag=etag))
                PARTS_COPIED.inc()
                logger.debug(f"Successfully copied part {part_number} of {session.upload_id}")
        finally:
            logger.debug(f"Closing part worker {worker_id} of upload {session.upload_id}")

    async def _complete(self, client: Any, session: MultipartSession) -> None:
        parts = session.ordered_parts()
        try:
            await client.complete_multipart_upload(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                MultipartUpload={"Parts": [part.to_dict() for part in parts]},
            )
        except Exception as e:
            raise CompleteUploadError(
                f"Error completing upload: {e}",
                upload_id=session.upload_id,
                bucket=session.bucket,
                key=session.key,
            ) from e
        session.parts = parts
        session._transition(SessionState.COMPLETED)

    async def _abort(self, client: Any, session: MultipartSession) -> AbortOutcome:
        """Best-effort abort; the outcome is recorded and logged, never raised."""
        logger.info(f"Attempting to abort upload {session.upload_id}")
        MULTIPART_ABORTS.inc()
        try:
            await client.abort_multipart_upload(
                Bucket=session.bucket, Key=session.key, UploadId=session.upload_id
            )
            outcome = AbortOutcome(attempted=True)
        except Exception as e:
            logger.error(f"Error aborting failed upload session {session.upload_id}: {e}")
            outcome = AbortOutcome(attempted=True, error=str(e))
        session.abort_outcome = outcome
        session._transition(SessionState.ABORTED)
        return outcome
