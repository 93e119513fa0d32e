"""
DynamoDB metadata store for manifests and manifest files.

Pending files are read from the ``StatusIndex`` global secondary index
of the file table, one small page at a time, so a long run keeps
picking up a consistent trickle of work.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from upload_mover.core.errors import ManifestNotFoundError, PendingScanError
from upload_mover.core.logger import get_logger
from upload_mover.storage.interfaces import MetadataStore
from upload_mover.types import (
    FileRecord,
    FileStatus,
    ManifestRecord,
    PendingFile,
    SyncResult,
)

logger = get_logger(__name__)

STATUS_INDEX = "StatusIndex"
DEFAULT_PAGE_SIZE = 5

# Hard limit of a single batch_write_item call
BATCH_WRITE_LIMIT = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.1

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    return {key: _serializer.serialize(value) for key, value in item.items()}


def deserialize_item(item: dict[str, Any]) -> dict[str, Any]:
    return {key: _deserializer.deserialize(value) for key, value in item.items()}


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return int(value)
    return int(value)


class DynamoMetadataStore(MetadataStore):
    """
    MetadataStore backed by a manifest table and a manifest file table.

    Attributes:
        client: aioboto3 DynamoDB client
        manifest_table: Table keyed by ManifestId
        file_table: Table keyed by ManifestId and UploadId
        page_size: Items per page when scanning pending files
        max_retries: Retries for items left unprocessed by a batch write
        retry_delay: Base delay; retry n sleeps ``retry_delay * n``
    """

    def __init__(
        self,
        client: Any,
        manifest_table: str,
        file_table: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        self.client = client
        self.manifest_table = manifest_table
        self.file_table = file_table
        self.page_size = page_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def get_manifest(self, manifest_id: str) -> ManifestRecord:
        response = await self.client.get_item(
            TableName=self.manifest_table,
            Key=serialize_item({"ManifestId": manifest_id}),
        )
        raw = response.get("Item")
        if not raw:
            raise ManifestNotFoundError(manifest_id)

        item = deserialize_item(raw)
        return ManifestRecord(
            manifest_id=item["ManifestId"],
            organization_id=_as_int(item["OrganizationId"]),
            dataset_id=_as_int(item["DatasetId"]),
            status=item.get("Status", ""),
            user_id=_as_int(item.get("UserId")),
        )

    async def iter_pending_files(self) -> AsyncIterator[PendingFile]:
        paginator = self.client.get_paginator("query")
        pages = paginator.paginate(
            TableName=self.file_table,
            IndexName=STATUS_INDEX,
            KeyConditionExpression="#status = :hashKey",
            ExpressionAttributeNames={"#status": "Status"},
            ExpressionAttributeValues={":hashKey": {"S": FileStatus.IMPORTED.value}},
            PaginationConfig={"PageSize": self.page_size},
        )

        page_number = 0
        try:
            async for page in pages:
                items = page.get("Items", [])
                logger.debug(f"Scanned page {page_number} with {len(items)} pending files")
                page_number += 1
                for raw in items:
                    pending = self._pending_file(raw)
                    if pending is not None:
                        yield pending
        except Exception as e:
            raise PendingScanError(
                f"Error getting next page of pending files: {e}",
                table=self.file_table,
                page_number=page_number,
            ) from e

    def _pending_file(self, raw: dict[str, Any]) -> PendingFile | None:
        try:
            item = deserialize_item(raw)
            return PendingFile(
                manifest_id=item["ManifestId"],
                upload_id=item["UploadId"],
                status=FileStatus(item.get("Status", FileStatus.IMPORTED.value)),
                size=_as_int(item.get("Size")),
            )
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Error parsing pending file item {raw}: {e}")
            return None

    async def update_file_status(
        self,
        manifest_id: str,
        upload_id: str,
        status: FileStatus,
        message: str = "",
    ) -> None:
        await self.client.update_item(
            TableName=self.file_table,
            Key=serialize_item({"ManifestId": manifest_id, "UploadId": upload_id}),
            UpdateExpression="SET #status = :status, #message = :message",
            ExpressionAttributeNames={"#status": "Status", "#message": "FailedMessage"},
            ExpressionAttributeValues=serialize_item({":status": status.value, ":message": message}),
        )

    async def get_file(self, manifest_id: str, upload_id: str) -> FileRecord | None:
        response = await self.client.get_item(
            TableName=self.file_table,
            Key=serialize_item({"ManifestId": manifest_id, "UploadId": upload_id}),
        )
        raw = response.get("Item")
        if not raw:
            return None

        item = deserialize_item(raw)
        status = FileStatus(item.pop("Status", FileStatus.IMPORTED.value))
        item.pop("ManifestId", None)
        item.pop("UploadId", None)
        return FileRecord(manifest_id=manifest_id, upload_id=upload_id, status=status, attributes=item)

    async def sync_files(self, manifest_id: str, files: Iterable[FileRecord]) -> SyncResult:
        records = list(files)
        result = SyncResult()

        for start in range(0, len(records), BATCH_WRITE_LIMIT):
            chunk = records[start : start + BATCH_WRITE_LIMIT]
            failed = await self._write_batch(manifest_id, chunk)
            for record in chunk:
                if record.upload_id in failed:
                    result.failed_files.append(record.upload_id)
                elif record.status is FileStatus.REMOVED:
                    result.removed += 1
                else:
                    result.updated += 1

        if result.failed_files:
            logger.warning(
                f"{len(result.failed_files)} files of manifest {manifest_id} were not written"
            )
        return result

    async def _write_batch(self, manifest_id: str, chunk: list[FileRecord]) -> set[str]:
        """
        Write one chunk, retrying unprocessed items.

        Returns:
            Upload ids still unprocessed after the retry budget
        """
        request_items = {self.file_table: [self._write_request(manifest_id, r) for r in chunk]}
        try:
            response = await self.client.batch_write_item(RequestItems=request_items)
        except Exception as e:
            logger.error(f"Unable to batch write files of manifest {manifest_id}: {e}")
            return {record.upload_id for record in chunk}

        unprocessed = response.get("UnprocessedItems") or {}
        attempt = 0
        while unprocessed.get(self.file_table) and attempt < self.max_retries:
            attempt += 1
            await asyncio.sleep(self.retry_delay * attempt)
            try:
                response = await self.client.batch_write_item(RequestItems=unprocessed)
            except Exception as e:
                logger.error(f"Batch write retry {attempt} failed for manifest {manifest_id}: {e}")
                continue
            unprocessed = response.get("UnprocessedItems") or {}

        leftover = unprocessed.get(self.file_table, [])
        if leftover:
            logger.warning(f"DynamoDB did not ingest {len(leftover)} file records after {attempt} retries")
        return {self._request_upload_id(request) for request in leftover}

    def _write_request(self, manifest_id: str, record: FileRecord) -> dict[str, Any]:
        key = {"ManifestId": manifest_id, "UploadId": record.upload_id}
        if record.status is FileStatus.REMOVED:
            return {"DeleteRequest": {"Key": serialize_item(key)}}
        item = {**record.attributes, **key, "Status": record.status.value}
        return {"PutRequest": {"Item": serialize_item(item)}}

    @staticmethod
    def _request_upload_id(request: dict[str, Any]) -> str:
        if "PutRequest" in request:
            return request["PutRequest"]["Item"]["UploadId"]["S"]
        return request["DeleteRequest"]["Key"]["UploadId"]["S"]
