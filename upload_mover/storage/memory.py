"""
In-memory metadata stores.

Same interfaces as the DynamoDB and PostgreSQL implementations, holding
everything in dictionaries. Used by tests and local dry runs.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable

from upload_mover.core.errors import (
    FileNotFoundInDatabaseError,
    ManifestNotFoundError,
    PendingScanError,
)
from upload_mover.storage.interfaces import MetadataStore, OrganizationQueries
from upload_mover.types import (
    FileRecord,
    FileStatus,
    ManifestRecord,
    Organization,
    PendingFile,
    SyncResult,
)


class InMemoryMetadataStore(MetadataStore):
    """
    Manifests and files kept in dictionaries.

    Attributes:
        manifests: ManifestRecord by manifest id
        files: FileRecord by (manifest id, upload id)
        scan_error: Raised by the pending scan after the last file, if set
    """

    def __init__(self):
        self.manifests: dict[str, ManifestRecord] = {}
        self.files: dict[tuple[str, str], FileRecord] = {}
        self.scan_error: Exception | None = None
        self.manifest_reads = 0
        self._lock = asyncio.Lock()

    def add_manifest(self, manifest: ManifestRecord) -> None:
        self.manifests[manifest.manifest_id] = manifest

    def add_file(
        self,
        manifest_id: str,
        upload_id: str,
        status: FileStatus = FileStatus.IMPORTED,
        size: int | None = None,
    ) -> None:
        attributes = {"Size": size} if size is not None else {}
        self.files[(manifest_id, upload_id)] = FileRecord(
            manifest_id=manifest_id, upload_id=upload_id, status=status, attributes=attributes
        )

    def status_of(self, manifest_id: str, upload_id: str) -> FileStatus:
        return self.files[(manifest_id, upload_id)].status

    async def get_manifest(self, manifest_id: str) -> ManifestRecord:
        self.manifest_reads += 1
        manifest = self.manifests.get(manifest_id)
        if manifest is None:
            raise ManifestNotFoundError(manifest_id)
        return manifest

    async def iter_pending_files(self) -> AsyncIterator[PendingFile]:
        async with self._lock:
            pending = [
                PendingFile(
                    manifest_id=record.manifest_id,
                    upload_id=record.upload_id,
                    status=record.status,
                    size=record.attributes.get("Size"),
                )
                for record in self.files.values()
                if record.status is FileStatus.IMPORTED
            ]

        for pending_file in pending:
            yield pending_file

        if self.scan_error is not None:
            raise PendingScanError(f"Pending file scan failed: {self.scan_error}") from self.scan_error

    async def update_file_status(
        self,
        manifest_id: str,
        upload_id: str,
        status: FileStatus,
        message: str = "",
    ) -> None:
        async with self._lock:
            record = self.files.get((manifest_id, upload_id))
            if record is None:
                record = FileRecord(manifest_id=manifest_id, upload_id=upload_id, status=status)
                self.files[(manifest_id, upload_id)] = record
            record.status = status
            if message:
                record.attributes["FailedMessage"] = message

    async def get_file(self, manifest_id: str, upload_id: str) -> FileRecord | None:
        return self.files.get((manifest_id, upload_id))

    async def sync_files(self, manifest_id: str, files: Iterable[FileRecord]) -> SyncResult:
        result = SyncResult()
        async with self._lock:
            for record in files:
                key = (manifest_id, record.upload_id)
                if record.status is FileStatus.REMOVED:
                    self.files.pop(key, None)
                    result.removed += 1
                else:
                    self.files[key] = FileRecord(
                        manifest_id=manifest_id,
                        upload_id=record.upload_id,
                        status=record.status,
                        attributes=dict(record.attributes),
                    )
                    result.updated += 1
        return result


class InMemoryOrganizationQueries(OrganizationQueries):
    """
    Organizations and file locations kept in dictionaries.

    Attributes:
        organizations: Organization by id
        file_locations: (bucket, key) by (organization id, upload id)
    """

    def __init__(self, organizations: Iterable[Organization] = ()):
        self.organizations: dict[int, Organization] = {org.id: org for org in organizations}
        self.file_locations: dict[tuple[int, str], tuple[str | None, str | None]] = {}

    def add_file(self, organization_id: int, upload_id: str) -> None:
        self.file_locations[(organization_id, upload_id)] = (None, None)

    async def get_organization(self, organization_id: int) -> Organization | None:
        return self.organizations.get(organization_id)

    async def update_bucket_for_file(
        self,
        organization_id: int,
        upload_id: str,
        bucket: str,
        key: str,
    ) -> None:
        if (organization_id, upload_id) not in self.file_locations:
            raise FileNotFoundInDatabaseError(upload_id, organization_id)
        self.file_locations[(organization_id, upload_id)] = (bucket, key)
