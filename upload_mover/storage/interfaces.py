"""
Capability interfaces for the metadata stores the mover reads and writes.

The worker pool and the destination cache only depend on these
interfaces; DynamoDB/Postgres implementations and in-memory doubles
sit behind them.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable

from upload_mover.types import (
    FileRecord,
    FileStatus,
    ManifestRecord,
    Organization,
    PendingFile,
    SyncResult,
)


class MetadataStore(ABC):
    """
    Key-value store holding manifests and their files.
    """

    @abstractmethod
    async def get_manifest(self, manifest_id: str) -> ManifestRecord:
        """
        Load a manifest.

        Raises:
            ManifestNotFoundError: If the manifest does not exist
        """
        ...

    @abstractmethod
    def iter_pending_files(self) -> AsyncIterator[PendingFile]:
        """
        Iterate every file with status Imported.

        Finite for one run. Files whose status changes during the run may
        or may not be yielded.

        Raises:
            PendingScanError: If the scan cannot be continued
        """
        ...

    @abstractmethod
    async def update_file_status(
        self,
        manifest_id: str,
        upload_id: str,
        status: FileStatus,
        message: str = "",
    ) -> None:
        """Set the status of a single file."""
        ...

    @abstractmethod
    async def get_file(self, manifest_id: str, upload_id: str) -> FileRecord | None:
        """Load a single file, None if absent."""
        ...

    @abstractmethod
    async def sync_files(self, manifest_id: str, files: Iterable[FileRecord]) -> SyncResult:
        """
        Batch write file records of a manifest.

        Records with status Removed are deleted; others are written.
        Items the store refuses after the retry budget are reported in
        ``SyncResult.failed_files`` and excluded from the counters.
        """
        ...


class OrganizationQueries(ABC):
    """
    Relational queries the mover needs.
    """

    @abstractmethod
    async def get_organization(self, organization_id: int) -> Organization | None:
        ...

    @abstractmethod
    async def update_bucket_for_file(
        self,
        organization_id: int,
        upload_id: str,
        bucket: str,
        key: str,
    ) -> None:
        """
        Point the file row of an upload at its new location.

        Raises:
            FileNotFoundInDatabaseError: If no row matched
            MultipleRowsAffectedError: If more than one row matched
        """
        ...
