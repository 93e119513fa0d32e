"""
Shared types for the upload mover.

Defines the records that flow between the pending-file source, the
destination cache, the copy engine and the metadata stores.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FileStatus(Enum):
    """
    Status of a manifest file in the key-value store.

    State transitions handled by the mover:
        IMPORTED → FINALIZED
        IMPORTED (unchanged on failure, retried by the next run)
    """

    IMPORTED = "Imported"
    """Upload complete, waiting to be moved to permanent storage"""

    FINALIZED = "Finalized"
    """File copied to its storage bucket"""

    FAILED = "Failed"
    """File could not be processed"""

    REMOVED = "Removed"
    """File was removed from the manifest"""


@dataclass(frozen=True)
class PendingFile:
    """
    A file waiting to be moved.

    Attributes:
        manifest_id: Upload session the file belongs to
        upload_id: Identifier of the uploaded object
        status: Status as read by the source
        size: Object size in bytes, if the source knows it
    """

    manifest_id: str
    upload_id: str
    status: FileStatus = FileStatus.IMPORTED
    size: int | None = None

    @property
    def source_key(self) -> str:
        """Key of the staged object in the upload bucket."""
        return f"{self.manifest_id}/{self.upload_id}"


@dataclass(frozen=True)
class StorageDestination:
    """
    Resolved destination for every file of a manifest.

    Never mutated once created; cached for the lifetime of the process.
    """

    organization_id: int
    storage_bucket: str
    dataset_id: int

    def target_key(self, manifest_id: str, upload_id: str) -> str:
        """Key of a file in the permanent storage bucket."""
        return f"O{self.organization_id}/D{self.dataset_id}/{manifest_id}/{upload_id}"


@dataclass(frozen=True)
class ManifestRecord:
    """Manifest row from the key-value store."""

    manifest_id: str
    organization_id: int
    dataset_id: int
    status: str = ""
    user_id: int | None = None


@dataclass(frozen=True)
class Organization:
    """Organization row from the relational store."""

    id: int
    name: str = ""
    storage_bucket: str | None = None


@dataclass
class FileRecord:
    """
    Manifest file entry for batch writes.

    Attributes:
        manifest_id: Partition key
        upload_id: Sort key
        status: Status to write; REMOVED turns the write into a delete
        attributes: Remaining item attributes, written as-is
    """

    manifest_id: str
    upload_id: str
    status: FileStatus
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncResult:
    """
    Outcome of a batch write against the file table.

    Counters only include items that were actually processed; items still
    unprocessed after the retry budget are listed in ``failed_files``.
    """

    updated: int = 0
    removed: int = 0
    failed_files: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_files

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "updated": self.updated,
            "removed": self.removed,
            "failed_files": list(self.failed_files),
        }


@dataclass
class MigrationStats:
    """Counters for one run of the worker pool."""

    moved: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.moved + self.failed + self.skipped

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "moved": self.moved,
            "failed": self.failed,
            "skipped": self.skipped,
            "total": self.total,
        }
