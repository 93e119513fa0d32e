"""
Unified error hierarchy for the upload mover.

All mover exceptions inherit from MoverError. Every class carries an
ErrorKind so callers can decide between skipping a file, retrying a
batch, failing a request or aborting the process without inspecting
concrete types.
"""

import re
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Where an error is decided."""

    CONFIGURATION = "configuration"  # Fatal at setup
    PER_FILE = "per_file"  # Log and skip the file
    PARTIAL_BATCH = "partial_batch"  # Report failed items to the caller
    CONNECTION = "connection"  # Fail the request, retry on next access
    MULTIPART = "multipart"  # Abort session, fail the file


class MoverError(Exception):
    """
    Base exception for all mover operations.

    Attributes:
        message: Human readable message
        details: Context such as manifest_id, upload_id, bucket or key
    """

    kind: ErrorKind = ErrorKind.PER_FILE

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in (details or {}).items() if v is not None}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


# ============================================================================
# Configuration errors
# ============================================================================


class MissingConfigurationError(MoverError):
    """Required environment value not set."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, variable: str, message: str | None = None):
        super().__init__(
            message or f"Required environment variable not set: {variable}",
            details={"variable": variable},
        )
        self.variable = variable


class UnresolvableRegionError(MoverError):
    """
    Bucket name does not end in a known region short code.

    Treated as a configuration problem of the bucket, never retried
    within a run.
    """

    kind = ErrorKind.CONFIGURATION

    def __init__(self, bucket: str):
        super().__init__(
            "Could not determine region code from bucket name",
            details={"bucket": bucket},
        )
        self.bucket = bucket


# ============================================================================
# Multipart session errors
# ============================================================================


class NoUploadIdError(MoverError):
    """Destination did not return an upload id for a multipart session."""

    kind = ErrorKind.MULTIPART

    def __init__(self, bucket: str, key: str):
        super().__init__(
            "No upload id found in start upload response",
            details={"bucket": bucket, "key": key},
        )


class PartCopyError(MoverError):
    """A part copy failed; the session was aborted."""

    kind = ErrorKind.MULTIPART

    def __init__(
        self,
        message: str,
        upload_id: str | None = None,
        part_number: int | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"upload_id": upload_id, "part_number": part_number, **details},
        )
        self.upload_id = upload_id
        self.part_number = part_number


class CompleteUploadError(MoverError):
    """The destination rejected the completion of a multipart session."""

    kind = ErrorKind.MULTIPART

    def __init__(self, message: str, upload_id: str | None = None, **details):
        super().__init__(message, details={"upload_id": upload_id, **details})
        self.upload_id = upload_id


class CopyTimeoutError(MoverError):
    """Copy of a single file exceeded its deadline."""

    kind = ErrorKind.MULTIPART

    def __init__(self, timeout_seconds: float, kind: ErrorKind | None = None, **details):
        super().__init__(
            f"Copy timed out after {timeout_seconds}s",
            details={"timeout_seconds": timeout_seconds, **details},
        )
        self.timeout_seconds = timeout_seconds
        if kind is not None:
            self.kind = kind


# ============================================================================
# Connection errors
# ============================================================================


class ConnectionRefreshError(MoverError):
    """
    Relational connection could not be (re)established.

    Fails the current request only; the next access retries the refresh.
    """

    kind = ErrorKind.CONNECTION

    def __init__(self, message: str = "Failed to refresh connection pool", url: str | None = None, **details):
        super().__init__(message, details={"url": self._mask_url(url), **details})
        self.url = url

    @staticmethod
    def _mask_url(url: str | None) -> str | None:
        """Mask sensitive parts of connection URL."""
        if not url:
            return None
        return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


# ============================================================================
# Per-file errors
# ============================================================================


class DestinationResolutionError(MoverError):
    """The storage destination of a manifest could not be loaded."""

    def __init__(self, manifest_id: str, cause: BaseException | None = None):
        message = f"Error loading storage destination for manifest {manifest_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, details={"manifest_id": manifest_id})
        self.manifest_id = manifest_id


class ManifestNotFoundError(MoverError):
    """Manifest id not present in the key-value store."""

    def __init__(self, manifest_id: str):
        super().__init__("Manifest not found", details={"manifest_id": manifest_id})
        self.manifest_id = manifest_id


class FileNotFoundInDatabaseError(MoverError):
    """No relational file row matched an upload id."""

    def __init__(self, upload_id: str, organization_id: int | None = None):
        super().__init__(
            "File not found in database",
            details={"upload_id": upload_id, "organization_id": organization_id},
        )
        self.upload_id = upload_id


class MultipleRowsAffectedError(MoverError):
    """An update keyed by upload id touched more than one row."""

    def __init__(self, upload_id: str, rows: int):
        super().__init__(
            "Multiple rows affected by file update",
            details={"upload_id": upload_id, "rows": rows},
        )
        self.upload_id = upload_id
        self.rows = rows


# ============================================================================
# Batch and source errors
# ============================================================================


class BatchPartialFailureError(MoverError):
    """Items left unprocessed after the batch-write retry budget."""

    kind = ErrorKind.PARTIAL_BATCH

    def __init__(self, failed_files: list[str], attempts: int, **details):
        super().__init__(
            f"{len(failed_files)} items unprocessed after {attempts} retries",
            details={"failed_count": len(failed_files), **details},
        )
        self.failed_files = failed_files
        self.attempts = attempts


class PendingScanError(MoverError):
    """The scan for pending files failed; the run cannot be trusted."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str = "Pending file scan failed", **details):
        super().__init__(message, details=details)
