"""
Upload Mover - moves staged uploads into permanent, region-specific
storage buckets and records where every file ended up.

Quick Start:
    >>> from upload_mover import MoverConfig, run_mover
    >>>
    >>> stats = await run_mover(MoverConfig.from_env())
    >>> print(stats.to_dict())
"""

__version__ = "0.1.0"

from upload_mover.cache import StorageDestinationCache, make_destination_loader
from upload_mover.core.config import MoverConfig
from upload_mover.core.errors import ErrorKind, MoverError
from upload_mover.mover import requeue_files, run_mover
from upload_mover.transfer.clients import RegionalClientFactory
from upload_mover.transfer.multipart import MultipartCopier
from upload_mover.transfer.regions import resolve_region
from upload_mover.types import (
    FileRecord,
    FileStatus,
    ManifestRecord,
    MigrationStats,
    Organization,
    PendingFile,
    StorageDestination,
    SyncResult,
)
from upload_mover.worker import MigrationWorkerPool

__all__ = [
    "ErrorKind",
    "FileRecord",
    "FileStatus",
    "ManifestRecord",
    "MigrationStats",
    "MigrationWorkerPool",
    "MoverConfig",
    "MoverError",
    "MultipartCopier",
    "Organization",
    "PendingFile",
    "RegionalClientFactory",
    "StorageDestination",
    "StorageDestinationCache",
    "SyncResult",
    "__version__",
    "make_destination_loader",
    "requeue_files",
    "resolve_region",
]
