"""
Core building blocks: configuration, environment, errors and logging.
"""

from upload_mover.core.config import MoverConfig, PostgresConfig, file_move_timeout_minutes
from upload_mover.core.env import EnvManager, get_env
from upload_mover.core.errors import (
    BatchPartialFailureError,
    CompleteUploadError,
    ConnectionRefreshError,
    CopyTimeoutError,
    DestinationResolutionError,
    ErrorKind,
    FileNotFoundInDatabaseError,
    ManifestNotFoundError,
    MissingConfigurationError,
    MoverError,
    MultipleRowsAffectedError,
    NoUploadIdError,
    PartCopyError,
    PendingScanError,
    UnresolvableRegionError,
)
from upload_mover.core.logger import get_logger, set_logger

__all__ = [
    "BatchPartialFailureError",
    "CompleteUploadError",
    "ConnectionRefreshError",
    "CopyTimeoutError",
    "DestinationResolutionError",
    "EnvManager",
    "ErrorKind",
    "FileNotFoundInDatabaseError",
    "ManifestNotFoundError",
    "MissingConfigurationError",
    "MoverConfig",
    "MoverError",
    "MultipleRowsAffectedError",
    "NoUploadIdError",
    "PartCopyError",
    "PendingScanError",
    "PostgresConfig",
    "UnresolvableRegionError",
    "file_move_timeout_minutes",
    "get_env",
    "get_logger",
    "set_logger",
]
