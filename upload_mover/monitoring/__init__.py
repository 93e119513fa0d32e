"""
Monitoring for the upload mover: structured logging and Prometheus metrics.
"""

from upload_mover.monitoring.logging import (
    FileContextFilter,
    MoverJsonFormatter,
    clear_file_context,
    file_context,
    set_file_context,
    setup_mover_logging,
)
from upload_mover.monitoring.metrics import (
    CONNECTION_REFRESHES,
    FILE_DURATION,
    FILES_PROCESSED,
    MULTIPART_ABORTS,
    PARTS_COPIED,
    start_metrics_server,
)

__all__ = [
    "CONNECTION_REFRESHES",
    "FILES_PROCESSED",
    "FILE_DURATION",
    "FileContextFilter",
    "MULTIPART_ABORTS",
    "MoverJsonFormatter",
    "PARTS_COPIED",
    "clear_file_context",
    "file_context",
    "set_file_context",
    "setup_mover_logging",
    "start_metrics_server",
]
