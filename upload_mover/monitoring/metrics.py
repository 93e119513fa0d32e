"""
Prometheus metrics for the upload mover.

Metrics are registered once, at import, on the default registry. The
exporter is only started when a port is configured.

Exposes:
    - mover_files_total{outcome}: files processed by outcome
    - mover_file_duration_seconds{method}: time to move one file
    - mover_parts_copied_total: multipart parts copied
    - mover_multipart_aborts_total: multipart sessions aborted
    - mover_connection_refreshes_total: relational pool replacements
"""

from prometheus_client import Counter, Histogram, start_http_server

from upload_mover.core.logger import get_logger

logger = get_logger(__name__)

FILES_PROCESSED = Counter(
    "mover_files_total",
    "Files processed by the migration worker pool",
    ["outcome"],
)

FILE_DURATION = Histogram(
    "mover_file_duration_seconds",
    "Time to copy one file to its storage bucket",
    ["method"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
)

PARTS_COPIED = Counter(
    "mover_parts_copied_total",
    "Multipart parts copied",
)

MULTIPART_ABORTS = Counter(
    "mover_multipart_aborts_total",
    "Multipart sessions aborted after a failure",
)

CONNECTION_REFRESHES = Counter(
    "mover_connection_refreshes_total",
    "Relational connection pools replaced after expiry or failed probe",
)


def start_metrics_server(port: int) -> bool:
    """
    Start the Prometheus HTTP exporter.

    Args:
        port: Port to listen on; 0 leaves the exporter off

    Returns:
        True if the exporter was started
    """
    if port <= 0:
        return False
    start_http_server(port)
    logger.info(f"Prometheus metrics server started on port {port}")
    return True
