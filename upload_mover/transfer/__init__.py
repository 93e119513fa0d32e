"""
Object transfer: region resolution, regional clients and the copy engine.
"""

from upload_mover.transfer.clients import RegionalClientFactory
from upload_mover.transfer.multipart import (
    DEFAULT_COPY_WORKERS,
    DEFAULT_PART_SIZE,
    SINGLE_COPY_LIMIT,
    AbortOutcome,
    CompletedPart,
    MultipartCopier,
    MultipartSession,
    SessionState,
    build_copy_source_range,
    copy_object,
    part_ranges,
    strip_etag,
)
from upload_mover.transfer.regions import REGIONS, RegionDescriptor, resolve_region

__all__ = [
    "DEFAULT_COPY_WORKERS",
    "DEFAULT_PART_SIZE",
    "REGIONS",
    "SINGLE_COPY_LIMIT",
    "AbortOutcome",
    "CompletedPart",
    "MultipartCopier",
    "MultipartSession",
    "RegionDescriptor",
    "RegionalClientFactory",
    "SessionState",
    "build_copy_source_range",
    "copy_object",
    "part_ranges",
    "resolve_region",
    "strip_etag",
]
