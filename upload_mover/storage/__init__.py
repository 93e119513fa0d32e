"""
Metadata stores: manifests and files in DynamoDB, organizations and file
locations in PostgreSQL, and in-memory doubles of both.
"""

from upload_mover.storage.connection import ExpiringConnectionManager, probe_pool
from upload_mover.storage.dynamodb import DynamoMetadataStore
from upload_mover.storage.health import HealthCheckResult, HealthStatus
from upload_mover.storage.interfaces import MetadataStore, OrganizationQueries
from upload_mover.storage.memory import InMemoryMetadataStore, InMemoryOrganizationQueries
from upload_mover.storage.postgresql import (
    AUTH_DURATION_SECONDS,
    PostgresQueries,
    rds_connection_supplier,
)

__all__ = [
    "AUTH_DURATION_SECONDS",
    "DynamoMetadataStore",
    "ExpiringConnectionManager",
    "HealthCheckResult",
    "HealthStatus",
    "InMemoryMetadataStore",
    "InMemoryOrganizationQueries",
    "MetadataStore",
    "OrganizationQueries",
    "PostgresQueries",
    "rds_connection_supplier",
    "probe_pool",
]
