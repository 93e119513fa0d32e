"""
PostgreSQL queries for organizations and their files.

Connections go through an RDS proxy and authenticate with short-lived
IAM auth tokens unless a static password is configured.

Requires: pip install asyncpg aioboto3
"""

from typing import Any

import aioboto3
import asyncpg

from upload_mover.core.config import PostgresConfig
from upload_mover.core.errors import FileNotFoundInDatabaseError, MultipleRowsAffectedError
from upload_mover.core.logger import get_logger
from upload_mover.storage.interfaces import OrganizationQueries
from upload_mover.types import Organization

logger = get_logger(__name__)

# Refresh well before the 15 minute lifetime of an IAM auth token
AUTH_DURATION_SECONDS = 10 * 60


def rows_affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``UPDATE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PostgresQueries(OrganizationQueries):
    """
    Organization queries over an asyncpg pool.

    Files live in one schema per organization, named by the organization id.
    """

    GET_ORGANIZATION_SQL = "SELECT id, name, storage_bucket FROM pennsieve.organizations WHERE id=$1"

    UPDATE_BUCKET_SQL = 'UPDATE "{organization_id}".files SET s3_bucket=$1, s3_key=$2 WHERE uuid=$3'

    def __init__(self, pool: Any):
        self.pool = pool

    async def get_organization(self, organization_id: int) -> Organization | None:
        row = await self.pool.fetchrow(self.GET_ORGANIZATION_SQL, organization_id)
        if row is None:
            return None
        return Organization(id=row["id"], name=row["name"], storage_bucket=row["storage_bucket"])

    async def update_bucket_for_file(
        self,
        organization_id: int,
        upload_id: str,
        bucket: str,
        key: str,
    ) -> None:
        query = self.UPDATE_BUCKET_SQL.format(organization_id=int(organization_id))
        status = await self.pool.execute(query, bucket, key, upload_id)

        rows = rows_affected(status)
        if rows == 0:
            raise FileNotFoundInDatabaseError(upload_id, organization_id)
        if rows > 1:
            raise MultipleRowsAffectedError(upload_id, rows)
        logger.debug(f"Updated location of file {upload_id} to {bucket}/{key}")


def rds_connection_supplier(
    config: PostgresConfig,
    session: Any | None = None,
    auth_duration: float = AUTH_DURATION_SECONDS,
):
    """
    Build a supplier of fresh pools for ExpiringConnectionManager.

    Each call mints a new IAM auth token (unless a password is set) and
    opens a new pool with it.
    """
    session = session or aioboto3.Session()

    async def supplier() -> tuple[Any, float]:
        password = config.password
        ssl = None
        if config.uses_iam_auth:
            async with session.client("rds", region_name=config.region) as rds:
                password = await rds.generate_db_auth_token(
                    DBHostname=config.host,
                    Port=config.port,
                    DBUsername=config.user,
                    Region=config.region,
                )
            ssl = "require"

        logger.info(f"Opening connection pool to {config.url}")
        pool = await asyncpg.create_pool(
            host=config.host,
            port=config.port,
            user=config.user,
            password=password,
            database=config.database,
            min_size=config.min_size,
            max_size=config.max_size,
            ssl=ssl,
        )
        return pool, auth_duration

    return supplier
