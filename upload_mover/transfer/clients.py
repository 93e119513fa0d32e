"""
Regional S3 client factory.

Copies must be issued against the region of the destination bucket, which
is derived from the bucket name. Clients are cached per region for the
lifetime of the factory and closed together.

Example:
    >>> async with RegionalClientFactory(default_region="us-east-1") as factory:
    ...     client, region = await factory.client_for("storage-bucket-euw1")
    ...     await client.copy_object(...)
"""

import asyncio
from contextlib import AsyncExitStack
from typing import Any

import aioboto3

from upload_mover.core.config import DEFAULT_REGION
from upload_mover.core.errors import UnresolvableRegionError
from upload_mover.core.logger import get_logger
from upload_mover.transfer.regions import RegionDescriptor, resolve_region

logger = get_logger(__name__)


class RegionalClientFactory:
    """
    Builds S3 clients bound to the region of a storage bucket.

    Attributes:
        session: aioboto3 session the clients are created from
        default_region: Region of the process, used for the upload bucket
    """

    def __init__(
        self,
        session: Any | None = None,
        default_region: str = DEFAULT_REGION,
        **client_kwargs,
    ):
        self.session = session or aioboto3.Session()
        self.default_region = default_region
        self.client_kwargs = client_kwargs
        self._clients: dict[str, Any] = {}
        self._stack = AsyncExitStack()
        self._lock = asyncio.Lock()

    async def client_for(self, bucket_name: str) -> tuple[Any, RegionDescriptor]:
        """
        Get a client for the region a bucket lives in.

        Args:
            bucket_name: Destination storage bucket

        Returns:
            Tuple of (s3 client, region descriptor)

        Raises:
            UnresolvableRegionError: If the bucket name has no known region code
        """
        region, found = resolve_region(bucket_name)
        if not found:
            raise UnresolvableRegionError(bucket_name)
        client = await self._client(region.region_code)
        return client, region

    async def default_client(self) -> Any:
        """Client for the process region."""
        return await self._client(self.default_region)

    async def _client(self, region_code: str) -> Any:
        async with self._lock:
            client = self._clients.get(region_code)
            if client is None:
                logger.info(f"Using s3 client for region: {region_code}")
                client = await self._stack.enter_async_context(
                    self.session.client("s3", region_name=region_code, **self.client_kwargs)
                )
                self._clients[region_code] = client
            return client

    @property
    def regions(self) -> list[str]:
        """Region codes with an open client."""
        return list(self._clients)

    async def close(self) -> None:
        """Close every client created by this factory."""
        await self._stack.aclose()
        self._clients.clear()
        self._stack = AsyncExitStack()

    async def __aenter__(self) -> "RegionalClientFactory":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
