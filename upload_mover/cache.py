"""
Storage destination cache.

Every file of a manifest goes to the same organization, dataset and
storage bucket, so the destination is resolved once per manifest and
kept for the lifetime of the process.

A single lock guards the whole lookup-and-load path: concurrent callers
for the same manifest see exactly one load, and loads for different
manifests are serialized too. Failed loads are not cached; the next
caller loads again.
"""

import asyncio
from collections.abc import Awaitable, Callable

from upload_mover.core.errors import DestinationResolutionError, MoverError
from upload_mover.core.logger import get_logger
from upload_mover.storage.interfaces import MetadataStore, OrganizationQueries
from upload_mover.types import StorageDestination

logger = get_logger(__name__)

DestinationLoader = Callable[[str], Awaitable[StorageDestination]]
QueriesProvider = Callable[[], Awaitable[OrganizationQueries]]


class StorageDestinationCache:
    """
    Memoizes the storage destination of each manifest.

    Attributes:
        loader: Resolves the destination of a manifest id
    """

    def __init__(self, loader: DestinationLoader):
        self.loader = loader
        self._items: dict[str, StorageDestination] = {}
        self._lock = asyncio.Lock()

    async def get_or_load(self, manifest_id: str) -> StorageDestination:
        """
        Get the destination of a manifest, loading it on first use.

        Raises:
            DestinationResolutionError: If the loader failed; nothing is cached
        """
        async with self._lock:
            destination = self._items.get(manifest_id)
            if destination is not None:
                return destination

            try:
                destination = await self.loader(manifest_id)
            except Exception as e:
                raise DestinationResolutionError(manifest_id, e) from e

            self._items[manifest_id] = destination
            logger.debug(
                f"Cached destination {destination.storage_bucket} for manifest {manifest_id}"
            )
            return destination

    def __contains__(self, manifest_id: str) -> bool:
        return manifest_id in self._items

    def __len__(self) -> int:
        return len(self._items)


def make_destination_loader(
    store: MetadataStore,
    queries_provider: QueriesProvider,
    default_storage_bucket: str,
) -> DestinationLoader:
    """
    Default loader: manifest from the metadata store, organization from
    the relational store.

    Args:
        store: Metadata store holding the manifest
        queries_provider: Returns organization queries over a valid connection
        default_storage_bucket: Used when the organization has no bucket of its own
    """

    async def load(manifest_id: str) -> StorageDestination:
        manifest = await store.get_manifest(manifest_id)

        queries = await queries_provider()
        organization = await queries.get_organization(manifest.organization_id)
        if organization is None:
            msg = (
                f"Organization {manifest.organization_id} referenced in "
                f"manifest {manifest_id} not found"
            )
            raise MoverError(msg, details={"organization_id": manifest.organization_id})

        return StorageDestination(
            organization_id=manifest.organization_id,
            storage_bucket=organization.storage_bucket or default_storage_bucket,
            dataset_id=manifest.dataset_id,
        )

    return load
