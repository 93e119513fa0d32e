"""
Tests for the storage destination cache and its default loader.
"""

import asyncio

import pytest

from upload_mover.cache import StorageDestinationCache, make_destination_loader
from upload_mover.core.errors import DestinationResolutionError, ManifestNotFoundError, MoverError
from upload_mover.storage.memory import InMemoryMetadataStore, InMemoryOrganizationQueries
from upload_mover.types import ManifestRecord, Organization, StorageDestination


class RecordingLoader:
    """Loader that counts calls and tracks how many run at once."""

    def __init__(self, delay: float = 0.01, failures: int = 0):
        self.delay = delay
        self.failures = failures
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, manifest_id: str) -> StorageDestination:
        self.calls.append(manifest_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if self.failures:
                self.failures -= 1
                msg = "organization lookup failed"
                raise RuntimeError(msg)
            return StorageDestination(organization_id=1, storage_bucket="storage-use1", dataset_id=2)
        finally:
            self.active -= 1


class TestStorageDestinationCache:
    """Tests for StorageDestinationCache.get_or_load()."""

    @pytest.mark.asyncio
    async def test_loads_once_per_key_under_concurrency(self):
        loader = RecordingLoader()
        cache = StorageDestinationCache(loader)

        results = await asyncio.gather(*(cache.get_or_load("m1") for _ in range(10)))

        assert loader.calls == ["m1"]
        assert all(result is results[0] for result in results)
        assert "m1" in cache
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_loads_for_different_keys_are_serialized(self):
        loader = RecordingLoader()
        cache = StorageDestinationCache(loader)

        await asyncio.gather(*(cache.get_or_load(f"m{i}") for i in range(5)))

        assert sorted(loader.calls) == ["m0", "m1", "m2", "m3", "m4"]
        assert loader.max_active == 1

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self):
        loader = RecordingLoader(failures=1)
        cache = StorageDestinationCache(loader)

        with pytest.raises(DestinationResolutionError) as exc_info:
            await cache.get_or_load("m1")

        assert exc_info.value.manifest_id == "m1"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "m1" not in cache

        destination = await cache.get_or_load("m1")
        assert destination.storage_bucket == "storage-use1"
        assert loader.calls == ["m1", "m1"]


class TestDestinationLoader:
    """Tests for make_destination_loader()."""

    @pytest.fixture
    def stores(self):
        store = InMemoryMetadataStore()
        store.add_manifest(ManifestRecord("m1", organization_id=7, dataset_id=70))
        store.add_manifest(ManifestRecord("m2", organization_id=8, dataset_id=80))
        store.add_manifest(ManifestRecord("m3", organization_id=9, dataset_id=90))
        queries = InMemoryOrganizationQueries(
            [
                Organization(7, "Own Bucket", storage_bucket="org7-storage-euw1"),
                Organization(8, "Default Bucket"),
            ]
        )
        return store, queries

    @pytest.fixture
    def loader(self, stores):
        store, queries = stores

        async def provider():
            return queries

        return make_destination_loader(store, provider, "default-storage-use1")

    @pytest.mark.asyncio
    async def test_uses_organization_bucket(self, loader):
        destination = await loader("m1")

        assert destination == StorageDestination(7, "org7-storage-euw1", 70)
        assert destination.target_key("m1", "u1") == "O7/D70/m1/u1"

    @pytest.mark.asyncio
    async def test_falls_back_to_default_bucket(self, loader):
        destination = await loader("m2")

        assert destination.storage_bucket == "default-storage-use1"

    @pytest.mark.asyncio
    async def test_missing_manifest(self, loader):
        with pytest.raises(ManifestNotFoundError):
            await loader("missing")

    @pytest.mark.asyncio
    async def test_missing_organization(self, loader):
        with pytest.raises(MoverError, match="Organization 9"):
            await loader("m3")
