"""Shared fixtures.

Pipelines and the store client run against FakeWooStore through
``httpx.MockTransport``; the manifest lives in the test's tmp_path.
"""

import httpx
import pytest

from storeseed.application.provisioning_service import ProvisioningPipeline
from storeseed.application.teardown_service import TeardownPipeline
from storeseed.catalog import CatalogDefinition
from storeseed.domain.value_objects import OwnershipTag
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import StoreClient
from support import BASE_URL, STORE_URL, FakeWooStore, build_catalog


@pytest.fixture
def store() -> FakeWooStore:
    """Create an empty in-memory store."""
    return FakeWooStore()


@pytest.fixture
def client(store: FakeWooStore) -> StoreClient:
    """Create a store client wired to the in-memory store.

    A small page size makes every listing span several pages.
    """
    return StoreClient(BASE_URL, page_size=5, transport=httpx.MockTransport(store))


@pytest.fixture
def manifest_path(tmp_path) -> str:
    """Location of the ownership manifest for this test."""
    return str(tmp_path / "manifest.json")


@pytest.fixture
def manifest(manifest_path: str) -> OwnershipManifest:
    """Create an empty ownership manifest."""
    return OwnershipManifest(manifest_path, STORE_URL)


@pytest.fixture
def tag() -> OwnershipTag:
    """Ownership tag used by every pipeline in the tests."""
    return OwnershipTag("_generated_by", "storeseed")


@pytest.fixture
def catalog() -> CatalogDefinition:
    """Small hand-written catalog."""
    return build_catalog()


@pytest.fixture
def provisioning(
    client: StoreClient,
    catalog: CatalogDefinition,
    manifest: OwnershipManifest,
    tag: OwnershipTag,
) -> ProvisioningPipeline:
    """Provisioning pipeline with small batches and two batches in flight."""
    return ProvisioningPipeline(
        client,
        catalog,
        manifest,
        tag,
        create_batch_size=2,
        max_concurrency=2,
    )


@pytest.fixture
def teardown(
    client: StoreClient,
    manifest: OwnershipManifest,
    tag: OwnershipTag,
) -> TeardownPipeline:
    """Teardown pipeline with small batches and two deletions in flight."""
    return TeardownPipeline(
        client,
        manifest,
        tag,
        delete_batch_size=2,
        max_concurrency=2,
    )
