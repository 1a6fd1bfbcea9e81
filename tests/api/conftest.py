"""Shared fixtures for API tests."""

from collections.abc import Iterator

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storeseed.api.dependencies import get_catalog, get_manifest, get_store_client
from storeseed.catalog import CatalogDefinition
from storeseed.infrastructure.config import settings
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import StoreClient
from storeseed.main import app as storeseed_app
from support import BASE_URL, FakeWooStore


@pytest.fixture
def app(
    store: FakeWooStore,
    catalog: CatalogDefinition,
    manifest: OwnershipManifest,
) -> Iterator[FastAPI]:
    """Application wired to the in-memory store and test catalog."""
    storeseed_app.dependency_overrides[get_store_client] = lambda: StoreClient(
        BASE_URL, transport=httpx.MockTransport(store)
    )
    storeseed_app.dependency_overrides[get_catalog] = lambda: catalog
    storeseed_app.dependency_overrides[get_manifest] = lambda: manifest
    yield storeseed_app
    storeseed_app.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client without authentication."""
    return TestClient(app)


@pytest.fixture
def auth_client(app: FastAPI) -> TestClient:
    """Create test client with valid API key authentication."""
    return TestClient(
        app,
        headers={"Authorization": f"Bearer {settings.api_key}"},
    )
