"""FastAPI dependency providers.

Each provider builds its object from application settings; tests swap
them through ``app.dependency_overrides``.
"""

from storeseed.catalog import CatalogDefinition, CatalogGenerator, GeneratorConfig
from storeseed.infrastructure.config import settings
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import StoreClient


def get_store_client() -> StoreClient:
    """Create a store client for one request.

    The caller owns the client and must close it.
    """
    return StoreClient.from_settings(settings)


def get_catalog() -> CatalogDefinition:
    """Generate the configured catalog."""
    config = GeneratorConfig.for_mode(settings.catalog_mode, settings.catalog_seed)
    return CatalogGenerator(config).generate()


def get_manifest() -> OwnershipManifest:
    """Load the ownership manifest for the configured store."""
    return OwnershipManifest(settings.manifest_path, settings.store_url)
