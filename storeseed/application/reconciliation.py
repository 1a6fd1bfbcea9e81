"""Reconciliation scanner.

Before creating anything, a provisioning run pages through the store and
maps every resource this tool already owns (tagged, or recorded in the
ownership manifest) back to its catalog key. Phases then skip whatever
is already mapped, which is what makes a re-run resume instead of
duplicating work.
"""

import structlog

from storeseed.application.progress import ProgressChannel
from storeseed.application.run_state import RunState
from storeseed.catalog.definitions import CatalogDefinition, ItemKind
from storeseed.domain.value_objects import OwnershipTag
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import ResourceKind, StoreClient

logger = structlog.get_logger()

PHASE = "reconcile"
SUB_SCANS = 3


class ReconciliationScanner:
    """Builds the key to id maps of a run from remote state."""

    def __init__(
        self,
        client: StoreClient,
        catalog: CatalogDefinition,
        manifest: OwnershipManifest,
        tag: OwnershipTag,
        brand_attribute_slug: str = "brand",
    ) -> None:
        """Initialize scanner.

        Args:
            client: Store client.
            catalog: Catalog being provisioned.
            manifest: Ownership manifest for the store.
            tag: Ownership tag written on created resources.
            brand_attribute_slug: Slug of the brand attribute taxonomy.
        """
        self.client = client
        self.catalog = catalog
        self.manifest = manifest
        self.tag = tag
        self.brand_attribute_slug = brand_attribute_slug

    async def scan(self, state: RunState, channel: ProgressChannel) -> None:
        """Populate the run state's maps, emitting one tick per sub-scan.

        Args:
            state: Fresh run state.
            channel: Progress channel.
        """
        brands = await self._scan_brand_terms(state)
        await channel.progress(PHASE, 1, SUB_SCANS, f"Found {brands} existing brand terms")

        categories = await self._scan_categories(state)
        await channel.progress(PHASE, 2, SUB_SCANS, f"Found {categories} existing categories")

        items = await self._scan_items(state)
        await channel.progress(PHASE, 3, SUB_SCANS, f"Found {items} existing items")

        logger.info(
            "Reconciliation complete",
            attribute_taxonomy_id=state.attribute_taxonomy_id,
            brand_terms=brands,
            categories=categories,
            items=items,
        )

    async def _scan_brand_terms(self, state: RunState) -> int:
        attribute_id = await self.client.find_attribute(self.brand_attribute_slug)
        if attribute_id is None:
            return 0

        wanted = set(self.catalog.brands)
        found = 0
        # The attribute itself is shared, only its terms need ownership
        async with state.lock:
            state.attribute_taxonomy_id = attribute_id
        async for term in self.client.paginate(ResourceKind.ATTRIBUTE_TERM, attribute_id):
            term_id = int(term["id"])
            if not (self.tag.is_marked(term) or self.manifest.owns_brand_term(term_id)):
                continue
            name = term.get("name")
            if name in wanted:
                async with state.lock:
                    state.brand_ids[name] = term_id
                found += 1
        return found

    async def _scan_categories(self, state: RunState) -> int:
        wanted = {category.slug for category in self.catalog.categories}
        found = 0
        async for category in self.client.paginate(ResourceKind.CATEGORY):
            category_id = int(category["id"])
            # List responses may omit meta_data; fall back to the manifest
            if not (self.tag.is_marked(category) or self.manifest.owns_category(category_id)):
                continue
            slug = category.get("slug")
            if slug in wanted:
                async with state.lock:
                    state.category_ids[slug] = category_id
                found += 1
        return found

    async def _scan_items(self, state: RunState) -> int:
        kinds = {item.key: item.kind for item in self.catalog.items}
        found = 0
        async for product in self.client.paginate(ResourceKind.PRODUCT):
            if not self.tag.is_marked(product):
                continue
            sku = product.get("sku")
            if sku not in kinds:
                continue
            async with state.lock:
                state.item_ids[sku] = int(product["id"])
                # Variant count gates the variants phase
                if kinds[sku] == ItemKind.COMPOSITE:
                    state.variants_present[sku] = len(product.get("variations") or [])
            found += 1
        return found
