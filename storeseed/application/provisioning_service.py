"""Provisioning pipeline.

Creates a catalog on the remote store in dependency order:

- Reconcile: map resources this tool already owns
- Attributes: brand attribute taxonomy and one term per brand
- Categories: the category tree, one depth level at a time
- SimpleItems, CompositeShells: items in batches
- Variants: each composite's variants, scoped to the parent id
- BundleItems: bundles referencing already created members

Each phase only starts once the previous one attempted all of its work.
The pipeline reports through a ProgressChannel and always ends it with
exactly one Complete or Error event.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from storeseed.application.batching import (
    FailurePolicy,
    chunked,
    create_in_batch,
    run_bounded,
)
from storeseed.application.progress import ProgressChannel
from storeseed.application.reconciliation import ReconciliationScanner
from storeseed.application.run_state import RunState, SkipReason
from storeseed.catalog.definitions import (
    BrandStorage,
    CatalogDefinition,
    CategoryDefinition,
    Dimensions,
    ItemDefinition,
    ItemKind,
    VariantDefinition,
)
from storeseed.domain.exceptions import (
    ConnectivityOrAuthError,
    ItemRejectedError,
    RemoteApiError,
    StoreSeedError,
)
from storeseed.domain.state_machines import ProvisioningStage, StageTracker
from storeseed.domain.value_objects import OwnershipTag, ResourceType
from storeseed.infrastructure.config import Settings, settings
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import CreateResult, ResourceKind, StoreClient

logger = structlog.get_logger()

_REMOTE_TYPES = {
    ItemKind.SIMPLE: "simple",
    ItemKind.COMPOSITE: "variable",
    ItemKind.BUNDLE: "grouped",
}

BRAND_META_KEY = "_brand"


def _shipping_fields(weight: str | None, dimensions: Dimensions | None) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if weight:
        fields["weight"] = weight
    if dimensions is not None:
        fields["dimensions"] = dimensions.as_payload()
    return fields



# ============================================================================
# Result
# ============================================================================


@dataclass
class ProvisioningSummary:
    """Outcome of a provisioning run that did not fail.

    A summary does not imply every resource was created; rejected and
    unresolved resources are reported as skipped and picked up by the
    next run.
    """

    created: dict[str, int]
    skipped: dict[str, int]
    total_items_created: int
    brand_storage: dict[str, int]
    elapsed_ms: int
    resumed: bool
    skip_breakdown: dict[str, dict[str, int]] | None = None

    @classmethod
    def from_state(cls, state: RunState) -> "ProvisioningSummary":
        """Build the summary from a finished run.

        Args:
            state: Run state after the last phase.

        Returns:
            ProvisioningSummary.
        """
        created = {resource.value: tally.created for resource, tally in state.tallies.items()}
        skipped = {resource.value: tally.skipped for resource, tally in state.tallies.items()}
        breakdown = None
        if any(skipped.values()):
            breakdown = {
                resource.value: dict(tally.skip_reasons)
                for resource, tally in state.tallies.items()
                if tally.skipped
            }
        return cls(
            created=created,
            skipped=skipped,
            total_items_created=sum(
                created[resource.value]
                for resource in (
                    ResourceType.SIMPLE_ITEMS,
                    ResourceType.COMPOSITE_ITEMS,
                    ResourceType.BUNDLE_ITEMS,
                )
            ),
            brand_storage=dict(state.brand_storage_usage),
            elapsed_ms=state.elapsed_ms(),
            resumed=state.resumed,
            skip_breakdown=breakdown,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert summary to a JSON-serializable dictionary."""
        data: dict[str, Any] = {
            "created": self.created,
            "skipped": self.skipped,
            "total_items_created": self.total_items_created,
            "brand_storage": self.brand_storage,
            "elapsed_ms": self.elapsed_ms,
            "resumed": self.resumed,
        }
        if self.skip_breakdown is not None:
            data["skip_breakdown"] = self.skip_breakdown
        return data


# ============================================================================
# Pipeline
# ============================================================================


class ProvisioningPipeline:
    """Provisions one catalog onto one store.

    A pipeline object can be run repeatedly; every run builds a fresh
    RunState, so nothing carries over between runs except what the
    store and the manifest hold.
    """

    def __init__(
        self,
        client: StoreClient,
        catalog: CatalogDefinition,
        manifest: OwnershipManifest,
        tag: OwnershipTag,
        create_batch_size: int = 50,
        max_concurrency: int = 4,
        brand_attribute_name: str = "Brand",
        brand_attribute_slug: str = "brand",
    ) -> None:
        """Initialize pipeline.

        Args:
            client: Store client.
            catalog: Validated catalog to provision.
            manifest: Ownership manifest for the store.
            tag: Ownership tag written on created resources.
            create_batch_size: Resources per batch call.
            max_concurrency: Batches in flight within a phase.
            brand_attribute_name: Name of the brand attribute taxonomy.
            brand_attribute_slug: Slug of the brand attribute taxonomy.
        """
        self.client = client
        self.catalog = catalog
        self.manifest = manifest
        self.tag = tag
        self.create_batch_size = create_batch_size
        self.max_concurrency = max_concurrency
        self.brand_attribute_name = brand_attribute_name
        self.brand_attribute_slug = brand_attribute_slug
        self.scanner = ReconciliationScanner(
            client, catalog, manifest, tag, brand_attribute_slug
        )

    @classmethod
    def from_settings(
        cls,
        client: StoreClient,
        catalog: CatalogDefinition,
        manifest: OwnershipManifest,
        config: Settings = settings,
    ) -> "ProvisioningPipeline":
        """Create a pipeline configured from application settings."""
        return cls(
            client=client,
            catalog=catalog,
            manifest=manifest,
            tag=OwnershipTag(config.ownership_meta_key, config.ownership_meta_value),
            create_batch_size=config.create_batch_size,
            max_concurrency=config.max_concurrency,
            brand_attribute_name=config.brand_attribute_name,
            brand_attribute_slug=config.brand_attribute_slug,
        )

    async def run(self, channel: ProgressChannel) -> ProvisioningSummary | None:
        """Run every phase and report through the channel.

        Args:
            channel: Progress channel; receives exactly one terminal event.

        Returns:
            The summary on completion, None if the run failed.
        """
        state = RunState()
        tracker = StageTracker(ProvisioningStage.PENDING)
        phases: list[tuple[ProvisioningStage, Callable[..., Awaitable[None]]]] = [
            (ProvisioningStage.RECONCILE, self.scanner.scan),
            (ProvisioningStage.ATTRIBUTES, self._provision_attributes),
            (ProvisioningStage.CATEGORIES, self._provision_categories),
            (ProvisioningStage.SIMPLE_ITEMS, self._provision_simple_items),
            (ProvisioningStage.COMPOSITE_SHELLS, self._provision_composite_shells),
            (ProvisioningStage.VARIANTS, self._provision_variants),
            (ProvisioningStage.BUNDLE_ITEMS, self._provision_bundles),
        ]
        logger.info("Provisioning started", items=len(self.catalog.items))

        # Phases run strictly in order; any raise ends the run
        try:
            for stage, phase in phases:
                tracker.advance(stage)
                logger.info("Phase started", phase=stage.value)
                await phase(state, channel)
            tracker.advance(ProvisioningStage.COMPLETE)
        except StoreSeedError as e:
            failed_in = tracker.fail()
            # Domain errors carry their own code
            code = e.error_code or "PROVISIONING_FAILED"
            logger.error(
                "Provisioning failed",
                phase=failed_in.value,
                error_code=code,
                error=e.message,
                details=e.details,
            )
            await channel.error(code, e.message, failed_in.value)
            return None
        except Exception as e:
            failed_in = tracker.fail()
            logger.exception("Provisioning crashed", phase=failed_in.value)
            await channel.error("INTERNAL_ERROR", f"Unexpected error: {e}", failed_in.value)
            return None

        summary = ProvisioningSummary.from_state(state)
        logger.info("Provisioning complete", **summary.to_dict())
        await channel.complete(summary.to_dict())
        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create_or_abort(
        self,
        kind: ResourceKind,
        payload: dict[str, Any],
        resource: ResourceType,
        key: str,
        parent_id: int | None = None,
    ) -> CreateResult:
        """Create a single resource in an abort-on-error phase."""
        try:
            return await self.client.create(kind, payload, parent_id)
        except ConnectivityOrAuthError:
            raise
        except RemoteApiError as e:
            raise ItemRejectedError(resource.value, key, e.message) from e

    def _category_refs(self, state: RunState, item: ItemDefinition) -> list[dict[str, int]]:
        refs = []
        for slug in item.categories:
            category_id = state.category_ids.get(slug)
            if category_id is None:
                logger.warning("Category not provisioned, omitting", key=item.key, category=slug)
                continue
            refs.append({"id": category_id})
        return refs

    def _apply_brand(
        self,
        state: RunState,
        item: ItemDefinition,
        attributes: list[dict[str, Any]],
        meta_data: list[dict[str, Any]],
    ) -> str:
        """Attach the item's brand according to its storage strategy.

        Returns:
            The strategy actually used.
        """
        storage = BrandStorage(item.brand_storage)
        if not item.brand or storage == BrandStorage.NONE:
            return BrandStorage.NONE.value

        brand_attribute = {
            "name": self.brand_attribute_name,
            "position": len(attributes),
            "visible": True,
            "variation": False,
            "options": [item.brand],
        }
        # Taxonomy needs both the attribute and the brand term
        if storage == BrandStorage.TAXONOMY:
            if state.attribute_taxonomy_id is not None and item.brand in state.brand_ids:
                attributes.append({"id": state.attribute_taxonomy_id, **brand_attribute})
                return BrandStorage.TAXONOMY.value
            logger.debug("Brand term missing, storing brand as local attribute", key=item.key)
            # Falls through to the local attribute branch below
            storage = BrandStorage.ATTRIBUTE

        if storage == BrandStorage.ATTRIBUTE:
            attributes.append(brand_attribute)
            return BrandStorage.ATTRIBUTE.value

        meta_data.append({"key": BRAND_META_KEY, "value": item.brand})
        return BrandStorage.META.value

    def _item_payload(
        self,
        state: RunState,
        item: ItemDefinition,
        member_ids: list[int] | None = None,
    ) -> tuple[dict[str, Any], str]:
        """Map an item definition to a product body.

        Returns:
            Tuple of (payload, brand storage strategy used).
        """
        attributes: list[dict[str, Any]] = [
            {
                "name": axis.name,
                "position": position,
                "visible": axis.visible,
                "variation": axis.variation,
                "options": list(axis.options),
            }
            for position, axis in enumerate(item.axes)
        ]
        meta_data = [self.tag.as_meta()]
        strategy = self._apply_brand(state, item, attributes, meta_data)

        payload: dict[str, Any] = {
            "name": item.name,
            "type": _REMOTE_TYPES[item.kind],
            "status": "publish",
            "sku": item.key,
            "description": item.description,
            "short_description": item.short_description,
            "categories": self._category_refs(state, item),
            "meta_data": meta_data,
        }
        if attributes:
            payload["attributes"] = attributes
        if item.images:
            payload["images"] = [{"src": src, "alt": item.name} for src in item.images]
        if item.tags:
            payload["tags"] = [{"name": name} for name in item.tags]
        payload.update(_shipping_fields(item.weight, item.dimensions))
        if item.kind == ItemKind.SIMPLE:
            payload.update(
                {
                    "regular_price": item.regular_price or "",
                    "sale_price": item.sale_price or "",
                    "manage_stock": True,
                    "stock_quantity": item.stock_quantity,
                    "stock_status": item.stock_status,
                }
            )
        if item.kind == ItemKind.BUNDLE:
            payload["grouped_products"] = member_ids or []
        return payload, strategy

    def _variant_payload(self, variant: VariantDefinition) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sku": variant.sku,
            "regular_price": variant.regular_price,
            "sale_price": variant.sale_price or "",
            "manage_stock": True,
            "stock_quantity": variant.stock_quantity,
            "stock_status": variant.stock_status,
            "attributes": [
                {"name": name, "option": option} for name, option in variant.attributes
            ],
            "meta_data": [self.tag.as_meta()],
        }
        payload.update(_shipping_fields(variant.weight, variant.dimensions))
        return payload

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    async def _provision_attributes(self, state: RunState, channel: ProgressChannel) -> None:
        brands = self.catalog.brands
        total = len(brands) + 1

        if state.attribute_taxonomy_id is None:
            result = await self._create_or_abort(
                ResourceKind.ATTRIBUTE,
                {
                    "name": self.brand_attribute_name,
                    "slug": self.brand_attribute_slug,
                    "type": "select",
                    "order_by": "menu_order",
                    "has_archives": False,
                },
                ResourceType.ATTRIBUTE_TAXONOMY,
                self.brand_attribute_slug,
            )
            await state.record_created(
                ResourceType.ATTRIBUTE_TAXONOMY, None, result.id, result.existed
            )
            if not result.existed:
                self.manifest.record_attribute_taxonomy(result.id)
        else:
            await state.record_skipped(ResourceType.ATTRIBUTE_TAXONOMY, SkipReason.EXISTING)
        await channel.progress("attributes", 1, total, f"{self.brand_attribute_name} attribute ready")

        for index, brand in enumerate(brands, start=2):
            if brand in state.brand_ids:
                await state.record_skipped(ResourceType.BRAND_TERMS, SkipReason.EXISTING)
            else:
                result = await self._create_or_abort(
                    ResourceKind.ATTRIBUTE_TERM,
                    {"name": brand},
                    ResourceType.BRAND_TERMS,
                    brand,
                    parent_id=state.attribute_taxonomy_id,
                )
                await state.record_created(
                    ResourceType.BRAND_TERMS, brand, result.id, result.existed
                )
                if not result.existed:
                    self.manifest.record_brand_term(brand, result.id)
            await channel.progress("attributes", index, total, f"Brand {brand}")

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def _provision_categories(self, state: RunState, channel: ProgressChannel) -> None:
        total = len(self.catalog.categories)
        done = 0

        async def provision(category: CategoryDefinition) -> None:
            nonlocal done
            if category.slug in state.category_ids:
                await state.record_skipped(ResourceType.CATEGORIES, SkipReason.EXISTING)
            else:
                parent_id = 0
                if category.parent is not None:
                    mapped = state.category_ids.get(category.parent)
                    if mapped is None:
                        logger.warning(
                            "Parent category not mapped, creating at root",
                            slug=category.slug,
                            parent=category.parent,
                        )
                    else:
                        parent_id = mapped
                result = await self._create_or_abort(
                    ResourceKind.CATEGORY,
                    {
                        "name": category.name,
                        "slug": category.slug,
                        "parent": parent_id,
                        "meta_data": [self.tag.as_meta()],
                    },
                    ResourceType.CATEGORIES,
                    category.slug,
                )
                await state.record_created(
                    ResourceType.CATEGORIES, category.slug, result.id, result.existed
                )
                if not result.existed:
                    self.manifest.record_category(category.slug, result.id)
            done += 1
            await channel.progress("categories", done, total, f"Category {category.name}")

        # A level only starts once every parent in the previous level exists
        for level in self.catalog.category_levels():
            await run_bounded(
                [lambda category=category: provision(category) for category in level],
                self.max_concurrency,
            )

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def _create_items(
        self,
        state: RunState,
        channel: ProgressChannel,
        phase: str,
        resource: ResourceType,
        work: list[tuple[ItemDefinition, dict[str, Any], str]],
        already_done: int,
        total: int,
        policy: FailurePolicy,
    ) -> None:
        """Create prepared item payloads in concurrent batches.

        Args:
            state: Run state.
            channel: Progress channel.
            phase: Phase name for progress events.
            resource: Resource type being created.
            work: (item, payload, brand strategy) triples.
            already_done: Items of this phase skipped before batching.
            total: Items of this phase in the catalog.
            policy: Reaction to per-item rejections.
        """
        done = already_done
        strategies = {item.key: strategy for item, _, strategy in work}

        async def on_created(key: str, external_id: int, existed: bool) -> None:
            await state.record_created(resource, key, external_id, existed)
            if not existed:
                await state.record_brand_storage(strategies[key])

        async def create_batch(batch: list[tuple[ItemDefinition, dict[str, Any], str]]) -> None:
            nonlocal done
            outcome = await create_in_batch(
                [item.key for item, _, _ in batch],
                [payload for _, payload, _ in batch],
                create_batch=lambda payloads: self.client.create_batch(
                    ResourceKind.PRODUCT, payloads
                ),
                create_one=lambda payload: self.client.create(ResourceKind.PRODUCT, payload),
                on_created=on_created,
                policy=policy,
                resource=resource.value,
            )
            await state.record_skipped(resource, SkipReason.REJECTED, len(outcome.rejected))
            done += len(batch)
            await channel.progress(
                phase,
                done,
                total,
                f"Created {len(outcome.created)} of {len(batch)} in batch",
            )

        await run_bounded(
            [
                lambda batch=batch: create_batch(batch)
                for batch in chunked(work, self.create_batch_size)
            ],
            self.max_concurrency,
        )

    async def _pending_items(
        self, state: RunState, kind: ItemKind, resource: ResourceType
    ) -> tuple[list[ItemDefinition], int]:
        items = self.catalog.items_of(kind)
        pending = [item for item in items if item.key not in state.item_ids]
        await state.record_skipped(resource, SkipReason.EXISTING, len(items) - len(pending))
        return pending, len(items)

    async def _provision_simple_items(self, state: RunState, channel: ProgressChannel) -> None:
        pending, total = await self._pending_items(
            state, ItemKind.SIMPLE, ResourceType.SIMPLE_ITEMS
        )
        work = [(item, *self._item_payload(state, item)) for item in pending]
        await channel.progress("simple_items", total - len(pending), total, "Creating simple items")
        await self._create_items(
            state,
            channel,
            "simple_items",
            ResourceType.SIMPLE_ITEMS,
            work,
            total - len(pending),
            total,
            FailurePolicy.CONTINUE_ON_ITEM_ERROR,
        )

    async def _provision_composite_shells(
        self, state: RunState, channel: ProgressChannel
    ) -> None:
        pending, total = await self._pending_items(
            state, ItemKind.COMPOSITE, ResourceType.COMPOSITE_ITEMS
        )
        work = [(item, *self._item_payload(state, item)) for item in pending]
        await channel.progress(
            "composite_shells", total - len(pending), total, "Creating composite items"
        )
        await self._create_items(
            state,
            channel,
            "composite_shells",
            ResourceType.COMPOSITE_ITEMS,
            work,
            total - len(pending),
            total,
            FailurePolicy.ABORT,
        )

    async def _provision_bundles(self, state: RunState, channel: ProgressChannel) -> None:
        pending, total = await self._pending_items(
            state, ItemKind.BUNDLE, ResourceType.BUNDLE_ITEMS
        )
        work = []
        unresolved = 0
        for item in pending:
            # Members resolve through the shared item map, whatever their kind
            member_ids = [state.item_ids[key] for key in item.members if key in state.item_ids]
            dropped = [key for key in item.members if key not in state.item_ids]
            if not member_ids:
                logger.warning(
                    "Bundle has no resolvable members, skipping",
                    key=item.key,
                    members=list(item.members),
                )
                unresolved += 1
                continue
            if dropped:
                logger.warning("Dropping unresolved bundle members", key=item.key, dropped=dropped)
            work.append((item, *self._item_payload(state, item, member_ids)))

        await state.record_skipped(ResourceType.BUNDLE_ITEMS, SkipReason.UNRESOLVED, unresolved)
        already_done = total - len(pending) + unresolved
        await channel.progress("bundle_items", already_done, total, "Creating bundles")
        await self._create_items(
            state,
            channel,
            "bundle_items",
            ResourceType.BUNDLE_ITEMS,
            work,
            already_done,
            total,
            FailurePolicy.ABORT,
        )

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    async def _provision_variants(self, state: RunState, channel: ProgressChannel) -> None:
        composites = self.catalog.items_of(ItemKind.COMPOSITE)
        total = sum(len(item.variants) for item in composites)
        done = 0
        factories = []

        async def report(count: int, message: str) -> None:
            nonlocal done
            done += count
            await channel.progress("variants", done, total, message)

        for item in composites:
            parent_id = state.item_ids.get(item.key)
            if parent_id is None:
                logger.warning("Composite item missing, skipping its variants", key=item.key)
                await state.record_skipped(
                    ResourceType.VARIANTS, SkipReason.UNRESOLVED, len(item.variants)
                )
                done += len(item.variants)
                continue
            # Reconciliation found every variant, nothing to send
            if state.variants_satisfied(item):
                await state.record_skipped(
                    ResourceType.VARIANTS, SkipReason.EXISTING, len(item.variants)
                )
                done += len(item.variants)
                continue
            factories.append(
                lambda item=item, parent_id=parent_id: self._create_variants(
                    state, item, parent_id, report
                )
            )

        await channel.progress("variants", done, total, "Creating variants")
        await run_bounded(factories, self.max_concurrency)

    async def _create_variants(
        self,
        state: RunState,
        item: ItemDefinition,
        parent_id: int,
        report: Callable[[int, str], Awaitable[None]],
    ) -> None:
        """Create the missing variants of one composite item.

        Variant batches of one item run in order; a rejected variant
        never blocks the rest of the item or other items.
        """
        pending = list(item.variants)
        if state.variants_present.get(item.key, 0) > 0:
            # Some variants exist; only missing combinations are created
            try:
                existing = await self.client.list_all(ResourceKind.VARIATION, parent_id)
            except RemoteApiError as e:
                logger.warning(
                    "Could not list existing variants, skipping item",
                    key=item.key,
                    error=e.message,
                )
                await state.record_skipped(
                    ResourceType.VARIANTS, SkipReason.UNRESOLVED, len(item.variants)
                )
                await report(len(item.variants), f"{item.name}: variants skipped")
                return
            combinations = {
                frozenset(
                    (str(attribute.get("name", "")).lower(), attribute.get("option"))
                    for attribute in variation.get("attributes") or []
                )
                for variation in existing
            }
            pending = [v for v in item.variants if v.combination not in combinations]
            present = len(item.variants) - len(pending)
            await state.record_skipped(ResourceType.VARIANTS, SkipReason.EXISTING, present)
            logger.info(
                "Filling partial variant set",
                key=item.key,
                present=present,
                missing=len(pending),
            )
            if present:
                await report(present, f"{item.name}: {present} variants already present")

        for batch in chunked(pending, self.create_batch_size):
            outcome = await create_in_batch(
                [variant.sku for variant in batch],
                [self._variant_payload(variant) for variant in batch],
                create_batch=lambda payloads: self.client.create_batch(
                    ResourceKind.VARIATION, payloads, parent_id
                ),
                create_one=lambda payload: self.client.create(
                    ResourceKind.VARIATION, payload, parent_id
                ),
                on_created=lambda key, external_id, existed: state.record_created(
                    ResourceType.VARIANTS, key, external_id, existed
                ),
                policy=FailurePolicy.CONTINUE_ON_ITEM_ERROR,
                resource=ResourceType.VARIANTS.value,
            )
            # Rejected variants are counted, their siblings go ahead
            await state.record_skipped(
                ResourceType.VARIANTS, SkipReason.REJECTED, len(outcome.rejected)
            )
            await report(len(batch), f"{item.name}: {len(outcome.created)} variants created")
