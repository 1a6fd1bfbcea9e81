"""Teardown pipeline.

Removes what provisioning created, in reverse dependency order:
variants, then items, then categories deepest first, then brand terms
and finally the brand attribute taxonomy. Individual deletion failures
are logged and counted and the pipeline keeps going; only
authentication failures and failures to list items or categories end
the run.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog

from storeseed.application.batching import chunked, delete_in_batch, run_bounded
from storeseed.application.progress import ProgressChannel
from storeseed.domain.exceptions import (
    RemoteApiError,
    RemoteAuthError,
    RemoteError,
    StoreSeedError,
)
from storeseed.domain.state_machines import StageTracker, TeardownStage
from storeseed.domain.value_objects import OwnershipTag
from storeseed.infrastructure.config import Settings, settings
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import ResourceKind, StoreClient

logger = structlog.get_logger()

# The store's default category cannot be deleted
DEFAULT_CATEGORY_SLUG = "uncategorized"


# ============================================================================
# Result
# ============================================================================


@dataclass
class TeardownSummary:
    """Outcome of a teardown run that did not fail."""

    items_deleted: int = 0
    variants_deleted: int = 0
    categories_deleted: int = 0
    brand_terms_deleted: int = 0
    attribute_taxonomies_deleted: int = 0
    failures: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert summary to a JSON-serializable dictionary."""
        return {
            "items_deleted": self.items_deleted,
            "variants_deleted": self.variants_deleted,
            "categories_deleted": self.categories_deleted,
            "brand_terms_deleted": self.brand_terms_deleted,
            "attribute_taxonomies_deleted": self.attribute_taxonomies_deleted,
            "failures": dict(self.failures),
            "elapsed_ms": self.elapsed_ms,
        }

    def record_failures(self, resource: str, count: int) -> None:
        """Count failed deletions of one resource type."""
        if count > 0:
            self.failures[resource] += count


def category_depths(categories: list[dict[str, Any]]) -> dict[int, int]:
    """Compute the depth of every category from its parent chain.

    A category whose parent is 0 or not in the list is a root (depth 0).
    Depths are memoized so each chain is walked once.

    Args:
        categories: Category bodies with ``id`` and ``parent``.

    Returns:
        Category id to depth.
    """
    parents = {int(c["id"]): int(c.get("parent") or 0) for c in categories}
    depths: dict[int, int] = {}

    def depth(category_id: int, visiting: frozenset[int]) -> int:
        if category_id in depths:
            return depths[category_id]
        parent = parents.get(category_id, 0)
        if parent == 0 or parent not in parents or parent in visiting:
            result = 0
        else:
            result = depth(parent, visiting | {category_id}) + 1
        depths[category_id] = result
        return result

    for category_id in parents:
        depth(category_id, frozenset())
    return depths


# ============================================================================
# Pipeline
# ============================================================================


class TeardownPipeline:
    """Deletes resources owned by this tool from one store."""

    def __init__(
        self,
        client: StoreClient,
        manifest: OwnershipManifest,
        tag: OwnershipTag,
        delete_batch_size: int = 100,
        max_concurrency: int = 4,
        brand_attribute_slug: str = "brand",
        teardown_untracked_categories: bool = False,
    ) -> None:
        """Initialize pipeline.

        Args:
            client: Store client.
            manifest: Ownership manifest for the store.
            tag: Ownership tag written on created resources.
            delete_batch_size: Ids per batch delete call.
            max_concurrency: Deletions in flight within a phase.
            brand_attribute_slug: Slug of the brand attribute taxonomy.
            teardown_untracked_categories: Delete every category in the
                store, not only the ones known to be owned.
        """
        self.client = client
        self.manifest = manifest
        self.tag = tag
        self.delete_batch_size = delete_batch_size
        self.max_concurrency = max_concurrency
        self.brand_attribute_slug = brand_attribute_slug
        self.teardown_untracked_categories = teardown_untracked_categories

    @classmethod
    def from_settings(
        cls,
        client: StoreClient,
        manifest: OwnershipManifest,
        config: Settings = settings,
    ) -> "TeardownPipeline":
        """Create a pipeline configured from application settings."""
        return cls(
            client=client,
            manifest=manifest,
            tag=OwnershipTag(config.ownership_meta_key, config.ownership_meta_value),
            delete_batch_size=config.delete_batch_size,
            max_concurrency=config.max_concurrency,
            brand_attribute_slug=config.brand_attribute_slug,
            teardown_untracked_categories=config.teardown_untracked_categories,
        )

    async def run(self, channel: ProgressChannel) -> TeardownSummary | None:
        """Run the teardown and report through the channel.

        Args:
            channel: Progress channel; receives exactly one terminal event.

        Returns:
            The summary on completion, None if the run failed.
        """
        summary = TeardownSummary()
        tracker = StageTracker(TeardownStage.PENDING)
        started = time.monotonic()
        logger.info("Teardown started")

        try:
            tracker.advance(TeardownStage.FINDING)
            items = await self._find_items(channel)

            tracker.advance(TeardownStage.DELETING_VARIANTS)
            await self._delete_variants(items, summary, channel)

            tracker.advance(TeardownStage.DELETING_ITEMS)
            await self._delete_items(items, summary, channel)

            tracker.advance(TeardownStage.DELETING_CATEGORIES)
            await self._delete_categories(summary, channel)

            tracker.advance(TeardownStage.DELETING_BRANDS)
            await self._delete_brands(summary, channel)

            tracker.advance(TeardownStage.COMPLETE)
        except StoreSeedError as e:
            failed_in = tracker.fail()
            code = e.error_code or "TEARDOWN_FAILED"
            logger.error(
                "Teardown failed",
                phase=failed_in.value,
                error_code=code,
                error=e.message,
            )
            await channel.error(code, e.message, failed_in.value)
            return None
        except Exception as e:
            failed_in = tracker.fail()
            logger.exception("Teardown crashed", phase=failed_in.value)
            await channel.error("INTERNAL_ERROR", f"Unexpected error: {e}", failed_in.value)
            return None

        summary.elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("Teardown complete", **summary.to_dict())
        await channel.complete(summary.to_dict())
        return summary

    # ------------------------------------------------------------------
    # Items and variants
    # ------------------------------------------------------------------

    async def _find_items(self, channel: ProgressChannel) -> list[dict[str, Any]]:
        await channel.progress("finding", 0, 0, "Finding generated items")
        items = [
            product
            async for product in self.client.paginate(ResourceKind.PRODUCT)
            if self.tag.is_marked(product)
        ]
        await channel.progress("finding", len(items), len(items), f"Found {len(items)} items")
        return items

    async def _delete_variants(
        self,
        items: list[dict[str, Any]],
        summary: TeardownSummary,
        channel: ProgressChannel,
    ) -> None:
        composites = [item for item in items if item.get("type") == "variable"]
        done = 0

        async def delete_for(item: dict[str, Any]) -> None:
            nonlocal done
            parent_id = int(item["id"])
            try:
                # Listings usually embed variation ids; fetch them otherwise
                variation_ids = item.get("variations")
                if variation_ids is None:
                    variations = await self.client.list_all(ResourceKind.VARIATION, parent_id)
                    variation_ids = [v["id"] for v in variations]
            except RemoteAuthError:
                raise
            except RemoteError as e:
                logger.warning("Could not list variants", item_id=parent_id, error=e.message)
                summary.record_failures("variants", 1)
                # Deleting the parent still removes its variants
                variation_ids = []

            for batch in chunked([int(v) for v in variation_ids], self.delete_batch_size):
                outcome = await delete_in_batch(
                    batch,
                    delete_batch=lambda ids: self.client.delete_batch(
                        ResourceKind.VARIATION, ids, parent_id
                    ),
                    delete_one=lambda variation_id: self.client.delete(
                        ResourceKind.VARIATION, variation_id, parent_id
                    ),
                    resource="variants",
                )
                summary.variants_deleted += len(outcome.deleted)
                summary.record_failures("variants", len(outcome.failed))
            done += 1
            await channel.progress(
                "deleting_variants",
                done,
                len(composites),
                f"Deleted variants of {item.get('name', parent_id)}",
            )

        await run_bounded(
            [lambda item=item: delete_for(item) for item in composites],
            self.max_concurrency,
        )

    async def _delete_items(
        self,
        items: list[dict[str, Any]],
        summary: TeardownSummary,
        channel: ProgressChannel,
    ) -> None:
        ids = [int(item["id"]) for item in items]
        done = 0

        async def delete_batch(batch: list[int]) -> None:
            nonlocal done
            outcome = await delete_in_batch(
                batch,
                delete_batch=lambda batch_ids: self.client.delete_batch(
                    ResourceKind.PRODUCT, batch_ids
                ),
                delete_one=lambda item_id: self.client.delete(ResourceKind.PRODUCT, item_id),
                resource="items",
            )
            summary.items_deleted += len(outcome.deleted)
            summary.record_failures("items", len(outcome.failed))
            done += len(batch)
            await channel.progress(
                "deleting_items", done, len(ids), f"Deleted {summary.items_deleted} items"
            )

        await run_bounded(
            [lambda batch=batch: delete_batch(batch) for batch in chunked(ids, self.delete_batch_size)],
            self.max_concurrency,
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def _owned_categories(self, categories: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if self.teardown_untracked_categories:
            candidates = [c for c in categories if c.get("slug") != DEFAULT_CATEGORY_SLUG]
            logger.warning(
                "Deleting every category in the store, including ones this tool did not create",
                count=len(candidates),
            )
            return candidates
        return [
            c
            for c in categories
            if self.tag.is_marked(c) or self.manifest.owns_category(int(c["id"]))
        ]

    async def _delete_categories(
        self, summary: TeardownSummary, channel: ProgressChannel
    ) -> None:
        await channel.progress("deleting_categories", 0, 0, "Finding generated categories")
        # Depth is computed over every category, owned or not
        categories = await self.client.list_all(ResourceKind.CATEGORY)
        candidates = self._owned_categories(categories)
        depths = category_depths(categories)

        levels: dict[int, list[int]] = defaultdict(list)
        for category in candidates:
            category_id = int(category["id"])
            levels[depths[category_id]].append(category_id)

        total = len(candidates)
        done = 0

        async def delete_one(category_id: int) -> None:
            nonlocal done
            try:
                await self.client.delete(ResourceKind.CATEGORY, category_id)
            except RemoteAuthError:
                raise
            except RemoteError as e:
                logger.warning("Category delete failed", category_id=category_id, error=e.message)
                summary.record_failures("categories", 1)
            else:
                summary.categories_deleted += 1
                self.manifest.forget_category(category_id)
            done += 1
            await channel.progress(
                "deleting_categories", done, total, f"Deleted category {category_id}"
            )

        # Deepest level first; a level finishes before its parents are touched
        for depth in sorted(levels, reverse=True):
            await run_bounded(
                [lambda category_id=category_id: delete_one(category_id) for category_id in levels[depth]],
                self.max_concurrency,
            )

    # ------------------------------------------------------------------
    # Brands
    # ------------------------------------------------------------------

    async def _find_brand_terms(self) -> tuple[int | None, list[dict[str, Any]]]:
        """Locate the brand attribute and list its terms.

        Returns:
            Tuple of (attribute id, terms); the id is None when no brand
            attribute exists.
        """
        attribute_id = self.manifest.attribute_taxonomy_id
        if attribute_id is not None:
            try:
                return attribute_id, await self.client.list_all(
                    ResourceKind.ATTRIBUTE_TERM, attribute_id
                )
            except RemoteApiError as e:
                if e.status_code != 404:
                    raise
                # Deleted outside this tool; its recorded terms went with it
                logger.warning(
                    "Recorded brand attribute no longer exists, looking up by slug",
                    attribute_id=attribute_id,
                )
                for term_id in list(self.manifest.data.brand_terms.values()):
                    self.manifest.forget_brand_term(term_id)
                self.manifest.forget_attribute_taxonomy()

        attribute_id = await self.client.find_attribute(self.brand_attribute_slug)
        if attribute_id is None:
            return None, []
        return attribute_id, await self.client.list_all(ResourceKind.ATTRIBUTE_TERM, attribute_id)

    async def _delete_brands(self, summary: TeardownSummary, channel: ProgressChannel) -> None:
        await channel.progress("deleting_brands", 0, 0, "Finding generated brands")
        try:
            attribute_id, terms = await self._find_brand_terms()
        except RemoteAuthError:
            raise
        except RemoteError as e:
            logger.warning("Could not list brand terms, skipping brands", error=e.message)
            summary.record_failures("brand_terms", 1)
            return

        # Terms rarely carry meta_data, so the manifest decides ownership
        owned = [
            term
            for term in terms
            if self.tag.is_marked(term) or self.manifest.owns_brand_term(int(term["id"]))
        ]
        remaining = len(terms)
        for index, term in enumerate(owned, start=1):
            term_id = int(term["id"])
            try:
                await self.client.delete(ResourceKind.ATTRIBUTE_TERM, term_id, attribute_id)
            except RemoteAuthError:
                raise
            except RemoteError as e:
                logger.warning("Brand term delete failed", term_id=term_id, error=e.message)
                summary.record_failures("brand_terms", 1)
            else:
                summary.brand_terms_deleted += 1
                remaining -= 1
                self.manifest.forget_brand_term(term_id)
            await channel.progress(
                "deleting_brands", index, len(owned), f"Deleted brand {term.get('name', term_id)}"
            )

        # Only an attribute this tool created, and only once it is empty
        created_attribute = self.manifest.attribute_taxonomy_id
        if created_attribute is None or created_attribute != attribute_id:
            return
        if remaining:
            logger.info(
                "Keeping brand attribute, it still has terms",
                attribute_id=attribute_id,
                remaining=remaining,
            )
            return
        try:
            await self.client.delete(ResourceKind.ATTRIBUTE, attribute_id)
        except RemoteAuthError:
            raise
        except RemoteError as e:
            logger.warning("Brand attribute delete failed", attribute_id=attribute_id, error=e.message)
            summary.record_failures("attribute_taxonomies", 1)
        else:
            summary.attribute_taxonomies_deleted += 1
            self.manifest.forget_attribute_taxonomy()
