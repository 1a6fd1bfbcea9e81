"""Run-scoped state.

Every provisioning run builds a fresh RunState and passes it through its
phases. It owns the key to id maps filled by reconciliation and creation,
plus the counters reported in the summary. All mutations go through the
state's lock because batches within a phase may run concurrently.
"""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from storeseed.catalog.definitions import ItemDefinition
from storeseed.domain.value_objects import ResourceType


class SkipReason(str, Enum):
    """Why a resource was not created."""

    EXISTING = "existing"
    REJECTED = "rejected"
    UNRESOLVED = "unresolved"


@dataclass
class ResourceTally:
    """Created and skipped counts for one resource type."""

    created: int = 0
    skip_reasons: Counter = field(default_factory=Counter)

    @property
    def skipped(self) -> int:
        """Total skips across reasons."""
        return sum(self.skip_reasons.values())


_ITEM_TYPES = {
    ResourceType.SIMPLE_ITEMS,
    ResourceType.COMPOSITE_ITEMS,
    ResourceType.BUNDLE_ITEMS,
}


@dataclass
class RunState:
    """Maps and counters for one provisioning run.

    Attributes:
        attribute_taxonomy_id: Id of the brand attribute taxonomy.
        brand_ids: Brand name to term id.
        category_ids: Category slug to id.
        item_ids: Item key to id, shared by all item kinds.
        variants_present: Composite key to the number of variants found remotely.
        tallies: Counters per resource type.
        brand_storage_usage: Items per brand storage strategy actually used.
    """

    attribute_taxonomy_id: int | None = None
    brand_ids: dict[str, int] = field(default_factory=dict)
    category_ids: dict[str, int] = field(default_factory=dict)
    item_ids: dict[str, int] = field(default_factory=dict)
    variants_present: dict[str, int] = field(default_factory=dict)
    tallies: dict[ResourceType, ResourceTally] = field(
        default_factory=lambda: {resource: ResourceTally() for resource in ResourceType}
    )
    brand_storage_usage: Counter = field(default_factory=Counter)
    started_at: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def _map_for(self, resource: ResourceType) -> dict[str, int] | None:
        if resource == ResourceType.BRAND_TERMS:
            return self.brand_ids
        if resource == ResourceType.CATEGORIES:
            return self.category_ids
        if resource in _ITEM_TYPES:
            return self.item_ids
        return None

    async def record_created(
        self,
        resource: ResourceType,
        key: str | None,
        external_id: int,
        existed: bool = False,
    ) -> None:
        """Map a resource and count it.

        A create answered with a duplicate conflict maps the existing id
        and counts as skipped with reason ``existing``.

        Args:
            resource: Resource type.
            key: Catalog key, or None for resources that are not mapped.
            external_id: Remote id.
            existed: True if the resource already existed remotely.
        """
        async with self.lock:
            target = self._map_for(resource)
            if target is not None and key is not None:
                target[key] = external_id
            if resource == ResourceType.ATTRIBUTE_TAXONOMY:
                self.attribute_taxonomy_id = external_id
            tally = self.tallies[resource]
            if existed:
                tally.skip_reasons[SkipReason.EXISTING.value] += 1
            else:
                tally.created += 1

    async def record_skipped(
        self,
        resource: ResourceType,
        reason: SkipReason,
        count: int = 1,
    ) -> None:
        """Count skipped resources."""
        if count <= 0:
            return
        async with self.lock:
            self.tallies[resource].skip_reasons[reason.value] += count

    async def record_brand_storage(self, strategy: str) -> None:
        """Count the brand storage strategy used by one item."""
        async with self.lock:
            self.brand_storage_usage[strategy] += 1

    def missing_variants(self, item: ItemDefinition) -> int:
        """Number of variants not yet present remotely."""
        return max(len(item.variants) - self.variants_present.get(item.key, 0), 0)

    def variants_satisfied(self, item: ItemDefinition) -> bool:
        """True if reconciliation found every variant of the item."""
        return self.missing_variants(item) == 0

    @property
    def resumed(self) -> bool:
        """True if any resource was skipped, for whatever reason."""
        return any(tally.skipped for tally in self.tallies.values())

    def elapsed_ms(self) -> int:
        """Milliseconds since the run started."""
        return int((time.monotonic() - self.started_at) * 1000)
