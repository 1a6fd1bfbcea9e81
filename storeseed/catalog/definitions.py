"""Catalog definitions.

Immutable, in-memory description of everything a provisioning run
creates: brand names, a category tree and item definitions. A catalog
is validated once when constructed and never changes during a run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Self

from storeseed.domain.exceptions import CatalogDefinitionError


# ============================================================================
# Enumerations
# ============================================================================


class ItemKind(str, Enum):
    """Kind of catalog item."""

    SIMPLE = "simple"
    COMPOSITE = "composite"
    BUNDLE = "bundle"


class BrandStorage(str, Enum):
    """Where an item records its brand on the remote store.

    Unknown values resolve to META so that catalogs written for newer
    strategies still provision.
    """

    TAXONOMY = "taxonomy"
    ATTRIBUTE = "attribute"
    META = "meta"
    NONE = "none"

    @classmethod
    def _missing_(cls, value: object) -> "BrandStorage":
        return cls.META


# ============================================================================
# Definitions
# ============================================================================


@dataclass(frozen=True)
class CategoryDefinition:
    """One node of the category tree.

    Attributes:
        slug: Unique category key.
        name: Display name.
        parent: Parent slug, or None for a root category.
    """

    slug: str
    name: str
    parent: str | None = None


@dataclass(frozen=True)
class AttributeAxis:
    """An attribute a composite item varies over (e.g. Size)."""

    name: str
    options: tuple[str, ...]
    visible: bool = True
    variation: bool = True


@dataclass(frozen=True)
class Dimensions:
    """Package dimensions as decimal strings, in the store's unit."""

    length: str
    width: str
    height: str

    def as_payload(self) -> dict[str, str]:
        return {"length": self.length, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class VariantDefinition:
    """One attribute-value combination of a composite item.

    Attributes:
        sku: Variant SKU.
        regular_price: Price as a decimal string.
        attributes: (axis name, option) pairs, passed verbatim to the store.
        sale_price: Optional sale price.
        stock_quantity: Units in stock.
        stock_status: ``instock``, ``outofstock`` or ``onbackorder``.
        weight: Shipping weight, if any.
        dimensions: Package dimensions, if any.
    """

    sku: str
    regular_price: str
    attributes: tuple[tuple[str, str], ...]
    sale_price: str | None = None
    stock_quantity: int = 10
    stock_status: str = "instock"
    weight: str | None = None
    dimensions: Dimensions | None = None

    @property
    def combination(self) -> frozenset[tuple[str, str]]:
        """Case-insensitive attribute combination identifying this variant."""
        return frozenset((name.lower(), option) for name, option in self.attributes)


@dataclass(frozen=True)
class ItemDefinition:
    """A simple, composite or bundle item.

    The key is the item's SKU and is the only reference used across
    phases and runs. Images are source URLs the store downloads; the
    first one becomes the main image.
    """

    key: str
    name: str
    kind: ItemKind
    categories: tuple[str, ...]
    brand: str | None = None
    brand_storage: BrandStorage = BrandStorage.META
    description: str = ""
    short_description: str = ""
    regular_price: str | None = None
    sale_price: str | None = None
    stock_quantity: int = 10
    stock_status: str = "instock"
    axes: tuple[AttributeAxis, ...] = ()
    variants: tuple[VariantDefinition, ...] = ()
    members: tuple[str, ...] = ()
    weight: str | None = None
    dimensions: Dimensions | None = None
    images: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    @classmethod
    def simple(
        cls,
        key: str,
        name: str,
        categories: tuple[str, ...],
        regular_price: str,
        **kwargs,
    ) -> Self:
        """Create a simple item definition."""
        return cls(
            key=key,
            name=name,
            kind=ItemKind.SIMPLE,
            categories=categories,
            regular_price=regular_price,
            **kwargs,
        )

    @classmethod
    def composite(
        cls,
        key: str,
        name: str,
        categories: tuple[str, ...],
        axes: tuple[AttributeAxis, ...],
        variants: tuple[VariantDefinition, ...],
        **kwargs,
    ) -> Self:
        """Create a composite item definition with its variants."""
        return cls(
            key=key,
            name=name,
            kind=ItemKind.COMPOSITE,
            categories=categories,
            axes=axes,
            variants=variants,
            **kwargs,
        )

    @classmethod
    def bundle(
        cls,
        key: str,
        name: str,
        categories: tuple[str, ...],
        members: tuple[str, ...],
        **kwargs,
    ) -> Self:
        """Create a bundle item definition referencing member keys."""
        return cls(
            key=key,
            name=name,
            kind=ItemKind.BUNDLE,
            categories=categories,
            members=members,
            **kwargs,
        )


# ============================================================================
# Catalog
# ============================================================================


@dataclass(frozen=True)
class CatalogDefinition:
    """Validated catalog.

    Raises:
        CatalogDefinitionError: If the catalog is structurally invalid.
    """

    brands: tuple[str, ...]
    categories: tuple[CategoryDefinition, ...]
    items: tuple[ItemDefinition, ...]
    _by_slug: dict[str, CategoryDefinition] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _depths: dict[str, int] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        for category in self.categories:
            if category.slug in self._by_slug:
                raise CatalogDefinitionError(
                    f"Duplicate category slug '{category.slug}'",
                    details={"slug": category.slug},
                )
            self._by_slug[category.slug] = category

        for category in self.categories:
            if category.parent is not None and category.parent not in self._by_slug:
                raise CatalogDefinitionError(
                    f"Category '{category.slug}' has unknown parent '{category.parent}'",
                    details={"slug": category.slug, "parent": category.parent},
                )
        for category in self.categories:
            self._depths[category.slug] = self._compute_depth(category.slug, set())

        self._validate_items()

    def _compute_depth(self, slug: str, visiting: set[str]) -> int:
        if slug in self._depths:
            return self._depths[slug]
        if slug in visiting:
            raise CatalogDefinitionError(
                f"Category tree has a cycle through '{slug}'",
                details={"slug": slug},
            )
        visiting.add(slug)
        parent = self._by_slug[slug].parent
        depth = 0 if parent is None else 1 + self._compute_depth(parent, visiting)
        self._depths[slug] = depth
        return depth

    def _validate_items(self) -> None:
        keys: set[str] = set()
        variant_skus: set[str] = set()
        for item in self.items:
            if item.key in keys:
                raise CatalogDefinitionError(
                    f"Duplicate item key '{item.key}'", details={"key": item.key}
                )
            keys.add(item.key)

            unknown = [slug for slug in item.categories if slug not in self._by_slug]
            if unknown:
                raise CatalogDefinitionError(
                    f"Item '{item.key}' references unknown categories {unknown}",
                    details={"key": item.key, "categories": unknown},
                )

            if item.kind == ItemKind.COMPOSITE:
                if not item.variants:
                    raise CatalogDefinitionError(
                        f"Composite item '{item.key}' has no variants",
                        details={"key": item.key},
                    )
                axis_names = {axis.name for axis in item.axes}
                for variant in item.variants:
                    if variant.sku in variant_skus:
                        raise CatalogDefinitionError(
                            f"Duplicate variant SKU '{variant.sku}'",
                            details={"key": item.key, "sku": variant.sku},
                        )
                    variant_skus.add(variant.sku)
                    stray = [name for name, _ in variant.attributes if name not in axis_names]
                    if stray:
                        raise CatalogDefinitionError(
                            f"Variant '{variant.sku}' uses attributes {stray} "
                            f"not declared on '{item.key}'",
                            details={"key": item.key, "sku": variant.sku},
                        )

            if item.kind == ItemKind.BUNDLE and not item.members:
                raise CatalogDefinitionError(
                    f"Bundle '{item.key}' has no members", details={"key": item.key}
                )

    # ------------------------------------------------------------------
    # Category tree
    # ------------------------------------------------------------------

    def category(self, slug: str) -> CategoryDefinition:
        """Get a category by slug.

        Raises:
            KeyError: If the slug is unknown.
        """
        return self._by_slug[slug]

    def category_depth(self, slug: str) -> int:
        """Depth of a category; roots have depth 0."""
        return self._depths[slug]

    def category_levels(self) -> list[list[CategoryDefinition]]:
        """Categories grouped by depth, shallowest level first.

        Within a level, definition order is preserved.
        """
        if not self.categories:
            return []
        levels: list[list[CategoryDefinition]] = [
            [] for _ in range(max(self._depths.values()) + 1)
        ]
        for category in self.categories:
            levels[self._depths[category.slug]].append(category)
        return levels

    def categories_by_hierarchy(self) -> list[CategoryDefinition]:
        """All categories in parent-before-child order."""
        return [category for level in self.category_levels() for category in level]

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def items_of(self, kind: ItemKind) -> list[ItemDefinition]:
        """All items of one kind, in definition order."""
        return [item for item in self.items if item.kind == kind]

    def expected_counts(self) -> dict[str, int]:
        """Number of resources a full provisioning run creates."""
        composites = self.items_of(ItemKind.COMPOSITE)
        return {
            "brand_terms": len(self.brands),
            "categories": len(self.categories),
            "simple_items": len(self.items_of(ItemKind.SIMPLE)),
            "composite_items": len(composites),
            "variants": sum(len(item.variants) for item in composites),
            "bundle_items": len(self.items_of(ItemKind.BUNDLE)),
            "total_items": len(self.items),
        }
