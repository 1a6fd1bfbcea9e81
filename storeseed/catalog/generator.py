"""Sample catalog generator with deterministic seeding.

Builds an apparel catalog (brands, a three-level category tree, simple,
composite and bundle items) from synthetic data. The same seed always
yields the same catalog, which keeps item keys stable across runs.
"""

import hashlib
import random
from dataclasses import dataclass

from storeseed.catalog.definitions import (
    AttributeAxis,
    BrandStorage,
    CatalogDefinition,
    CategoryDefinition,
    Dimensions,
    ItemDefinition,
    VariantDefinition,
)


# ============================================================================
# Constants
# ============================================================================

# Fictional brands with the categories they sell in
BRANDS: list[tuple[str, tuple[str, ...]]] = [
    ("UrbanThread", ("t-shirts", "hoodies", "sneakers", "hats")),
    ("NorthPeak", ("jackets", "boots", "pants", "bags")),
    ("VelvetStride", ("pants", "belts", "t-shirts", "jackets", "sandals")),
    ("CoastalBreeze", ("shorts", "sandals", "t-shirts", "hats")),
    ("IronForge", ("boots", "pants", "jackets", "belts")),
    ("ZenFlow", ("shorts", "sneakers", "t-shirts", "hoodies")),
    ("MetroStyle", ("pants", "jackets", "bags", "belts")),
    ("WildTrail", ("boots", "jackets", "pants", "bags", "sandals")),
    ("SilkHaven", ("t-shirts", "jackets", "pants", "hats")),
    ("StreetPulse", ("hoodies", "sneakers", "hats", "bags")),
]

CATEGORIES: list[CategoryDefinition] = [
    CategoryDefinition("apparel", "Apparel"),
    CategoryDefinition("footwear", "Footwear"),
    CategoryDefinition("accessories", "Accessories"),
    CategoryDefinition("tops", "Tops", "apparel"),
    CategoryDefinition("t-shirts", "T-Shirts", "tops"),
    CategoryDefinition("hoodies", "Hoodies", "tops"),
    CategoryDefinition("jackets", "Jackets", "tops"),
    CategoryDefinition("bottoms", "Bottoms", "apparel"),
    CategoryDefinition("pants", "Pants", "bottoms"),
    CategoryDefinition("shorts", "Shorts", "bottoms"),
    CategoryDefinition("sneakers", "Sneakers", "footwear"),
    CategoryDefinition("boots", "Boots", "footwear"),
    CategoryDefinition("sandals", "Sandals", "footwear"),
    CategoryDefinition("hats", "Hats", "accessories"),
    CategoryDefinition("bags", "Bags", "accessories"),
    CategoryDefinition("belts", "Belts", "accessories"),
]

COLORS = [
    "Black", "White", "Navy", "Gray", "Red", "Blue",
    "Green", "Brown", "Beige", "Olive", "Burgundy", "Charcoal",
]

CLOTHING_SIZES = ["XS", "S", "M", "L", "XL", "XXL"]
WAIST_SIZES = ["28", "30", "32", "34", "36", "38", "40"]
SHOE_SIZES = ["6", "7", "8", "9", "10", "11", "12", "13"]
BELT_SIZES = ["S (28-32)", "M (32-36)", "L (36-40)", "XL (40-44)"]
HAT_SIZES = ["S/M", "L/XL", "One Size"]

# Size axis per leaf category (None means color only)
SIZE_AXES: dict[str, tuple[str, list[str]] | None] = {
    "t-shirts": ("Size", CLOTHING_SIZES),
    "hoodies": ("Size", CLOTHING_SIZES),
    "jackets": ("Size", CLOTHING_SIZES),
    "shorts": ("Size", CLOTHING_SIZES),
    "pants": ("Waist", WAIST_SIZES),
    "sneakers": ("Size", SHOE_SIZES),
    "boots": ("Size", SHOE_SIZES),
    "sandals": ("Size", SHOE_SIZES),
    "hats": ("Size", HAT_SIZES),
    "belts": ("Size", BELT_SIZES),
    "bags": None,
}

# Price ranges by category (in cents)
PRICE_RANGES: dict[str, tuple[int, int]] = {
    "t-shirts": (1999, 4999),
    "hoodies": (4999, 8999),
    "jackets": (7999, 19999),
    "pants": (3999, 9999),
    "shorts": (2999, 5999),
    "sneakers": (5999, 14999),
    "boots": (8999, 24999),
    "sandals": (2999, 7999),
    "hats": (1999, 4999),
    "bags": (3999, 14999),
    "belts": (2499, 7999),
    "default": (2999, 9999),
}

PRODUCT_NAMES: dict[str, list[str]] = {
    "t-shirts": ["Classic Crew Tee", "V-Neck Essential", "Graphic Print Tee", "Pocket Tee",
                 "Long Sleeve Basic", "Henley Shirt", "Raglan Tee", "Premium Cotton Tee"],
    "hoodies": ["Pullover Hoodie", "Zip-Up Hoodie", "Fleece Hoodie", "Heavyweight Hoodie",
                "Tech Fleece Hoodie", "Vintage Wash Hoodie"],
    "jackets": ["Bomber Jacket", "Denim Jacket", "Windbreaker", "Rain Jacket",
                "Puffer Jacket", "Field Jacket", "Track Jacket", "Coach Jacket"],
    "pants": ["Slim Fit Chinos", "Cargo Pants", "Jogger Pants", "Straight Leg Jeans",
              "Dress Pants", "Utility Pants", "Work Pants"],
    "shorts": ["Chino Shorts", "Athletic Shorts", "Cargo Shorts", "Board Shorts",
               "Running Shorts", "Denim Shorts"],
    "sneakers": ["Low-Top Sneakers", "High-Top Sneakers", "Running Shoes", "Slip-On Sneakers",
                 "Canvas Sneakers", "Retro Runners", "Skate Shoes"],
    "boots": ["Chelsea Boots", "Work Boots", "Hiking Boots", "Combat Boots",
              "Chukka Boots", "Desert Boots"],
    "sandals": ["Slide Sandals", "Flip Flops", "Sport Sandals", "Leather Sandals",
                "Fisherman Sandals", "Beach Sandals"],
    "hats": ["Baseball Cap", "Beanie", "Bucket Hat", "Trucker Hat", "Snapback", "Wide Brim Hat"],
    "bags": ["Backpack", "Tote Bag", "Messenger Bag", "Duffel Bag", "Crossbody Bag", "Sling Bag"],
    "belts": ["Leather Belt", "Canvas Belt", "Braided Belt", "Reversible Belt", "Web Belt"],
}

# Relative frequency of each brand storage strategy
BRAND_STORAGE_WEIGHTS: list[tuple[BrandStorage, int]] = [
    (BrandStorage.TAXONOMY, 40),
    (BrandStorage.ATTRIBUTE, 25),
    (BrandStorage.META, 25),
    (BrandStorage.NONE, 10),
]

# Placeholder image background per category
CATEGORY_COLORS: dict[str, str] = {
    "t-shirts": "E8E8E8",
    "hoodies": "D0D0D0",
    "jackets": "C8C8C8",
    "pants": "B8B8B8",
    "shorts": "A8A8A8",
    "sneakers": "989898",
    "boots": "888888",
    "sandals": "787878",
    "hats": "686868",
    "bags": "585858",
    "belts": "484848",
}
PLACEHOLDER_URL = "https://placehold.co/{size}/{background}/333333.png"

# Shipping weight range (kg) and package size (cm) by category
WEIGHT_RANGES: dict[str, tuple[float, float]] = {
    "t-shirts": (0.15, 0.3),
    "hoodies": (0.5, 0.9),
    "jackets": (0.8, 1.8),
    "pants": (0.4, 0.8),
    "shorts": (0.2, 0.4),
    "sneakers": (0.8, 1.2),
    "boots": (1.2, 2.2),
    "sandals": (0.3, 0.7),
    "hats": (0.1, 0.25),
    "bags": (0.5, 1.5),
    "belts": (0.15, 0.35),
    "default": (0.3, 1.0),
}
PACKAGE_SIZES: dict[str, tuple[int, int, int]] = {
    "sneakers": (33, 22, 12),
    "boots": (36, 26, 14),
    "sandals": (30, 18, 10),
    "bags": (45, 35, 15),
    "hats": (25, 25, 12),
    "belts": (20, 15, 5),
    "default": (30, 25, 5),
}



# ============================================================================
# Generator Configuration
# ============================================================================


@dataclass
class GeneratorConfig:
    """Configuration for catalog generation.

    Attributes:
        seed: Random seed for reproducibility.
        simple_per_category: Simple items per leaf category.
        composite_per_category: Composite items per leaf category.
        bundles_per_category: Bundles per leaf category.
        max_variants: Upper bound on variants per composite item.
        bundle_size: Simple items referenced by each bundle.
    """

    seed: int = 42
    simple_per_category: int = 5
    composite_per_category: int = 5
    bundles_per_category: int = 1
    max_variants: int = 6
    bundle_size: int = 3

    @classmethod
    def small(cls, seed: int = 42) -> "GeneratorConfig":
        """Create config for a small catalog (~60 items).

        Args:
            seed: Random seed.

        Returns:
            Config for small catalog.
        """
        return cls(
            seed=seed,
            simple_per_category=3,
            composite_per_category=2,
            bundles_per_category=1,
            max_variants=4,
        )

    @classmethod
    def full(cls, seed: int = 42) -> "GeneratorConfig":
        """Create config for a full catalog (~500 items).

        Args:
            seed: Random seed.

        Returns:
            Config for full catalog.
        """
        return cls(
            seed=seed,
            simple_per_category=15,
            composite_per_category=25,
            bundles_per_category=5,
            max_variants=12,
        )

    @classmethod
    def for_mode(cls, mode: str, seed: int = 42) -> "GeneratorConfig":
        """Resolve a named catalog size.

        Args:
            mode: ``small`` or ``full``.
            seed: Random seed.

        Raises:
            ValueError: If the mode is unknown.
        """
        if mode == "small":
            return cls.small(seed)
        if mode == "full":
            return cls.full(seed)
        raise ValueError(f"Unknown catalog mode: {mode}")


# ============================================================================
# Catalog Generator
# ============================================================================


class CatalogGenerator:
    """Generates catalogs with deterministic seeding.

    Example usage:
        catalog = CatalogGenerator(GeneratorConfig.small()).generate()
        print(catalog.expected_counts())
    """

    def __init__(self, config: GeneratorConfig) -> None:
        """Initialize generator with configuration.

        Args:
            config: Generator configuration.
        """
        self.config = config

    def _deterministic_seed(self, *args: str | int) -> int:
        """Create deterministic seed from arguments.

        Args:
            args: Values to include in seed.

        Returns:
            Deterministic integer seed.
        """
        data = "|".join(str(a) for a in args)
        hash_bytes = hashlib.md5(data.encode()).digest()
        return int.from_bytes(hash_bytes[:4], "big")

    def _rng(self, *args: str | int) -> random.Random:
        return random.Random(self._deterministic_seed(self.config.seed, *args))

    def _pick_brand(self, category: str, rng: random.Random) -> str:
        matching = [name for name, cats in BRANDS if category in cats]
        return rng.choice(matching or [name for name, _ in BRANDS])

    def _pick_storage(self, rng: random.Random) -> BrandStorage:
        strategies = [s for s, _ in BRAND_STORAGE_WEIGHTS]
        weights = [w for _, w in BRAND_STORAGE_WEIGHTS]
        return rng.choices(strategies, weights=weights, k=1)[0]

    def _price(self, category: str, rng: random.Random) -> str:
        min_price, max_price = PRICE_RANGES.get(category, PRICE_RANGES["default"])
        cents = rng.randint(min_price, max_price)
        # Round to .99
        cents = (cents // 100) * 100 + 99
        return f"{cents / 100:.2f}"

    def _sale_price(self, regular_price: str, rng: random.Random) -> str | None:
        if rng.random() > 0.3:
            return None
        discount = 0.1 + rng.random() * 0.3
        return f"{float(regular_price) * (1 - discount):.2f}"

    def _stock(self, rng: random.Random) -> tuple[int, str]:
        roll = rng.random()
        if roll < 0.1:
            return 0, "outofstock"
        if roll < 0.2:
            return rng.randint(1, 5), "onbackorder"
        return rng.randint(10, 110), "instock"

    def _gallery(self, category: str, count: int) -> tuple[str, ...]:
        background = CATEGORY_COLORS.get(category, "CCCCCC")
        # Main image first, then smaller gallery shots
        sizes = ["800x800"] + ["600x600"] * (count - 1)
        return tuple(PLACEHOLDER_URL.format(size=size, background=background) for size in sizes)

    def _weight(self, category: str, rng: random.Random) -> str:
        low, high = WEIGHT_RANGES.get(category, WEIGHT_RANGES["default"])
        return f"{rng.uniform(low, high):.2f}"

    def _dimensions(self, category: str, rng: random.Random) -> Dimensions:
        length, width, height = PACKAGE_SIZES.get(category, PACKAGE_SIZES["default"])
        return Dimensions(
            length=str(length + rng.randint(0, 4)),
            width=str(width + rng.randint(0, 3)),
            height=str(height + rng.randint(0, 2)),
        )

    def _sku(self, category: str, brand: str, index: int, suffix: str | None = None) -> str:
        cat_code = "".join(c for c in category if c.isalpha())[:3].upper()
        base = f"{cat_code}-{brand[:2].upper()}-{index:03d}"
        return f"{base}-{suffix}" if suffix else base

    def _name(self, category: str, index: int) -> str:
        names = PRODUCT_NAMES.get(category, ["Product"])
        return names[index % len(names)]

    def _common_fields(self, category: str, index: int, rng: random.Random) -> dict:
        brand = self._pick_brand(category, rng)
        name = self._name(category, index)
        label = category.replace("-", " ")
        return {
            "brand": brand,
            "brand_storage": self._pick_storage(rng),
            "name": f"{brand} {name}",
            "description": (
                f"The {name} from {brand} is a premium {label} designed for "
                f"comfort and style."
            ),
            "short_description": f"{brand} {name} - Quality meets style.",
            "tags": (label, brand.lower()),
        }

    def _generate_simple(self, category: str, index: int) -> ItemDefinition:
        rng = self._rng(category, "simple", index)
        fields = self._common_fields(category, index, rng)
        price = self._price(category, rng)
        quantity, status = self._stock(rng)
        return ItemDefinition.simple(
            key=self._sku(category, fields["brand"], index),
            categories=(category,),
            regular_price=price,
            sale_price=self._sale_price(price, rng),
            stock_quantity=quantity,
            stock_status=status,
            images=self._gallery(category, 2),
            weight=self._weight(category, rng),
            dimensions=self._dimensions(category, rng),
            **fields,
        )

    def _generate_composite(self, category: str, index: int) -> ItemDefinition:
        rng = self._rng(category, "composite", index)
        fields = self._common_fields(category, index, rng)
        sku = self._sku(category, fields["brand"], index)
        price = self._price(category, rng)

        colors = rng.sample(COLORS, 3)
        axes = [AttributeAxis("Color", tuple(colors))]
        size_axis = SIZE_AXES.get(category)
        if size_axis is not None:
            axis_name, options = size_axis
            axes.insert(0, AttributeAxis(axis_name, tuple(options)))

        variants = []
        for combination in self._combinations(axes):
            if len(variants) >= self.config.max_variants:
                break
            quantity, status = self._stock(rng)
            code = "-".join(
                option[:3].upper().replace(" ", "") if name == "Color" else option.split(" ")[0]
                for name, option in combination
            )
            variants.append(
                VariantDefinition(
                    sku=f"{sku}-{code}",
                    regular_price=price,
                    attributes=combination,
                    sale_price=self._sale_price(price, rng),
                    stock_quantity=quantity,
                    stock_status=status,
                    weight=self._weight(category, rng),
                    dimensions=self._dimensions(category, rng),
                )
            )

        return ItemDefinition.composite(
            key=sku,
            categories=(category,),
            axes=tuple(axes),
            variants=tuple(variants),
            images=self._gallery(category, 2),
            weight=self._weight(category, rng),
            dimensions=self._dimensions(category, rng),
            **fields,
        )

    def _combinations(self, axes: list[AttributeAxis]) -> list[tuple[tuple[str, str], ...]]:
        combinations: list[tuple[tuple[str, str], ...]] = [()]
        for axis in axes:
            combinations = [
                combo + ((axis.name, option),)
                for combo in combinations
                for option in axis.options
            ]
        return combinations

    def _generate_bundle(
        self, category: str, index: int, members: tuple[str, ...]
    ) -> ItemDefinition:
        rng = self._rng(category, "bundle", index)
        fields = self._common_fields(category, index, rng)
        fields["name"] = f"{fields['name']} Bundle"
        return ItemDefinition.bundle(
            key=self._sku(category, fields["brand"], index, "GRP"),
            categories=(category,),
            members=members,
            images=self._gallery(category, 1),
            **fields,
        )

    def _leaf_categories(self) -> list[str]:
        parents = {c.parent for c in CATEGORIES if c.parent}
        return [c.slug for c in CATEGORIES if c.slug not in parents]

    def generate(self) -> CatalogDefinition:
        """Generate the catalog.

        Returns:
            Validated catalog definition.
        """
        items: list[ItemDefinition] = []
        for category in self._leaf_categories():
            index = 0
            simple_keys: list[str] = []
            for _ in range(self.config.simple_per_category):
                item = self._generate_simple(category, index)
                simple_keys.append(item.key)
                items.append(item)
                index += 1
            for _ in range(self.config.composite_per_category):
                items.append(self._generate_composite(category, index))
                index += 1
            size = self.config.bundle_size
            for bundle in range(self.config.bundles_per_category):
                members = tuple(simple_keys[bundle * size:(bundle + 1) * size])
                if len(members) < 2:
                    break
                items.append(self._generate_bundle(category, index, members))
                index += 1

        return CatalogDefinition(
            brands=tuple(name for name, _ in BRANDS),
            categories=tuple(CATEGORIES),
            items=tuple(items),
        )
