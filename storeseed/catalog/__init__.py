"""Catalog definitions and the sample catalog generator."""

from storeseed.catalog.definitions import (
    AttributeAxis,
    BrandStorage,
    CatalogDefinition,
    CategoryDefinition,
    Dimensions,
    ItemDefinition,
    ItemKind,
    VariantDefinition,
)
from storeseed.catalog.generator import CatalogGenerator, GeneratorConfig

__all__ = [
    "AttributeAxis",
    "BrandStorage",
    "CatalogDefinition",
    "CatalogGenerator",
    "CategoryDefinition",
    "Dimensions",
    "GeneratorConfig",
    "ItemDefinition",
    "ItemKind",
    "VariantDefinition",
]
