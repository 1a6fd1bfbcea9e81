"""Value objects for the domain layer."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ResourceType(str, Enum):
    """Resource types counted in run summaries."""

    ATTRIBUTE_TAXONOMY = "attribute_taxonomy"
    BRAND_TERMS = "brand_terms"
    CATEGORIES = "categories"
    SIMPLE_ITEMS = "simple_items"
    COMPOSITE_ITEMS = "composite_items"
    VARIANTS = "variants"
    BUNDLE_ITEMS = "bundle_items"


@dataclass(frozen=True)
class OwnershipTag:
    """Metadata marker written on every resource this tool creates.

    Attributes:
        key: ``meta_data`` key.
        value: Value identifying this tool as the owner.
    """

    key: str
    value: str

    def as_meta(self) -> dict[str, str]:
        """Return the tag as a ``meta_data`` entry."""
        return {"key": self.key, "value": self.value}

    def is_marked(self, resource: dict[str, Any]) -> bool:
        """Check whether a remote resource carries this tag.

        Args:
            resource: Resource body as returned by the store.

        Returns:
            True if any ``meta_data`` entry matches key and value.
        """
        for entry in resource.get("meta_data") or []:
            if entry.get("key") == self.key and str(entry.get("value")) == self.value:
                return True
        return False
