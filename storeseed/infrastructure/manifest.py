"""Ownership manifest.

Category list responses do not reliably include ``meta_data``, so the
ownership tag alone cannot tell which categories this tool created.
The manifest persists the ids of created categories, brand terms and
the brand attribute taxonomy in a local JSON file, scoped to one store
URL. Every change is written through immediately.
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

logger = structlog.get_logger()


class ManifestData(BaseModel):
    """On-disk manifest contents."""

    store_url: str
    attribute_taxonomy_id: int | None = None
    categories: dict[str, int] = Field(default_factory=dict)
    brand_terms: dict[str, int] = Field(default_factory=dict)
    updated_at: datetime | None = None


class OwnershipManifest:
    """Persisted record of resources created by this tool on one store."""

    def __init__(self, path: str | Path, store_url: str) -> None:
        """Initialize manifest, loading existing contents if present.

        Args:
            path: JSON file location.
            store_url: Store the manifest applies to. A file written for
                another store is ignored.
        """
        self.path = Path(path)
        self.store_url = store_url
        self.data = self._load()

    def _load(self) -> ManifestData:
        if not self.path.exists():
            return ManifestData(store_url=self.store_url)
        try:
            data = ManifestData.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, OSError) as e:
            logger.warning("Ignoring unreadable manifest", path=str(self.path), error=str(e))
            return ManifestData(store_url=self.store_url)
        if data.store_url != self.store_url:
            logger.warning(
                "Manifest belongs to another store, starting fresh",
                path=str(self.path),
                manifest_store=data.store_url,
                store=self.store_url,
            )
            return ManifestData(store_url=self.store_url)
        return data

    def save(self) -> None:
        """Write the manifest atomically."""
        self.data.updated_at = datetime.now(timezone.utc)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(self.data.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def record_category(self, slug: str, category_id: int) -> None:
        """Record a category created (or adopted) by provisioning."""
        if self.data.categories.get(slug) == category_id:
            return
        self.data.categories[slug] = category_id
        self.save()

    def owns_category(self, category_id: int) -> bool:
        """Check whether a category id was recorded."""
        return category_id in self.data.categories.values()

    def category_slug(self, category_id: int) -> str | None:
        """Slug recorded for a category id."""
        for slug, recorded in self.data.categories.items():
            if recorded == category_id:
                return slug
        return None

    def forget_category(self, category_id: int) -> None:
        """Drop a deleted category from the manifest."""
        slug = self.category_slug(category_id)
        if slug is not None:
            del self.data.categories[slug]
            self.save()

    # ------------------------------------------------------------------
    # Brand terms and attribute taxonomy
    # ------------------------------------------------------------------

    def record_brand_term(self, name: str, term_id: int) -> None:
        """Record a brand term created (or adopted) by provisioning."""
        if self.data.brand_terms.get(name) == term_id:
            return
        self.data.brand_terms[name] = term_id
        self.save()

    def owns_brand_term(self, term_id: int) -> bool:
        """Check whether a brand term id was recorded."""
        return term_id in self.data.brand_terms.values()

    def forget_brand_term(self, term_id: int) -> None:
        """Drop a deleted brand term from the manifest."""
        names = [name for name, recorded in self.data.brand_terms.items() if recorded == term_id]
        if names:
            for name in names:
                del self.data.brand_terms[name]
            self.save()

    @property
    def attribute_taxonomy_id(self) -> int | None:
        """Id of the brand attribute taxonomy, if this tool created it."""
        return self.data.attribute_taxonomy_id

    def record_attribute_taxonomy(self, attribute_id: int) -> None:
        """Record that this tool created the brand attribute taxonomy."""
        if self.data.attribute_taxonomy_id == attribute_id:
            return
        self.data.attribute_taxonomy_id = attribute_id
        self.save()

    def forget_attribute_taxonomy(self) -> None:
        """Drop the deleted attribute taxonomy from the manifest."""
        if self.data.attribute_taxonomy_id is not None:
            self.data.attribute_taxonomy_id = None
            self.save()
